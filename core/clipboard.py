"""
System clipboard access via pyperclip.
"""

import logging

import pyperclip

logger = logging.getLogger(__name__)


class PyperclipClipboard:
    """Clipboard backed by pyperclip (pbcopy, xclip/xsel or the Win32 API)."""

    def write_text(self, text: str) -> None:
        pyperclip.copy(text)
        logger.debug(f"Copied {len(text)} characters to clipboard")
