"""
Accelerator string parsing.

Shortcuts are configured as Electron-style accelerators such as
"CommandOrControl+Shift+Space". The keyboard hook (pynput) wants its own
syntax, "<ctrl>+<shift>+<space>", and the claim table needs a canonical
form so that "Ctrl+Shift+S" and "Shift+Control+s" are the same binding.
"""

import sys
from dataclasses import dataclass
from typing import Tuple


class AcceleratorError(ValueError):
    """Raised when an accelerator string cannot be parsed."""
    pass


# Canonical modifier order used for display and claim-table keys
MODIFIER_ORDER = ("ctrl", "cmd", "alt", "alt_gr", "shift")

_PLATFORM_MODIFIERS = {"commandorcontrol", "cmdorctrl"}

_MODIFIER_ALIASES = {
    "command": "cmd",
    "cmd": "cmd",
    "super": "cmd",
    "meta": "cmd",
    "control": "ctrl",
    "ctrl": "ctrl",
    "alt": "alt",
    "option": "alt",
    "altgr": "alt_gr",
    "shift": "shift",
}

_NAMED_KEYS = {
    "space": "space",
    "enter": "enter",
    "return": "enter",
    "tab": "tab",
    "backspace": "backspace",
    "delete": "delete",
    "esc": "esc",
    "escape": "esc",
    "up": "up",
    "down": "down",
    "left": "left",
    "right": "right",
    "home": "home",
    "end": "end",
    "pageup": "page_up",
    "pagedown": "page_down",
    "insert": "insert",
}
_NAMED_KEYS.update({f"f{n}": f"f{n}" for n in range(1, 21)})


@dataclass(frozen=True)
class Accelerator:
    """A parsed key combination: zero or more modifiers plus one key."""
    modifiers: Tuple[str, ...]
    key: str

    @property
    def is_named_key(self) -> bool:
        return self.key in _NAMED_KEYS.values()

    def canonical(self) -> str:
        """Stable identity string, e.g. 'ctrl+shift+space'."""
        return "+".join(self.modifiers + (self.key,))

    def to_pynput(self) -> str:
        """pynput GlobalHotKeys syntax, e.g. '<ctrl>+<shift>+<space>'."""
        parts = [f"<{mod}>" for mod in self.modifiers]
        parts.append(f"<{self.key}>" if self.is_named_key else self.key)
        return "+".join(parts)


def resolve_platform_modifier(platform: str = sys.platform) -> str:
    """CommandOrControl means Command on macOS and Control everywhere else."""
    return "cmd" if platform == "darwin" else "ctrl"


def parse_accelerator(text: str, platform: str = sys.platform) -> Accelerator:
    """
    Parse an accelerator string.

    Args:
        text: Accelerator such as "Alt+CommandOrControl+Left"
        platform: sys.platform value used to resolve CommandOrControl

    Returns:
        Parsed Accelerator

    Raises:
        AcceleratorError: empty string, unknown token, missing or repeated key
    """
    if not text or not text.strip():
        raise AcceleratorError("Accelerator is empty")

    modifiers = set()
    key = None

    for raw in text.split("+"):
        token = raw.strip().lower()
        if not token:
            raise AcceleratorError(f"Empty token in accelerator {text!r}")

        if token in _PLATFORM_MODIFIERS:
            modifiers.add(resolve_platform_modifier(platform))
        elif token in _MODIFIER_ALIASES:
            modifiers.add(_MODIFIER_ALIASES[token])
        else:
            if key is not None:
                raise AcceleratorError(f"Accelerator {text!r} names more than one key")
            if token in _NAMED_KEYS:
                key = _NAMED_KEYS[token]
            elif len(token) == 1 and token.isprintable():
                key = token
            else:
                raise AcceleratorError(f"Unknown key {raw.strip()!r} in accelerator {text!r}")

    if key is None:
        raise AcceleratorError(f"Accelerator {text!r} has no key")

    ordered = tuple(mod for mod in MODIFIER_ORDER if mod in modifiers)
    return Accelerator(modifiers=ordered, key=key)


def to_pynput(text: str, platform: str = sys.platform) -> str:
    """Shorthand for parse_accelerator(text).to_pynput()."""
    return parse_accelerator(text, platform).to_pynput()
