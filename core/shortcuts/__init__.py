"""
Global shortcut handling.

This package provides:
- Accelerator parsing and translation to the keyboard-hook syntax
- The OS keyboard-hook backend (pynput) with a process-wide claim table
- ShortcutRegistry with ordered fallback negotiation
- ActionRouter, the default shortcut table and its actions
"""

from .accelerator import (
    Accelerator,
    AcceleratorError,
    parse_accelerator,
    to_pynput,
)

from .backend import (
    RESERVED_COMBINATIONS,
    ShortcutBackend,
    PynputShortcutBackend,
)

from .registry import (
    AcceleratorBinding,
    RegistrationResult,
    RegistryClosedError,
    ShortcutRegistry,
)

from .router import (
    DEFAULT_SHORTCUTS,
    ShortcutSpec,
    ActionRouter,
    build_shortcut_table,
)

__all__ = [
    "Accelerator",
    "AcceleratorError",
    "parse_accelerator",
    "to_pynput",
    "RESERVED_COMBINATIONS",
    "ShortcutBackend",
    "PynputShortcutBackend",
    "AcceleratorBinding",
    "RegistrationResult",
    "RegistryClosedError",
    "ShortcutRegistry",
    "DEFAULT_SHORTCUTS",
    "ShortcutSpec",
    "ActionRouter",
    "build_shortcut_table",
]
