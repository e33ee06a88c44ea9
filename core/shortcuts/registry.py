"""
Global shortcut registry.

Claims accelerators from the OS through a ShortcutBackend with ordered
fallback negotiation, keeps the accelerator -> binding table, and is the
single place where register/unregister calls happen.

Key events arrive on the keyboard-hook thread. Every handler is marshalled
onto the asyncio loop bound by init() and run through one wrapper: call
the callback, await the result if it is awaitable, log anything raised.
Nothing a callback does can reach the hook thread.
"""

import asyncio
import inspect
import logging
import threading
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Set, Union

from .backend import PynputShortcutBackend, ShortcutBackend

logger = logging.getLogger(__name__)

ShortcutCallback = Callable[[], Union[None, Awaitable[None]]]


class RegistryClosedError(RuntimeError):
    """Raised when a registry is used after teardown()."""
    pass


@dataclass
class AcceleratorBinding:
    """One action's claim: what was asked for and what the OS granted."""
    action: str
    primary: str
    fallbacks: List[str] = field(default_factory=list)
    description: str = ""
    resolved: Optional[str] = None
    registered: bool = False

    @property
    def candidates(self) -> List[str]:
        return [self.primary, *self.fallbacks]


@dataclass
class RegistrationResult:
    """Outcome of register_with_fallback()."""
    success: bool
    accelerator: Optional[str] = None


class ShortcutRegistry:
    """
    Owner of the process's global shortcut claims.

    Registration is idempotent and never raises on a busy accelerator: a
    refused claim returns False and the caller degrades gracefully.
    """

    def __init__(self, backend: Optional[ShortcutBackend] = None,
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        self.backend = backend if backend is not None else PynputShortcutBackend()
        self._loop = loop
        self._attempts: Dict[str, bool] = {}  # accelerator -> success
        self._bindings: Dict[str, AcceleratorBinding] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._lock = threading.RLock()
        self._closed = False

    # Lifecycle

    def init(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """
        Bind the loop that runs shortcut handlers and start the backend.

        Args:
            loop: Event loop; defaults to the running loop
        """
        self._ensure_open()
        self._loop = loop or asyncio.get_running_loop()
        self.backend.start()
        logger.debug("Shortcut registry initialised")

    def teardown(self) -> None:
        """Unregister every accelerator this registry claimed. Safe when empty."""
        if self._closed:
            logger.debug("Shortcut registry already torn down")
            return

        logger.info("Unregistering all shortcuts...")
        with self._lock:
            for accelerator, registered in list(self._attempts.items()):
                if not registered:
                    continue
                try:
                    self.backend.unregister(accelerator)
                except Exception as e:
                    logger.warning(f"Failed to unregister {accelerator}: {e}")

            self._attempts.clear()
            for binding in self._bindings.values():
                binding.resolved = None
                binding.registered = False

            self.backend.stop()
            self._closed = True

    @property
    def is_closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise RegistryClosedError("Shortcut registry was torn down and cannot be reused")

    # Registration

    def register_shortcut(self, accelerator: str, callback: ShortcutCallback,
                          description: str) -> bool:
        """
        Claim one accelerator.

        An accelerator already held by this registry (or reported as held by
        the backend) is unregistered first, so repeated calls never stack
        two live bindings.

        Returns:
            True if the OS granted the claim, False otherwise
        """
        self._ensure_open()

        with self._lock:
            try:
                if self._attempts.get(accelerator) or self.backend.is_registered(accelerator):
                    logger.warning(
                        f"Shortcut {accelerator} ({description}) is already registered, unregistering first..."
                    )
                    self.backend.unregister(accelerator)
                    self._drop_holders(accelerator, description)

                registered = self.backend.register(
                    accelerator, self._make_handler(accelerator, callback)
                )
            except Exception as e:
                logger.error(f"✗ Error registering {accelerator} ({description}): {e}")
                self._attempts[accelerator] = False
                return False

            self._attempts[accelerator] = registered

        if registered:
            logger.info(f"✓ Successfully registered: {accelerator} ({description})")
        else:
            logger.error(f"✗ Failed to register: {accelerator} ({description})")
            logger.error(f"  → {self._failure_cause(accelerator)}")

        return registered

    def register_with_fallback(self, primary: str, fallbacks: List[str],
                               callback: ShortcutCallback, description: str,
                               action: Optional[str] = None) -> RegistrationResult:
        """
        Claim the first available accelerator out of primary + fallbacks.

        Args:
            primary: Preferred accelerator
            fallbacks: Alternatives, tried in order
            callback: Sync or async action to run on key press
            description: Human-readable action name for logs
            action: Binding-table key (defaults to description)

        Returns:
            RegistrationResult; success=False leaves the action unbound
        """
        self._ensure_open()
        action = action or description

        with self._lock:
            previous = self._bindings.get(action)
            if previous is not None and previous.registered and previous.resolved:
                self.unregister(previous.resolved)

            binding = AcceleratorBinding(
                action=action,
                primary=primary,
                fallbacks=list(fallbacks),
                description=description,
            )
            self._bindings[action] = binding

            if self.register_shortcut(primary, callback, description):
                binding.resolved, binding.registered = primary, True
                return RegistrationResult(success=True, accelerator=primary)

            if fallbacks:
                logger.info(f"  → Trying fallback shortcuts for: {description}")
            for fallback in fallbacks:
                if self.register_shortcut(fallback, callback, f"{description} (fallback)"):
                    logger.info(f"  ✓ Using fallback: {fallback}")
                    binding.resolved, binding.registered = fallback, True
                    return RegistrationResult(success=True, accelerator=fallback)

        logger.error(f"  ✗ All shortcuts failed for: {description}")
        return RegistrationResult(success=False, accelerator=None)

    def unregister(self, accelerator: str) -> None:
        """Release one accelerator claimed by this registry."""
        with self._lock:
            if self._attempts.pop(accelerator, False):
                self.backend.unregister(accelerator)

    def _drop_holders(self, accelerator: str, description: str) -> None:
        """Mark any other action bound to this accelerator as unbound."""
        for binding in self._bindings.values():
            if binding.registered and binding.resolved == accelerator:
                logger.warning(
                    f"{binding.action} loses {accelerator} to {description} and is now unbound"
                )
                binding.resolved, binding.registered = None, False

    def _failure_cause(self, accelerator: str) -> str:
        try:
            if self.backend.is_reserved(accelerator):
                return "This shortcut is reserved by the operating system"
        except Exception as e:
            logger.debug(f"Reservation check failed for {accelerator}: {e}")
        return "This shortcut may already be in use by another application or the OS"

    # Dispatch

    def _make_handler(self, accelerator: str, callback: ShortcutCallback) -> Callable[[], None]:
        def handler() -> None:
            self._dispatch(accelerator, callback)
        return handler

    def _dispatch(self, accelerator: str, callback: ShortcutCallback) -> None:
        """Runs on the keyboard-hook thread; must never raise."""
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.warning(f"Shortcut {accelerator} fired before the registry was initialised; ignored")
            return
        try:
            loop.call_soon_threadsafe(self._spawn, accelerator, callback)
        except RuntimeError as e:
            logger.debug(f"Dropped shortcut {accelerator}, loop is shutting down: {e}")

    def _spawn(self, accelerator: str, callback: ShortcutCallback) -> None:
        task = self._loop.create_task(self._invoke(accelerator, callback))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _invoke(self, accelerator: str, callback: ShortcutCallback) -> None:
        try:
            result = callback()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Error in shortcut {accelerator}: {e}", exc_info=True)

    async def wait_idle(self) -> None:
        """Wait until every dispatched handler has finished."""
        await asyncio.sleep(0)
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # Reporting

    @property
    def bindings(self) -> Dict[str, AcceleratorBinding]:
        return dict(self._bindings)

    @property
    def attempts(self) -> Dict[str, bool]:
        return dict(self._attempts)

    def working_shortcuts(self) -> Dict[str, str]:
        """{action: accelerator} for every action that ended up bound."""
        return {
            action: binding.resolved
            for action, binding in self._bindings.items()
            if binding.registered and binding.resolved
        }

    def log_summary(self) -> None:
        """Log the registration summary."""
        succeeded = [acc for acc, ok in self._attempts.items() if ok]
        failed = [acc for acc, ok in self._attempts.items() if not ok]

        logger.info("=== Shortcuts Registration Summary ===")
        for accelerator in failed:
            logger.error(f"FAILED: {accelerator}")
        logger.info(f"Total: {len(self._attempts)} shortcuts")
        logger.info(f"Success: {len(succeeded)}")
        logger.info(f"Failed: {len(failed)}")

        working = self.working_shortcuts()
        if working:
            logger.info("=== WORKING SHORTCUTS ===")
            for action, accelerator in working.items():
                logger.info(f"  {action}: {accelerator}")
        else:
            logger.error("⚠️  WARNING: No shortcuts were successfully registered!")
            logger.error("This usually means:")
            logger.error("  1. Another application is using these shortcuts")
            logger.error("  2. The OS has reserved these key combinations")
            logger.error("  3. Try closing other applications and restarting")

    def verify(self) -> List[str]:
        """
        Compare recorded registration state with the backend's live state.

        Diagnostic only: mismatches are logged, not repaired.

        Returns:
            Accelerators whose live state differs from the recorded one
        """
        logger.info("=== Verifying Shortcuts ===")
        mismatches = []
        with self._lock:
            for accelerator, expected in self._attempts.items():
                actual = self.backend.is_registered(accelerator)
                logger.info(f"{accelerator}: Expected={expected}, Actual={actual}")
                if actual != expected:
                    mismatches.append(accelerator)

        if mismatches:
            logger.warning(f"Shortcut state drifted for: {', '.join(mismatches)}")
        return mismatches
