#!/usr/bin/env python3
"""
Glimpse Desktop Assistant - runtime orchestrator

This is the main entry point that wires all components together:
- Global shortcuts with fallback negotiation (pynput)
- Screen capture with primary/auxiliary queues (mss)
- Screenshot/audio analysis via Ollama or Gemini
- Processing orchestrator with cancellable operation slots
- Clipboard output for coding mode (pyperclip)
- Performance metrics and error handling
"""

import asyncio
import logging
import signal
import sys
from typing import Optional
import argparse

# Local imports
from agent.llm_client import BaseAnalysisClient, LLMConfig, LLMConfigurationError, create_llm_client
from config.settings import AssistantConfig, load_config
from core.capture import ScreenshotCapture
from core.clipboard import PyperclipClipboard
from core.processing.orchestrator import ProcessingOrchestrator
from core.shortcuts.registry import ShortcutRegistry
from core.shortcuts.router import ActionRouter
from core.state import SessionState
from core.window import HeadlessWindowManager
from utils.metrics import log_latency, get_current_metrics


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler('glimpse_assistant.log')
    ]
)
logging.getLogger("google_genai").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

# Seconds after registration before the live shortcut state is checked
VERIFY_DELAY = 1.0


class GlimpseAssistant:
    """
    Main runtime for the Glimpse assistant.

    Owns the asyncio loop's lifetime and composes the pieces:
    Key Press → ShortcutRegistry → ActionRouter → ProcessingOrchestrator → Window events
    """

    def __init__(self, config: Optional[AssistantConfig] = None,
                 verbose: bool = False, quiet: bool = False):
        """Initialize the assistant; components are built in initialize_components()."""
        self.config = config or load_config()
        self.verbose = verbose or bool(self.config.ui.get("verbose"))
        self.quiet = quiet or bool(self.config.ui.get("quiet"))

        # Configure logging level
        if self.quiet:
            logging.getLogger().setLevel(logging.WARNING)
        elif self.verbose:
            logging.getLogger().setLevel(logging.DEBUG)

        # Components
        self.state = SessionState()
        self.windows: Optional[HeadlessWindowManager] = None
        self.capture: Optional[ScreenshotCapture] = None
        self.llm_client: Optional[BaseAnalysisClient] = None
        self.orchestrator: Optional[ProcessingOrchestrator] = None
        self.registry: Optional[ShortcutRegistry] = None
        self.router: Optional[ActionRouter] = None

        # Task management
        self.tasks = []
        self.shutdown_event = asyncio.Event()
        self.is_running = False

        logger.info("Glimpse Assistant initialized")

    def build_shortcuts(self) -> None:
        """Create window, capture, orchestrator, registry and router (no network)."""
        capture_config = self.config.capture
        self.windows = HeadlessWindowManager()
        self.windows.window.quiet = self.quiet
        self.capture = ScreenshotCapture(
            self.state,
            capture_config.get("screenshot_dir"),
            max_queue_size=int(capture_config.get("max_queue_size", 5)),
        )
        self.orchestrator = ProcessingOrchestrator(
            self.windows,
            self.capture,
            self.capture,
            self.state,
            self.llm_client,
            clipboard=PyperclipClipboard(),
        )
        self.registry = ShortcutRegistry()
        self.router = ActionRouter(
            self.registry,
            self.orchestrator,
            self.windows,
            self.capture,
            self.capture,
            self.state,
            overrides=self.config.shortcut_overrides(),
            move_step=int(self.config.window.get("move_step", 60)),
        )

    async def initialize_components(self) -> bool:
        """Initialize all runtime components."""
        try:
            logger.info("🔧 Initializing components...")

            # 1. Analysis client
            logger.info("🧠 Setting up analysis client...")
            llm_config = LLMConfig.from_settings(self.config.llm, api_key=self.config.gemini_api_key)
            self.llm_client = await create_llm_client(llm_config)

            # 2. Window, capture, orchestrator, shortcuts
            logger.info("⌨️  Setting up shortcuts...")
            self.build_shortcuts()

            logger.info("✅ All components initialized successfully")
            return True

        except LLMConfigurationError as e:
            logger.error(f"Configuration error: {e}")
            return False
        except Exception as e:
            logger.error(f"Failed to initialize components: {e}")
            return False

    async def start(self) -> bool:
        """Start listening for shortcuts."""
        if self.is_running:
            return True

        try:
            if not await self.initialize_components():
                return False

            loop = asyncio.get_running_loop()
            self.registry.init(loop)
            working = self.router.register_all()
            loop.call_later(VERIFY_DELAY, self.registry.verify)

            self.tasks = [
                asyncio.create_task(self._metrics_reporter(), name="metrics_reporter")
            ]

            self.is_running = True

            # Show ready message
            if not self.quiet:
                print("\n" + "="*60)
                print("👁  GLIMPSE ASSISTANT READY")
                print("="*60)
                for action, accelerator in working.items():
                    print(f"   {accelerator:<32} {action}")
                print("🛑 Press Ctrl+C to quit")
                print("="*60 + "\n")

            logger.info("Glimpse Assistant started successfully")
            return True

        except Exception as e:
            logger.error(f"Failed to start assistant: {e}")
            return False

    async def stop(self):
        """Stop the assistant gracefully."""
        if not self.is_running:
            return

        logger.info("🔻 Shutting down Glimpse Assistant...")

        try:
            self.shutdown_event.set()

            # No new key events after this point
            if self.registry:
                self.registry.teardown()

            if self.orchestrator:
                self.orchestrator.cancel_all()

            if self.registry:
                await self.registry.wait_idle()

            for task in self.tasks:
                if not task.done():
                    task.cancel()

            if self.tasks:
                await asyncio.wait_for(
                    asyncio.gather(*self.tasks, return_exceptions=True),
                    timeout=5.0
                )

            # Final metrics
            if not self.quiet:
                print("\n📊 Final Performance Report:")
                log_latency()

            self.is_running = False
            logger.info("Glimpse Assistant stopped gracefully")

        except Exception as e:
            logger.error(f"Error during shutdown: {e}")

    async def _metrics_reporter(self):
        """Periodic metrics reporting."""
        if self.quiet:
            return

        logger.info("📊 Metrics reporter started")

        try:
            while not self.shutdown_event.is_set():
                await asyncio.sleep(30)  # Report every 30 seconds

                metrics = get_current_metrics()
                if metrics:
                    print("\n📊 Performance Summary:")
                    for stage, stats in metrics.items():
                        if stats and stats.count > 0:
                            print(f"   {stage}: {stats.avg_time:.2f}s avg ({stats.count} calls, {stats.failures} failed)")
                    print()

        except asyncio.CancelledError:
            logger.info("Metrics reporter cancelled")


def check_shortcuts(config: AssistantConfig) -> int:
    """Register the shortcut table, report what was granted, release everything."""
    assistant = GlimpseAssistant(config)
    assistant.build_shortcuts()

    try:
        working = assistant.router.register_all()
        mismatches = assistant.registry.verify()
    finally:
        assistant.registry.teardown()

    print("\n=== Shortcut check ===")
    for spec in assistant.router.table:
        accelerator = working.get(spec.action)
        status = f"✓ {accelerator}" if accelerator else "✗ unavailable"
        print(f"  {spec.action:<22} {status}")

    return 0 if working and not mismatches else 1


# CLI and Main Entry Point

def setup_signal_handlers(assistant: GlimpseAssistant):
    """Setup graceful shutdown on SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, initiating shutdown...")
        loop.call_soon_threadsafe(assistant.shutdown_event.set)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


async def main():
    """Main entry point for the Glimpse assistant."""
    parser = argparse.ArgumentParser(description="Glimpse Desktop Assistant")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    parser.add_argument("--quiet", "-q", action="store_true", help="Quiet mode")
    parser.add_argument("--backend", choices=["ollama", "gemini"], help="Override the LLM backend")
    parser.add_argument("--config", help="Path to config.toml")
    parser.add_argument("--check-shortcuts", action="store_true",
                        help="Register the shortcut table, report the result and exit")
    parser.add_argument("--profile", action="store_true", help="Show performance profile and exit")

    args = parser.parse_args()

    if args.profile:
        print("📊 Performance Profile:")
        log_latency()
        return 0

    config = load_config(args.config)
    if args.backend:
        config.llm["backend"] = args.backend

    if args.check_shortcuts:
        return check_shortcuts(config)

    assistant = GlimpseAssistant(config, verbose=args.verbose, quiet=args.quiet)

    setup_signal_handlers(assistant)

    try:
        if await assistant.start():
            # Keep running until shutdown
            await assistant.shutdown_event.wait()
        else:
            logger.error("Failed to start Glimpse Assistant")
            return 1

    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        return 1
    finally:
        await assistant.stop()

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
