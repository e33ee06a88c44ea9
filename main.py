#!/usr/bin/env python3
"""
Main launcher for the Glimpse desktop assistant.

Simple entry point that starts the assistant runtime.
"""

from assistant import main
import asyncio
import sys


def run():
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
