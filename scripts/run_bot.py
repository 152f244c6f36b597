#!/usr/bin/env python3
"""
Alert bot launcher script.

Launches the price alert bot with the dev.yaml configuration. Without Somnia
settings the bot answers commands but does not poll (dry-run mode).
"""

import asyncio
import sys
from pathlib import Path

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from pricebot.runner.pipeline import main


if __name__ == "__main__":
    sys.argv = ["pricebot", "--config", "configs/dev.yaml", "--profile", "dev"]

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nAlert bot stopped by user.")
        sys.exit(0)
