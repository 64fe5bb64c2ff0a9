#!/usr/bin/env python
"""
Run script for the fee distribution engine.

This script sets up logging directories and runs the engine.
"""

import asyncio
from pathlib import Path

# Create logs directory if it doesn't exist
logs_dir = Path("logs")
logs_dir.mkdir(exist_ok=True)

# Import the engine's main function after setting up paths
from feebot.main import main

if __name__ == "__main__":
    asyncio.run(main())
