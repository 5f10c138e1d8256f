#!/usr/bin/env python3
"""
Watchfolio entry point
Run with ``python -m watchfolio.main <command>``
"""
from .cli import main

if __name__ == "__main__":
    main()
