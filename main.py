#!/usr/bin/env python3
"""Thin wrapper: run gsync CLI. Usage: python main.py <cmd> ...."""

import sys

if __name__ == "__main__":
    from gsync.cli import main
    sys.exit(main())
