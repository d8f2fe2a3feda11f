#!/usr/bin/env python3
"""
mcpio - Main Entry Point

Runs the process bridge command line.
"""

from mcpio.server import main

if __name__ == "__main__":
    main()
