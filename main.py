#!/usr/bin/env python3
"""
tofuworkspace - Main entry point.

Runs the operator CLI.
"""

from tofuworkspace.cli import app


if __name__ == "__main__":
    app()
