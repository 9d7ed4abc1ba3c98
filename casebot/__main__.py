"""
Module Entry Point

Allows execution via: python -m casebot
"""

import sys

from casebot.apps.cli import main

if __name__ == "__main__":
    sys.exit(main())
