"""
Run the workshop simulation CLI.

Usage:
    python -m workshop_sim status
"""

import sys

from .interface.cli import main

if __name__ == "__main__":
    sys.exit(main())
