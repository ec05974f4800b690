"""
Command-line interface for QuickSight Export Tool.

This script provides a direct entry point for the QuickSight Export Tool.
It delegates to the main CLI module in the package.
"""

import sys
from quicksight_export.cli import main

if __name__ == '__main__':
    sys.exit(main())
