#!/usr/bin/env python3
"""
Launcher script for Apps Launcher.
Run this script to use the command line interface without installing.
"""

import sys
import os

# Add the current directory to Python path so we can import appslauncher
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from appslauncher.main import main

if __name__ == "__main__":
    sys.exit(main())
