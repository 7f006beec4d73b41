#!/usr/bin/env python3
"""
Main entry point for the REST client command line.

This wrapper script allows running the tool directly with python main.py
without installing the package first.
"""

import os
import sys

# Add the repository root to sys.path to allow importing restclient
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

from restclient.cli.main import main

if __name__ == "__main__":
    main()
