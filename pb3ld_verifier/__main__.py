#!/usr/bin/env python3
"""
Entry point for running pb3ld_verifier as a module.
This file enables: python -m pb3ld_verifier
"""

from .main import main

if __name__ == '__main__':
    main()
