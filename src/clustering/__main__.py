"""
Entry point for running a cluster refresh as a module.

Usage:
    python3 -m src.clustering [--regenerate] [--dry-run]
"""

from .cli import main

if __name__ == '__main__':
    main()
