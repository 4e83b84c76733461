"""
Entry point for running devtoolbox as a module.

Usage: python -m devtoolbox [args]
"""

from devtoolbox.cli import main

if __name__ == "__main__":
    main()
