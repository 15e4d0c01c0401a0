"""
Entry point for running the swiftvm CLI as a module.

Usage: python -m swiftvm.cli [command] [options]
"""

from .parser import main

if __name__ == "__main__":
    main()
