"""
Entry point for running swiftvm as a module.

Usage: python -m swiftvm [command] [options]
"""

from swiftvm.cli.parser import main

if __name__ == "__main__":
    main()
