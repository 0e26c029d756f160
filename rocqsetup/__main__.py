"""
Entry point for running rocq-setup as a module.

Usage: python -m rocqsetup [command] [options]
"""

from rocqsetup.cli.parser import main

if __name__ == "__main__":
    main()
