"""
Entry point for running openclaw-packager as a module.

Usage:
    python -m openclaw_packager [command] [options]
"""

from openclaw_packager.cli import main

if __name__ == "__main__":
    main()
