"""
Entry point for running the arena as a module.

Usage:
    python -m arena
    python -m arena --log-level DEBUG --port 8765
"""

from .main import main

if __name__ == "__main__":
    main()
