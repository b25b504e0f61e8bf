"""Entry point for running Boson as a module.

This allows running: python -m boson
"""

from .cli import main

if __name__ == "__main__":
    main()
