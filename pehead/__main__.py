"""
Pehead Module Entry Point
==========================

Allows running the Pehead CLI via: python -m pehead
"""

from pehead.cli import main

if __name__ == "__main__":
    main()
