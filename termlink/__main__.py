"""
Run termlink as a module: python -m termlink
"""

from .cli import main

if __name__ == "__main__":
    main()
