from .master import main

__all__ = ["main"]
