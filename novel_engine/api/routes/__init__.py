from . import novels

__all__ = ["novels"]
