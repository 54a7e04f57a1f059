from .dmp import Dmp

__all__ = ["Dmp"]
