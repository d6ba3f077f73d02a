from .model import DiffusionModel

__all__ = ["DiffusionModel"]
