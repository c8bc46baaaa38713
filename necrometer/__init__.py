# necrometer/__init__.py
from .scheduler import Scheduler
from .engine import NecroEngine

__all__ = ["Scheduler", "NecroEngine"]
