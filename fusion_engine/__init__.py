# fusion_engine/__init__.py
from .fusion_core import FieldState, SignalFusion
from .rule_engine import FieldMonitor
from .field_log import FieldLog

__all__ = [
    "FieldState",
    "SignalFusion",
    "FieldMonitor",
    "FieldLog",
]
