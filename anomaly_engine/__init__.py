# anomaly_engine/__init__.py
from .gate import AnomalyGate, GateState

__all__ = ["AnomalyGate", "GateState"]
