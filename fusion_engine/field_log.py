# fusion_engine/field_log.py

from typing import List

from pydantic import TypeAdapter, ValidationError

from fusion_engine.feature_schema import FieldLogEntry

_ENTRIES = TypeAdapter(List[FieldLogEntry])


class FieldLog:
    """
    Periodic log of field readings, newest first, bounded to `cap` entries.
    Persistence is left to the caller via to_json()/from_json().
    """

    def __init__(self, cap: int = 120):
        self.cap = cap
        self.entries: List[FieldLogEntry] = []

    def record(self, timestamp: float, emf: float, motion_stability: float) -> FieldLogEntry:
        entry = FieldLogEntry(timestamp=timestamp, emf=emf, motion_stability=motion_stability)
        self.entries = [entry, *self.entries][: self.cap]
        return entry

    def peak(self) -> float:
        return max((e.emf for e in self.entries), default=0.0)

    def clear(self):
        self.entries = []

    def to_json(self) -> str:
        return _ENTRIES.dump_json(self.entries).decode("utf-8")

    @classmethod
    def from_json(cls, raw: str, cap: int = 120) -> "FieldLog":
        log = cls(cap)
        try:
            log.entries = _ENTRIES.validate_json(raw)[:cap]
        except ValidationError:
            log.entries = []
        return log
