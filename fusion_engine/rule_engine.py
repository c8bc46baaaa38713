# fusion_engine/rule_engine.py

from typing import Optional

from fusion_engine.feature_schema import DetectionEvent
from fusion_engine.fusion_config import MonitorConfig


class FieldMonitor:
    """
    Applies deterministic rules on top of the fused field reading.
    Outputs a status band and, on a critical reading, a DetectionEvent.
    """

    def __init__(self, config: Optional[MonitorConfig] = None):
        self.config = config or MonitorConfig()
        self.last_detection_ms: Optional[float] = None
        self.detections = []

    @property
    def reset_level(self) -> float:
        return self.config.reset_level

    def status(self, reading: float) -> str:
        # ------------------------
        # STATUS BANDS
        # ------------------------
        if reading < 10:
            return "SYSTEM NOMINAL"
        elif reading < 40:
            return "TRACE ENERGY DETECTED"
        elif reading < 75:
            return "MODERATE FIELD DISTURBANCE"
        elif reading < self.config.critical_threshold:
            return "HIGH EMF WARNING"
        return "!!! CRITICAL EVENT IMMINENT !!!"

    def strength(self, reading: float) -> str:
        if reading > self.config.extreme_threshold:
            return "critical"
        elif reading > self.config.strong_threshold:
            return "strong"
        elif reading > self.config.critical_threshold:
            return "moderate"
        return "weak"

    def evaluate(self, reading: float, now_ms: float) -> Optional[DetectionEvent]:
        """
        Returns a DetectionEvent when the reading is critical and the
        detection cooldown has passed, otherwise None.
        """
        if reading <= self.config.critical_threshold:
            return None

        if (
            self.last_detection_ms is not None
            and now_ms - self.last_detection_ms <= self.config.detection_cooldown_ms
        ):
            return None

        self.last_detection_ms = now_ms
        event = DetectionEvent(
            emf=round(reading, 2),
            strength=self.strength(reading),
            timestamp=now_ms,
        )
        self.detections.append(event)
        return event
