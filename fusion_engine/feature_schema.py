# fusion_engine/feature_schema.py

import math
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class SensorSample(BaseModel):
    """
    One raw reading pushed by the sensor collaborator.

    motion:        x, y, z acceleration including gravity (m/s^2)
    orientation:   alpha, beta, gamma angles (degrees)
    magnetometer:  magnitude (uT), or an x, y, z vector
    """
    model_config = ConfigDict(allow_inf_nan=False)

    kind: Literal["motion", "orientation", "magnetometer"]

    x: Optional[float] = None
    y: Optional[float] = None
    z: Optional[float] = None

    alpha: Optional[float] = None
    beta: Optional[float] = None
    gamma: Optional[float] = None

    magnitude: Optional[float] = None

    def vector_magnitude(self) -> float:
        return math.hypot(self.x or 0.0, self.y or 0.0, self.z or 0.0)

    def field_magnitude(self) -> float:
        """Magnetometer strength; falls back to the vector norm."""
        if self.magnitude is not None:
            return float(self.magnitude)
        return self.vector_magnitude()


class Orientation(BaseModel):
    alpha: float = 0.0
    beta: float = 0.0
    gamma: float = 0.0


class FieldSnapshot(BaseModel):
    """Serializable form of the field state (history is oldest first)."""
    reading: float = Field(default=0.0, ge=0, le=100)
    highest: float = 0.0
    baseline: Optional[float] = None
    history: List[float] = Field(default_factory=list)


class DetectionEvent(BaseModel):
    """Raised when the field reading crosses the critical band."""
    emf: float
    strength: Literal["weak", "moderate", "strong", "critical"]
    timestamp: float  # engine clock, ms


class FieldLogEntry(BaseModel):
    timestamp: float
    emf: float
    motion_stability: float


class Position(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float
    y: float


AnomalyType = Literal["blur", "shadow", "distortion", "edge-artifact"]


class AnomalyEvent(BaseModel):
    """A synthetic visual anomaly. Immutable once created."""
    model_config = ConfigDict(frozen=True)

    id: int
    timestamp: float  # engine clock, ms
    type: AnomalyType
    position: Position  # percent coordinates
    duration_ms: float
    intensity: float
    note: str


class ScenePoint(BaseModel):
    x: float
    y: float


class SceneObject(BaseModel):
    """Named outline produced by scene analysis, in screen-percent coordinates."""
    name: str
    polylines: List[List[ScenePoint]] = Field(default_factory=list)


class Detection(BaseModel):
    """Caller-owned record an entity is mirrored from."""
    model_config = ConfigDict(extra="allow")

    id: Union[int, str]
    contained: bool = False
    instability: float = 0.0
    name: str = ""
