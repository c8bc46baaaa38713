# fusion_engine/fusion_core.py

import math
import random
import time
from collections import deque
from typing import Callable, Dict, List, Optional

from fusion_engine.feature_schema import FieldSnapshot, Orientation, SensorSample
from fusion_engine.fusion_config import FusionConfig
from fusion_engine.rule_engine import FieldMonitor
from fusion_engine.utils.preprocess import SensorGroup, clamp

SENSOR_GROUPS = ("accelerometer", "gyroscope", "magnetometer")


class FieldState:
    """Reading, bounded history, running peak and magnetometer baseline."""

    def __init__(self, history_cap: int = 120):
        self.reading = 0.0
        self.history = deque(maxlen=history_cap)
        self.highest = 0.0
        self.baseline: Optional[float] = None

    def record(self):
        self.history.append(self.reading)
        if self.reading > self.highest:
            self.highest = self.reading

    def to_json(self) -> str:
        return FieldSnapshot(
            reading=self.reading,
            highest=self.highest,
            baseline=self.baseline,
            history=list(self.history),
        ).model_dump_json()

    @classmethod
    def from_json(cls, raw: str, history_cap: int = 120) -> "FieldState":
        snap = FieldSnapshot.model_validate_json(raw)
        state = cls(history_cap)
        state.reading = snap.reading
        state.baseline = snap.baseline
        # deque keeps the newest entries when the stored list is longer than the cap
        state.history.extend(snap.history)
        state.highest = max([snap.highest, *state.history]) if state.history else snap.highest
        return state


class SignalFusion:
    """
    Fuses motion, orientation and magnetometer samples into a 0-100 field
    reading, a stability score and a deviation count.

    ingest() may be called at any rate; tick() runs on a fixed ~100 ms cadence.
    Without a magnetometer the reading follows a decay model fed by jerk spikes.
    """

    def __init__(
        self,
        config: Optional[FusionConfig] = None,
        rng: Optional[random.Random] = None,
        monitor: Optional[FieldMonitor] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.config = config or FusionConfig()
        self.rng = rng or random.Random()
        self.monitor = monitor
        self.clock = clock or (lambda: time.time() * 1000.0)

        self.state = FieldState(self.config.history_cap)
        self.groups: Dict[str, SensorGroup] = {
            name: SensorGroup(name, self.config.short_window, self.config.long_window)
            for name in SENSOR_GROUPS
        }

        self._target = 0.0
        self._last_motion: Optional[SensorSample] = None
        self._last_orientation: Optional[SensorSample] = None
        self._unavailable = set()

        # Callbacks (call with one arg: the new reading)
        self._callbacks: List[Callable[[float], None]] = []

    # ------------------------------------------------------------
    def ingest(self, sample: SensorSample):
        """Record one raw sample and update the rolling windows."""
        if sample.kind == "motion":
            self._ingest_motion(sample)
        elif sample.kind == "orientation":
            self._ingest_orientation(sample)
        elif sample.kind == "magnetometer":
            self._ingest_magnetometer(sample)

    def _ingest_motion(self, sample: SensorSample):
        self.groups["accelerometer"].push(sample.vector_magnitude())

        prev = self._last_motion
        self._last_motion = sample
        if prev is None:
            return

        total_delta = (
            abs((sample.x or 0.0) - (prev.x or 0.0))
            + abs((sample.y or 0.0) - (prev.y or 0.0))
            + abs((sample.z or 0.0) - (prev.z or 0.0))
        )
        # A sharp jerk creates a high delta
        if total_delta > self.config.motion_jerk_threshold:
            self._spike(min(total_delta * self.config.motion_spike_gain, self.config.motion_spike_cap))

    def _ingest_orientation(self, sample: SensorSample):
        prev = self._last_orientation
        self._last_orientation = sample
        if prev is None:
            return

        d_alpha = abs((sample.alpha or 0.0) - (prev.alpha or 0.0)) % 360.0
        if d_alpha > 180:
            d_alpha = 360 - d_alpha  # wrap-around from 359 to 0
        d_beta = (sample.beta or 0.0) - (prev.beta or 0.0)
        d_gamma = (sample.gamma or 0.0) - (prev.gamma or 0.0)
        self.groups["gyroscope"].push(math.hypot(d_alpha, d_beta, d_gamma))

        # Fast spin
        if d_alpha > self.config.spin_threshold:
            self._spike(min(d_alpha, self.config.spin_spike_cap))

    def _ingest_magnetometer(self, sample: SensorSample):
        value = sample.field_magnitude()
        self.groups["magnetometer"].push(value)

        state = self.state
        if state.baseline is None:
            state.baseline = value
        else:
            state.baseline += (value - state.baseline) * self.config.baseline_alpha
        self._target = clamp((value - state.baseline) * self.config.magnet_gain, 0.0, 100.0)

    def _spike(self, amount: float):
        # Spikes only drive the decay model; the magnetometer model owns the reading otherwise
        if self.magnetometer_active:
            return
        current = self.state.reading
        new_reading = min(100.0, current + amount)
        if new_reading > current:
            self.state.reading = new_reading

    # ------------------------------------------------------------
    def tick(self) -> float:
        """Advance the field state by one fusion step and publish the reading."""
        state = self.state
        if self.magnetometer_active:
            target = self._target
            state.reading += (target - state.reading) * self.config.reading_smoothing
            amplitude = self.config.jitter_base + self.config.jitter_per_unit * target
            state.reading += (self.rng.random() * 2.0 - 1.0) * amplitude
        else:
            # Apply decay, but keep a tiny bit of base noise
            noise = (self.rng.random() - 0.5) * self.config.decay_noise
            state.reading = state.reading * self.config.decay + noise
        state.reading = clamp(state.reading, 0.0, 100.0)
        state.record()

        if self.monitor is not None:
            event = self.monitor.evaluate(state.reading, self.clock())
            if event is not None:
                # Reset slightly to prevent immediate re-triggering
                state.reading = self.monitor.reset_level

        for cb in list(self._callbacks):
            try:
                cb(state.reading)
            except Exception as e:
                print(f"[SignalFusion] callback error: {e}")

        return state.reading

    # ------------------------------------------------------------
    @property
    def magnetometer_active(self) -> bool:
        return self.state.baseline is not None

    def mark_unavailable(self, kind: str):
        """Note that a sensor kind will never report. Logged once per kind."""
        if kind in self._unavailable:
            return
        self._unavailable.add(kind)
        print(f"[SignalFusion] {kind} unavailable; its contribution is left out.")

    def field_reading(self) -> float:
        return self.state.reading

    def highest_field_reading(self) -> float:
        return self.state.highest

    def history(self) -> List[float]:
        return list(self.state.history)

    def stability_score(self) -> float:
        """1.0 at rest (|a| ~ 9.8 m/s^2), falling off as the device moves."""
        latest = self.groups["accelerometer"].short.latest()
        if latest is None:
            return 1.0
        return clamp(1.0 - abs(latest - self.config.gravity) / self.config.stability_span, 0.0, 1.0)

    def deviation_count(self) -> int:
        """Number of sensor groups far from their long-term average."""
        return sum(
            1
            for group in self.groups.values()
            if group.has_samples and group.relative_deviation() > self.config.deviation_threshold
        )

    def orientation(self) -> Optional[Orientation]:
        o = self._last_orientation
        if o is None:
            return None
        return Orientation(alpha=o.alpha or 0.0, beta=o.beta or 0.0, gamma=o.gamma or 0.0)

    # ------------------------------------------------------------
    def register_callback(self, fn: Callable[[float], None]):
        if fn not in self._callbacks:
            self._callbacks.append(fn)

    def unregister_callback(self, fn: Callable[[float], None]):
        if fn in self._callbacks:
            self._callbacks.remove(fn)
