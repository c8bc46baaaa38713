# anomaly_engine/gate.py
import random
from enum import Enum, auto
from typing import Any, Callable, Dict, List, Optional

from fusion_engine.feature_schema import AnomalyEvent, Position
from fusion_engine.fusion_config import GateConfig

ANOMALY_TYPES = ("blur", "shadow", "distortion", "edge-artifact")

NOTES = [
    "Unclassified visual irregularity observed",
    "Anomalous pattern flagged",
    "Irregularity detected and resolved",
    "Visual distortion logged",
    "Transient anomaly recorded",
]


class GateState(Enum):
    IDLE = auto()
    PENDING_REVEAL = auto()
    VISIBLE = auto()
    PENDING_ACK = auto()


class GateResult:
    """Outcome of one pass over the gate chain; `failed` names the first gate that held."""

    __slots__ = ("passed", "failed")

    def __init__(self, passed: bool, failed: Optional[str] = None):
        self.passed = passed
        self.failed = failed

    def __repr__(self):
        return f"GateResult(passed={self.passed}, failed={self.failed!r})"


class AnomalyGate:
    """
    Timed state machine that decides when to surface a synthetic anomaly.

    IDLE -> PENDING_REVEAL -> VISIBLE -> PENDING_ACK -> IDLE (cooldown)

    - attention accumulates every tick while idle and out of cooldown
    - an anomaly fires only when every gate holds, cheapest checks first
    - reveal / hide / acknowledge are staged on the shared scheduler, so
      stop() cancels them along with the tick
    - register_callback(fn) gets each event once it is acknowledged
    """

    def __init__(
        self,
        scheduler,
        fusion,
        noise,
        config: Optional[GateConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        self.scheduler = scheduler
        self.fusion = fusion
        self.noise = noise
        self.config = config or GateConfig()
        self.rng = rng or random.Random()

        self.state = GateState.IDLE
        self.attention_level = 0.0
        self.cooldown_until = 0.0

        # Event in flight and the one currently shown
        self.pending: Optional[AnomalyEvent] = None
        self.current: Optional[AnomalyEvent] = None
        self.last_position: Optional[Position] = None

        # Acknowledged events, oldest first
        self.log: List[AnomalyEvent] = []
        self._next_id = 1

        self._tick_handle = None
        self._stage_handle = None

        # Callbacks (call with one arg: the acknowledged AnomalyEvent)
        self._callbacks: List[Callable[[AnomalyEvent], None]] = []

    # ------------------------------------------------------------
    def start(self, interval_ms: float = 500.0):
        if self._tick_handle is not None:
            return
        self._tick_handle = self.scheduler.call_every(interval_ms, self.tick, name="anomaly_gate")

    def stop(self):
        self.scheduler.cancel(self._tick_handle)
        self.scheduler.cancel(self._stage_handle)
        self._tick_handle = None
        self._stage_handle = None
        self.pending = None
        self.current = None
        self.state = GateState.IDLE

    # ------------------------------------------------------------
    def tick(self):
        if self.state is not GateState.IDLE:
            return

        now = self.scheduler.now()
        if now < self.cooldown_until:
            return

        self.attention_level = min(1.0, self.attention_level + self.config.attention_step)

        if self.check_gates(now).passed:
            self._trigger(now)

    def check_gates(self, now: Optional[float] = None) -> GateResult:
        """Evaluate the gates in order, stopping at the first one that holds the event back."""
        cfg = self.config
        if now is None:
            now = self.scheduler.now()

        if now < self.cooldown_until:
            return GateResult(False, "cooldown")
        if self.attention_level < cfg.attention_threshold:
            return GateResult(False, "attention")
        if self.fusion.stability_score() < cfg.stability_threshold:
            return GateResult(False, "stability")
        if self.fusion.deviation_count() < cfg.min_deviation_count:
            return GateResult(False, "deviation")
        noise = self.noise.visual_noise_score()
        if not (cfg.noise_min <= noise <= cfg.noise_max):
            return GateResult(False, "visual_noise")
        if self.rng.random() >= self.attention_level * cfg.trigger_probability:
            return GateResult(False, "chance")
        return GateResult(True)

    # ------------------------------------------------------------
    def _trigger(self, now: float):
        cfg = self.config
        event = AnomalyEvent(
            id=self._next_id,
            timestamp=now,
            type=self.rng.choice(ANOMALY_TYPES),
            position=self._pick_position(),
            duration_ms=self.rng.uniform(cfg.duration_min_ms, cfg.duration_max_ms),
            intensity=self.rng.uniform(cfg.intensity_min, cfg.intensity_max),
            note=self.rng.choice(NOTES),
        )
        self._next_id += 1
        self.pending = event
        self.last_position = event.position
        self.state = GateState.PENDING_REVEAL

        reveal_delay = self.rng.uniform(cfg.reveal_min_ms, cfg.reveal_max_ms)
        self._stage_handle = self.scheduler.call_later(reveal_delay, self._reveal, name="anomaly_reveal")

    def _pick_position(self) -> Position:
        cfg = self.config
        prev = self.last_position
        for _ in range(32):
            x = self.rng.uniform(cfg.position_min, cfg.position_max)
            y = self.rng.uniform(cfg.position_min, cfg.position_max)
            if prev is None or not self._too_close(prev, x, y):
                return Position(x=x, y=y)

        # Out of draws: take the far corner of the band
        mid = (cfg.position_min + cfg.position_max) / 2.0
        x = cfg.position_min if prev.x >= mid else cfg.position_max
        y = cfg.position_min if prev.y >= mid else cfg.position_max
        return Position(x=x, y=y)

    def _too_close(self, prev: Position, x: float, y: float) -> bool:
        sep = self.config.min_separation
        return abs(x - prev.x) < sep and abs(y - prev.y) < sep

    def _reveal(self):
        self.current = self.pending
        self.state = GateState.VISIBLE
        self._stage_handle = self.scheduler.call_later(
            self.current.duration_ms, self._hide, name="anomaly_hide"
        )

    def _hide(self):
        self.current = None
        self.state = GateState.PENDING_ACK
        ack_delay = self.rng.uniform(self.config.ack_min_ms, self.config.ack_max_ms)
        self._stage_handle = self.scheduler.call_later(ack_delay, self._acknowledge, name="anomaly_ack")

    def _acknowledge(self):
        cfg = self.config
        event = self.pending
        now = self.scheduler.now()

        self.attention_level = max(cfg.attention_floor, self.attention_level - cfg.attention_drop)
        self.cooldown_until = now + self.rng.uniform(cfg.cooldown_min_ms, cfg.cooldown_max_ms)
        self.log.append(event)

        self.pending = None
        self._stage_handle = None
        self.state = GateState.IDLE

        # Notify callbacks (safely; callbacks are synchronous here)
        for cb in list(self._callbacks):
            try:
                cb(event)
            except Exception as e:
                print(f"[AnomalyGate] callback error: {e}")

    # ------------------------------------------------------------
    def current_anomaly(self) -> Optional[AnomalyEvent]:
        return self.current

    def export_log(self) -> List[Dict[str, Any]]:
        """Acknowledged events, newest first, as JSON-ready dicts."""
        return [e.model_dump() for e in reversed(self.log)]

    def register_callback(self, fn: Callable[[AnomalyEvent], None]):
        if fn not in self._callbacks:
            self._callbacks.append(fn)

    def unregister_callback(self, fn: Callable[[AnomalyEvent], None]):
        if fn in self._callbacks:
            self._callbacks.remove(fn)
