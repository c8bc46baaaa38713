# necrometer/engine.py
import inspect
import random
from typing import Any, Dict, Iterable, List, Optional, Union

from anomaly_engine.gate import AnomalyGate
from entity_sim.simulator import EntitySimulator, SimEntity
from fusion_engine.feature_schema import AnomalyEvent, SensorSample
from fusion_engine.field_log import FieldLog
from fusion_engine.fusion_config import EngineConfig
from fusion_engine.fusion_core import SignalFusion
from fusion_engine.rule_engine import FieldMonitor
from motion_ai.noise import VisualNoiseEstimator
from necrometer.scheduler import Scheduler

SENSOR_KINDS = ("motion", "orientation", "magnetometer")


class NecroEngine:
    """
    Owns every component and the one scheduler they all tick on.

    Timers are registered in dependency order so that work due at the same
    instant runs fusion -> noise -> gate -> simulation -> field log.
    The camera and scene providers are optional; without them the noise score
    stays neutral and the scene stays empty.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        rng: Optional[random.Random] = None,
        scheduler: Optional[Scheduler] = None,
        camera=None,
        scene=None,
    ):
        self.config = config or EngineConfig()
        self.rng = rng or random.Random()
        self.scheduler = scheduler or Scheduler()
        self.camera = camera
        self.scene_provider = scene

        self.monitor = FieldMonitor(self.config.monitor)
        self.fusion = SignalFusion(self.config.fusion, self.rng, self.monitor, clock=self.scheduler.now)
        self.noise = VisualNoiseEstimator(self.config.noise)
        self.gate = AnomalyGate(self.scheduler, self.fusion, self.noise, self.config.gate, self.rng)
        self.simulator = EntitySimulator(
            self.fusion,
            self.config.physics,
            self.config.reactions,
            rng=self.rng,
            clock=self.scheduler.now,
        )
        self.field_log = FieldLog()

        self._handles = []
        self.started = False

    # ------------------------------------------------------------
    def start(self):
        if self.started:
            return
        cfg = self.config
        every = self.scheduler.call_every
        self._handles = [
            every(cfg.fusion_tick_ms, self.fusion.tick, name="fusion"),
            every(cfg.noise_tick_ms, self._sample_camera, name="visual_noise"),
        ]
        self.gate.start(cfg.gate_tick_ms)
        self._handles.append(every(cfg.frame_ms, self.simulator.tick, name="simulation"))
        self._handles.append(every(cfg.field_log_ms, self._record_field, name="field_log"))
        self.started = True
        print("[NecroEngine] started:", cfg.summary())

    def stop(self):
        """Halt every timer and in-flight capture; nothing mutates state afterwards."""
        for handle in self._handles:
            self.scheduler.cancel(handle)
        self._handles = []
        self.gate.stop()
        self.noise.stop()
        self.scheduler.stop()
        self.started = False

    async def run(self):
        """Start (if needed) and drive the scheduler in real time until stop()."""
        self.start()
        await self.scheduler.run()

    async def request_sensor_access(self, requester) -> List[str]:
        """
        Ask the platform for sensor permissions once at startup.
        `requester()` returns (or resolves to) the granted kinds; every kind
        not granted is marked unavailable. A failing requester grants nothing.
        """
        try:
            granted = requester()
            if inspect.isawaitable(granted):
                granted = await granted
        except Exception as e:
            print(f"[NecroEngine] sensor permission request failed: {e}")
            granted = ()

        granted = [kind for kind in SENSOR_KINDS if kind in set(granted or ())]
        for kind in SENSOR_KINDS:
            if kind not in granted:
                self.fusion.mark_unavailable(kind)
        return granted

    # ------------------------------------------------------------
    def _sample_camera(self):
        if self.camera is None:
            self.noise.analyze_frame(None)
            return
        pending = self.noise.request_frame(self.camera)
        if pending is not None:
            self.scheduler.spawn(pending)

    def _record_field(self):
        self.field_log.record(
            self.scheduler.now(),
            self.fusion.field_reading(),
            self.fusion.stability_score(),
        )

    # ------------------------------------------------------------
    def ingest(self, sample: Union[SensorSample, Dict[str, Any]]):
        if not isinstance(sample, SensorSample):
            sample = SensorSample.model_validate(sample)
        self.fusion.ingest(sample)

    def refresh_scene(self, objects=None):
        """Take a new scene snapshot, from `objects` or the scene provider."""
        if objects is None:
            if self.scene_provider is None:
                return
            try:
                objects = self.scene_provider.get_scene_objects() or []
            except Exception as e:
                print(f"[NecroEngine] scene analysis failed: {e}")
                return
        self.simulator.set_scene(objects)

    def sync_detections(self, detections: Iterable) -> List[SimEntity]:
        return self.simulator.sync(detections)

    # ------------------------------------------------------------
    def field_reading(self) -> float:
        return self.fusion.field_reading()

    def stability_score(self) -> float:
        return self.fusion.stability_score()

    def deviation_count(self) -> int:
        return self.fusion.deviation_count()

    def highest_field_reading(self) -> float:
        return self.fusion.highest_field_reading()

    def field_status(self) -> str:
        return self.monitor.status(self.fusion.field_reading())

    def current_anomaly(self) -> Optional[AnomalyEvent]:
        return self.gate.current_anomaly()

    def anomaly_log(self) -> List[Dict[str, Any]]:
        return self.gate.export_log()

    def entities(self) -> List[SimEntity]:
        return self.simulator.entities()

    def targeted_entity(self) -> Optional[SimEntity]:
        return self.simulator.targeted()

    def snapshot(self) -> Dict[str, Any]:
        anomaly = self.current_anomaly()
        target = self.targeted_entity()
        return {
            "timestamp": self.scheduler.now(),
            "field_reading": self.field_reading(),
            "highest_field_reading": self.highest_field_reading(),
            "status": self.field_status(),
            "stability_score": self.stability_score(),
            "deviation_count": self.deviation_count(),
            "magnetometer_active": self.fusion.magnetometer_active,
            "visual_noise_score": self.noise.visual_noise_score(),
            "attention_level": self.gate.attention_level,
            "current_anomaly": anomaly.model_dump() if anomaly else None,
            "entities": [e.to_dict() for e in self.entities()],
            "targeted_entity": target.id if target else None,
            "detections": [d.model_dump() for d in self.monitor.detections[-5:]],
        }
