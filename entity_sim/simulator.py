# entity_sim/simulator.py
# Per-frame physics for on-screen entities, one per caller-supplied detection
import math
import random
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from fusion_engine.feature_schema import Detection, SceneObject
from fusion_engine.fusion_config import PhysicsConfig, ReactionConfig
from fusion_engine.utils.preprocess import clamp
from entity_sim.geometry import AnchorRef, compute_occlusion_level, find_nearest_anchor
from entity_sim.reactions import compute_agitation, compute_mouth_open

TAU = 2.0 * math.pi


@dataclass
class SimEntity:
    id: Any
    x: float
    y: float
    vx: float = 0.0
    vy: float = 0.0
    ax: float = 0.0
    ay: float = 0.0
    contained: bool = False
    instability: float = 0.0
    name: str = ""
    anchor: Optional[AnchorRef] = None
    # scene snapshot the anchor (or its absence) was last resolved against
    scene_version: int = 0

    occlusion_level: float = 0.0
    occluded: bool = False
    parallax_x: float = 0.0
    parallax_y: float = 0.0

    # cosmetics
    scale: float = 1.0
    rotation: float = 0.0
    bob_phase: float = 0.0
    left_arm_angle: float = 0.0
    right_arm_angle: float = 0.0
    left_leg_angle: float = 0.0
    right_leg_angle: float = 0.0
    blink: float = 0.0
    mouth_open: float = 0.0

    is_interacting: bool = False
    interaction_time: Optional[float] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def speed(self) -> float:
        return math.hypot(self.vx, self.vy)

    @property
    def limb_angles(self):
        return (self.left_arm_angle, self.right_arm_angle, self.left_leg_angle, self.right_leg_angle)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "x": self.x,
            "y": self.y,
            "vx": self.vx,
            "vy": self.vy,
            "contained": self.contained,
            "occlusion_level": self.occlusion_level,
            "occluded": self.occluded,
            "render_x": self.x + self.parallax_x,
            "render_y": self.y + self.parallax_y,
            "scale": self.scale,
            "rotation": self.rotation,
            "bob_phase": self.bob_phase,
            "limb_angles": list(self.limb_angles),
            "blink": self.blink,
            "mouth_open": self.mouth_open,
            "anchored": self.anchor is not None,
            "extra": dict(self.extra),
        }


class EntitySimulator:
    """
    Keeps one SimEntity per detection and advances them once per frame.

    - sync(detections) creates on first sight, drops when absent, keeps order
    - set_scene(objects) swaps the scene snapshot; anchors computed against an
      older snapshot are re-resolved before they are used again
    - tick() applies tilt gravity, drift, field agitation, anchor springs and
      scene repulsion, then integrates with friction and a speed clamp
    """

    def __init__(
        self,
        fusion,
        config: Optional[PhysicsConfig] = None,
        reactions: Optional[ReactionConfig] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.fusion = fusion
        self.config = config or PhysicsConfig()
        self.reactions = reactions or ReactionConfig()
        self.rng = rng or random.Random()
        self.clock = clock or (lambda: time.time() * 1000.0)

        self.objects: "OrderedDict[Any, SimEntity]" = OrderedDict()
        self.scene: List[SceneObject] = []
        self.scene_version = 0
        self._targeted: Optional[SimEntity] = None

        # Callbacks (call with entity, scene object name) when contact begins
        self._interaction_callbacks: List[Callable[[SimEntity, str], None]] = []

    # ------------------------------------------------------------
    def set_scene(self, objects: Sequence[SceneObject]):
        self.scene = [o if isinstance(o, SceneObject) else SceneObject.model_validate(o) for o in objects]
        self.scene_version += 1

    def sync(self, detections) -> List[SimEntity]:
        """Reconcile the live entity set 1:1 with the caller's detections."""
        latest: "OrderedDict[Any, Detection]" = OrderedDict()
        for d in detections:
            det = d if isinstance(d, Detection) else Detection.model_validate(d)
            latest[det.id] = det  # duplicate ids: last write wins

        for oid in list(self.objects.keys()):
            if oid not in latest:
                self.deregister(oid)

        for oid, det in latest.items():
            if oid in self.objects:
                e = self.objects[oid]
                e.contained = det.contained
                e.instability = det.instability
                e.name = det.name
                e.extra = dict(det.model_extra or {})
            else:
                self.register(det)

        if self._targeted is not None and self._targeted.id not in self.objects:
            self._targeted = None
        return self.entities()

    def register(self, detection: Detection) -> SimEntity:
        x, y = self.spawn_position()
        entity = SimEntity(
            id=detection.id,
            x=x,
            y=y,
            vx=(self.rng.random() - 0.5) * 0.05,
            vy=(self.rng.random() - 0.5) * 0.05,
            contained=detection.contained,
            instability=detection.instability,
            name=detection.name,
            anchor=find_nearest_anchor(self.scene, x, y, self.scene_version),
            scene_version=self.scene_version,
            extra=dict(detection.model_extra or {}),
        )
        self.objects[detection.id] = entity
        return entity

    def deregister(self, object_id):
        del self.objects[object_id]

    def spawn_position(self):
        cfg = self.config
        vertices = [
            polyline
            for obj in self.scene
            for polyline in obj.polylines
            if len(polyline) > 0
        ]
        if vertices and self.rng.random() < cfg.near_object_chance:
            p = self.rng.choice(self.rng.choice(vertices))
            x = clamp(p.x + self.rng.uniform(-cfg.spawn_jitter, cfg.spawn_jitter), 5.0, 95.0)
            y = clamp(p.y + self.rng.uniform(-cfg.spawn_jitter, cfg.spawn_jitter), 5.0, 95.0)
            return x, y
        return self._peripheral_position()

    def _peripheral_position(self):
        lo = 50.0 - self.config.exclusion_half_size
        hi = 50.0 + self.config.exclusion_half_size
        for _ in range(32):
            x = self.rng.uniform(5.0, 95.0)
            y = self.rng.uniform(5.0, 95.0)
            if not (lo < x < hi and lo < y < hi):
                return x, y
        return 5.0, 5.0

    # ------------------------------------------------------------
    def tick(self):
        """Advance every entity by one animation frame."""
        cfg = self.config
        orientation = self.fusion.orientation()
        gravity_x = clamp(orientation.gamma, -90.0, 90.0) / 90.0 if orientation else 0.0
        gravity_y = clamp(orientation.beta, -90.0, 90.0) / 90.0 if orientation else 0.0
        reading = self.fusion.field_reading()
        now = self.clock()

        closest = None
        min_distance = cfg.target_radius

        for e in self.objects.values():
            if e.contained:
                e.vx *= cfg.contained_damping
                e.vy *= cfg.contained_damping
                e.x += e.vx
                e.y += e.vy
                continue

            self._refresh_anchor(e)

            ax = gravity_x * cfg.gravity_tilt
            ay = gravity_y * cfg.gravity_tilt + cfg.downward_drift

            if e.anchor is not None:
                tx, ty = e.anchor.target
                ax += (tx - e.x) * cfg.anchor_spring
                ay += (ty - e.y) * cfg.anchor_spring
                e.vx *= cfg.anchor_damping
                e.vy *= cfg.anchor_damping

            agitation = reading * cfg.emf_agitation
            ax += (self.rng.random() - 0.5) * agitation
            ay += (self.rng.random() - 0.5) * agitation

            rx, ry, touched = self._repulsion(e)
            ax += rx
            ay += ry
            self._update_contact(e, touched, now)

            e.ax, e.ay = ax, ay
            e.vx = (e.vx + ax) * cfg.friction
            e.vy = (e.vy + ay) * cfg.friction
            speed = math.hypot(e.vx, e.vy)
            if speed > cfg.max_speed:
                e.vx = (e.vx / speed) * cfg.max_speed
                e.vy = (e.vy / speed) * cfg.max_speed

            e.x += e.vx
            e.y += e.vy

            if e.anchor is not None:
                e.parallax_x = gravity_x * cfg.parallax / e.anchor.depth
                e.parallax_y = gravity_y * cfg.parallax / e.anchor.depth
            else:
                e.parallax_x = e.parallax_y = 0.0

            if e.y > 105 or e.x < -5 or e.x > 105:
                self._recycle(e)

            e.occlusion_level = compute_occlusion_level(e.anchor, e.x, e.y, self.scene)
            e.occluded = e.occlusion_level > cfg.occluded_threshold

            self._animate(e, reading)

            distance = math.hypot(e.x - cfg.focal_x, e.y - cfg.focal_y)
            if distance < min_distance:
                min_distance = distance
                closest = e

        self._targeted = closest

    def _refresh_anchor(self, e: SimEntity):
        a = e.anchor
        if a is None:
            # spawned or recycled before this scene arrived
            stale = e.scene_version != self.scene_version
        else:
            stale = a.scene_version != self.scene_version or not (0 <= a.object_index < len(self.scene))
        if stale:
            e.anchor = find_nearest_anchor(self.scene, e.x, e.y, self.scene_version)
        e.scene_version = self.scene_version

    def _repulsion(self, e: SimEntity):
        cfg = self.config
        rx = ry = 0.0
        touched = None
        for obj in self.scene:
            for polyline in obj.polylines:
                for p in polyline:
                    dx = e.x - p.x
                    dy = e.y - p.y
                    d = math.hypot(dx, dy)
                    if d >= cfg.scene_repulsion_radius:
                        continue
                    if touched is None:
                        touched = obj.name
                    if d < 1e-6:
                        continue
                    force = min(cfg.scene_repulsion / d, cfg.repulsion_cap)
                    rx += (dx / d) * force
                    ry += (dy / d) * force
        return rx, ry, touched

    def _update_contact(self, e: SimEntity, touched: Optional[str], now: float):
        if touched is not None and not e.is_interacting:
            last = e.interaction_time
            if last is None or now - last >= self.config.interaction_cooldown_ms:
                e.interaction_time = now
                for cb in list(self._interaction_callbacks):
                    try:
                        cb(e, touched)
                    except Exception as err:
                        print(f"[EntitySimulator] interaction callback error: {err}")
        e.is_interacting = touched is not None

    def _recycle(self, e: SimEntity):
        e.x = self.rng.random() * 80 + 10
        e.y = -5.0
        e.vx = (self.rng.random() - 0.5) * 0.02
        e.vy = self.rng.random() * 0.05
        anchor = find_nearest_anchor(self.scene, e.x, e.y, self.scene_version)
        if anchor is not None:
            # tether to the vertex itself rather than the off-screen respawn point
            anchor.offset_x = anchor.offset_y = 0.0
        e.anchor = anchor

    def _animate(self, e: SimEntity, reading: float):
        speed = e.speed
        e.bob_phase = (e.bob_phase + 0.08 + speed * 2.0) % TAU
        wave = math.sin(e.bob_phase)

        e.scale = 1.0 + 0.04 * wave + min(0.1, speed * 0.5)
        e.rotation = clamp(e.vx * 60.0, -12.0, 12.0) + math.sin(e.bob_phase * 0.5) * 3.0

        base_agitation = min(1.0, speed / self.config.max_speed + e.instability * 0.3)
        agitation = compute_agitation(reading, base_agitation, self.reactions)
        swing = 10.0 + 25.0 * agitation
        e.left_arm_angle = wave * swing
        e.right_arm_angle = -e.left_arm_angle
        e.left_leg_angle = math.cos(e.bob_phase) * swing * 0.6
        e.right_leg_angle = -e.left_leg_angle

        e.blink = 1.0 if math.sin(e.bob_phase * 3.0) > 0.97 else 0.0
        base_mouth = max(0.0, wave) * 0.2 + (reading / 100.0) * 0.2
        e.mouth_open = compute_mouth_open(base_mouth, reading, self.reactions)

    # ------------------------------------------------------------
    def entities(self) -> List[SimEntity]:
        return list(self.objects.values())

    def targeted(self) -> Optional[SimEntity]:
        return self._targeted

    def register_interaction_callback(self, fn: Callable[[SimEntity, str], None]):
        if fn not in self._interaction_callbacks:
            self._interaction_callbacks.append(fn)

    def unregister_interaction_callback(self, fn: Callable[[SimEntity, str], None]):
        if fn in self._interaction_callbacks:
            self._interaction_callbacks.remove(fn)
