# entity_sim/geometry.py
# Scene-geometry helpers: ray casting, nearest anchor, occlusion.
import math
from dataclasses import dataclass
from typing import Optional, Sequence

from fusion_engine.feature_schema import SceneObject, ScenePoint

DEPTH_STEP = 0.45


@dataclass
class AnchorRef:
    """
    Index-based link from an entity into one scene-object snapshot.
    Only valid against the snapshot whose version is `scene_version`.
    """
    object_index: int
    polyline_index: int
    point_index: int
    base_x: float
    base_y: float
    offset_x: float
    offset_y: float
    depth: float
    scene_version: int = 0

    @property
    def target(self):
        return self.base_x + self.offset_x, self.base_y + self.offset_y


def depth_for(object_index: int) -> float:
    # 1.0, 1.45, 1.9 repeating, so the same object always reads the same depth
    return 1.0 + (object_index % 3) * DEPTH_STEP


def point_in_polygon(x: float, y: float, polygon: Sequence[ScenePoint]) -> bool:
    """Ray casting; horizontal edges never count as crossings."""
    inside = False
    n = len(polygon)
    j = n - 1
    for i in range(n):
        xi, yi = polygon[i].x, polygon[i].y
        xj, yj = polygon[j].x, polygon[j].y
        if (yi > y) != (yj > y):
            cross_x = (xj - xi) * (y - yi) / (yj - yi) + xi
            if x < cross_x:
                inside = not inside
        j = i
    return inside


def find_nearest_anchor(
    scene: Sequence[SceneObject], x: float, y: float, scene_version: int = 0
) -> Optional[AnchorRef]:
    """Brute-force nearest vertex over every polyline of every object."""
    best = None
    best_dist = math.inf
    for oi, obj in enumerate(scene):
        for pi, polyline in enumerate(obj.polylines):
            for pt, p in enumerate(polyline):
                dist = math.hypot(x - p.x, y - p.y)
                if dist < best_dist:
                    best_dist = dist
                    best = (oi, pi, pt, p)

    if best is None:
        return None

    oi, pi, pt, p = best
    return AnchorRef(
        object_index=oi,
        polyline_index=pi,
        point_index=pt,
        base_x=p.x,
        base_y=p.y,
        offset_x=x - p.x,
        offset_y=y - p.y,
        depth=depth_for(oi),
        scene_version=scene_version,
    )


def compute_occlusion_level(anchor: Optional[AnchorRef], x: float, y: float, scene: Sequence[SceneObject]) -> float:
    """
    0..1 occlusion for an anchored entity at (x, y): zero unless the point lies
    inside one of the owning object's polygons, then scaled by depth
    (depth <= 1 -> 0, depth >= 2 -> 1).
    """
    if anchor is None or not (0 <= anchor.object_index < len(scene)):
        return 0.0

    obj = scene[anchor.object_index]
    for polygon in obj.polylines:
        if len(polygon) < 3:
            continue
        if point_in_polygon(x, y, polygon):
            depth = anchor.depth or 1.0
            return max(0.0, min(1.0, (depth - 1.0) / 1.0))
    return 0.0
