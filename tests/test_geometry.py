import pytest

from entity_sim.geometry import (
    AnchorRef,
    compute_occlusion_level,
    depth_for,
    find_nearest_anchor,
    point_in_polygon,
)
from entity_sim.reactions import compute_agitation, compute_mouth_open
from fusion_engine.feature_schema import SceneObject, ScenePoint
from fusion_engine.fusion_config import ReactionConfig
from fusion_engine.sensor_stream_simulator import rectangle


def anchor_into(object_index, depth):
    return AnchorRef(
        object_index=object_index,
        polyline_index=0,
        point_index=0,
        base_x=10.0,
        base_y=10.0,
        offset_x=0.0,
        offset_y=0.0,
        depth=depth,
    )


def test_point_in_polygon():
    square = rectangle("box", 10, 10, 30, 30).polylines[0]
    assert point_in_polygon(20, 20, square)
    assert not point_in_polygon(40, 20, square)
    assert not point_in_polygon(20, 5, square)


def test_depth_cycles_per_object_index():
    assert [depth_for(i) for i in range(4)] == pytest.approx([1.0, 1.45, 1.9, 1.0])


def test_occlusion_scales_with_depth():
    scene = [rectangle("box", 10, 10, 30, 30)]
    anchor = anchor_into(0, 1.5)
    assert compute_occlusion_level(anchor, 20, 20, scene) == pytest.approx(0.5, abs=0.05)
    assert compute_occlusion_level(anchor, 50, 50, scene) == 0.0

    assert compute_occlusion_level(anchor_into(0, 1.0), 20, 20, scene) == 0.0
    assert compute_occlusion_level(anchor_into(0, 2.5), 20, 20, scene) == 1.0


def test_occlusion_without_anchor_or_with_stale_index():
    scene = [rectangle("box", 10, 10, 30, 30)]
    assert compute_occlusion_level(None, 20, 20, scene) == 0.0
    assert compute_occlusion_level(anchor_into(3, 1.9), 20, 20, scene) == 0.0


def test_degenerate_polylines_are_skipped():
    line = SceneObject(
        name="cable",
        polylines=[[], [ScenePoint(x=0, y=0), ScenePoint(x=40, y=40)]],
    )
    assert compute_occlusion_level(anchor_into(0, 1.9), 20, 20, [line]) == 0.0

    anchor = find_nearest_anchor([line], 38, 41, scene_version=4)
    assert (anchor.polyline_index, anchor.point_index) == (1, 1)
    assert anchor.scene_version == 4


def test_nearest_anchor_records_offset_and_depth():
    scene = [rectangle("doorway", 10, 20, 30, 90), rectangle("cabinet", 60, 50, 85, 85)]
    anchor = find_nearest_anchor(scene, 58, 47)
    assert anchor.object_index == 1
    assert (anchor.base_x, anchor.base_y) == (60, 50)
    assert (anchor.offset_x, anchor.offset_y) == (-2, -3)
    assert anchor.target == (58, 47)
    assert anchor.depth == pytest.approx(1.45)

    assert find_nearest_anchor([], 50, 50) is None


def test_shock_reaction():
    cfg = ReactionConfig()
    assert compute_mouth_open(0.1, 50.0, cfg) == pytest.approx(0.1)
    assert compute_mouth_open(0.1, 90.0, cfg) == pytest.approx(0.58)
    assert compute_mouth_open(0.9, 90.0, cfg) == 1.0
    assert compute_agitation(90.0, 0.2, cfg) == pytest.approx(0.7)
    assert compute_agitation(10.0, 0.2, cfg) == pytest.approx(0.2)
