import asyncio
import random

import pytest

from fusion_engine.fusion_config import EngineConfig
from fusion_engine.sensor_stream_simulator import (
    SyntheticCamera,
    SyntheticScene,
    generate_jerk_motion,
    generate_rest_motion,
)
from necrometer.engine import NecroEngine


@pytest.fixture
def engine():
    engine = NecroEngine(
        rng=random.Random(77),
        camera=SyntheticCamera(seed=4),
        scene=SyntheticScene(),
    )
    engine.refresh_scene()
    engine.sync_detections([{"id": 1}, {"id": 2}, {"id": 3, "contained": True}])
    return engine


def test_start_registers_every_loop(engine):
    engine.start()
    engine.scheduler.advance(2000)

    assert len(engine.fusion.history()) == 20
    assert engine.noise.frame_count == 4
    assert len(engine.field_log.entries) == 1
    assert engine.gate.attention_level == pytest.approx(0.016)


def test_no_emissions_after_stop(engine):
    readings = []
    engine.fusion.register_callback(readings.append)
    engine.start()
    for step in range(50):
        engine.ingest(generate_jerk_motion(step))
        engine.scheduler.advance(100)

    engine.stop()
    frozen = (
        len(readings),
        engine.field_reading(),
        len(engine.field_log.entries),
        engine.gate.attention_level,
        engine.noise.visual_noise_score(),
        [(e.x, e.y) for e in engine.entities()],
    )

    engine.scheduler.advance(600000)
    assert (
        len(readings),
        engine.field_reading(),
        len(engine.field_log.entries),
        engine.gate.attention_level,
        engine.noise.visual_noise_score(),
        [(e.x, e.y) for e in engine.entities()],
    ) == frozen
    assert engine.scheduler.pending() == 0
    assert engine.current_anomaly() is None


def test_missing_camera_gives_neutral_noise():
    engine = NecroEngine(rng=random.Random(1))
    engine.start()
    engine.scheduler.advance(500)
    assert engine.noise.visual_noise_score() == 0.25


def test_ingest_accepts_plain_dicts(engine):
    engine.ingest({"kind": "motion", "x": 0.0, "y": 0.0, "z": 14.8})
    assert engine.stability_score() == pytest.approx(0.5)


def test_snapshot_reports_outputs(engine):
    engine.start()
    engine.ingest(generate_rest_motion(random.Random(2)))
    engine.scheduler.advance(1000)

    snap = engine.snapshot()
    assert snap["timestamp"] == 1000.0
    assert 0.0 <= snap["field_reading"] <= 100.0
    assert snap["status"] == engine.field_status()
    assert snap["current_anomaly"] is None
    assert [e["id"] for e in snap["entities"]] == [1, 2, 3]
    assert snap["magnetometer_active"] is False
    assert engine.anomaly_log() == []


def test_sensor_permission_marks_denied_kinds(engine, capsys):
    granted = asyncio.run(engine.request_sensor_access(lambda: ["motion"]))
    assert granted == ["motion"]
    out = capsys.readouterr().out
    assert "orientation unavailable" in out
    assert "magnetometer unavailable" in out


def test_async_permission_request_that_fails_grants_nothing(engine):
    async def requester():
        raise PermissionError("denied")

    assert asyncio.run(engine.request_sensor_access(requester)) == []


def test_refresh_scene_without_provider_is_a_no_op():
    engine = NecroEngine(rng=random.Random(1))
    engine.refresh_scene()
    assert engine.simulator.scene_version == 0


def test_config_summary_lists_tick_intervals():
    summary = EngineConfig().summary()
    assert summary["fusion_tick_ms"] == 100.0
    assert summary["gate_tick_ms"] == 500.0
    assert summary["cooldown_ms"] == [90000.0, 180000.0]
