import random

import pytest

from anomaly_engine.gate import ANOMALY_TYPES, NOTES, AnomalyGate, GateState
from conftest import FusionStub, NoiseStub, ScriptedRandom
from fusion_engine.feature_schema import Position
from necrometer.scheduler import Scheduler


def make_gate(fusion, noise, rng):
    return AnomalyGate(Scheduler(), fusion, noise, rng=rng)


def test_trigger_rate_converges_to_three_and_a_half_percent(open_gates):
    fusion, noise = open_gates
    gate = make_gate(fusion, noise, random.Random(20240917))
    gate.attention_level = 1.0

    trials = 20000
    hits = sum(1 for _ in range(trials) if gate.check_gates(0.0).passed)
    assert hits / trials == pytest.approx(0.035, abs=0.005)


def test_gates_fail_in_order(open_gates):
    fusion, noise = open_gates
    gate = make_gate(fusion, noise, ScriptedRandom(0.0))

    gate.cooldown_until = 1000.0
    assert gate.check_gates(500.0).failed == "cooldown"
    gate.cooldown_until = 0.0

    gate.attention_level = 0.5
    assert gate.check_gates(0.0).failed == "attention"
    gate.attention_level = 1.0

    fusion.stability = 0.7
    assert gate.check_gates(0.0).failed == "stability"
    fusion.stability = 0.9

    fusion.deviations = 1
    assert gate.check_gates(0.0).failed == "deviation"
    fusion.deviations = 3

    for score in (0.05, 0.5):
        noise.score = score
        assert gate.check_gates(0.0).failed == "visual_noise"
    noise.score = 0.45

    assert gate.check_gates(0.0).passed

    gate.rng = ScriptedRandom(0.99)
    assert gate.check_gates(0.0).failed == "chance"


def test_attention_accumulates_only_when_idle():
    gate = make_gate(FusionStub(stability=0.0), NoiseStub(), ScriptedRandom(0.0))
    for _ in range(10):
        gate.tick()
    assert gate.attention_level == pytest.approx(0.04)

    gate.state = GateState.VISIBLE
    gate.tick()
    assert gate.attention_level == pytest.approx(0.04)


def test_lifecycle_spacing_and_positions(open_gates):
    fusion, noise = open_gates
    scheduler = Scheduler()
    gate = AnomalyGate(scheduler, fusion, noise, rng=ScriptedRandom(0.0))
    gate.attention_level = 1.0

    acked = []
    gate.register_callback(lambda event: acked.append((scheduler.now(), event)))
    gate.start()

    visible_ids = set()
    for _ in range(20000):
        scheduler.advance(10)
        current = gate.current_anomaly()
        if current is not None:
            visible_ids.add(current.id)
            # nothing else is in flight while one is shown
            assert gate.pending is current

    assert len(acked) >= 2
    assert visible_ids == {event.id for _, event in acked}

    first_ack, first = acked[0]
    _, second = acked[1]
    assert first.timestamp == 500.0
    assert first_ack == pytest.approx(500.0 + 220.0 + 700.0 + 350.0)
    assert second.timestamp - first_ack >= 90000.0

    assert first.type == ANOMALY_TYPES[0]
    assert first.note == NOTES[0]
    assert first.position == Position(x=20.0, y=20.0)
    # the only draw lands on the previous spot, so the far corner is used
    assert second.position == Position(x=80.0, y=80.0)

    assert [e["id"] for e in gate.export_log()] == [second.id, first.id]


def test_acknowledge_drops_attention_with_floor(open_gates):
    fusion, noise = open_gates
    scheduler = Scheduler()
    gate = AnomalyGate(scheduler, fusion, noise, rng=ScriptedRandom(0.0))
    gate.attention_level = 0.7
    gate.start()
    scheduler.advance(2000)

    assert len(gate.log) == 1
    assert gate.attention_level == pytest.approx(0.1)
    assert gate.cooldown_until == pytest.approx(1770.0 + 90000.0)
    assert gate.state is GateState.IDLE


def test_consecutive_positions_never_crowd(open_gates):
    fusion, noise = open_gates
    gate = make_gate(fusion, noise, random.Random(99))
    previous = None
    for _ in range(500):
        position = gate._pick_position()
        if previous is not None:
            assert not (abs(position.x - previous.x) < 20 and abs(position.y - previous.y) < 20)
        gate.last_position = position
        previous = position


def test_stop_cancels_staged_reveal(open_gates):
    fusion, noise = open_gates
    scheduler = Scheduler()
    gate = AnomalyGate(scheduler, fusion, noise, rng=ScriptedRandom(0.0))
    gate.attention_level = 1.0
    acked = []
    gate.register_callback(acked.append)
    gate.start()

    scheduler.advance(600)
    assert gate.state is GateState.PENDING_REVEAL

    gate.stop()
    scheduler.advance(500000)
    assert acked == []
    assert gate.current_anomaly() is None
    assert gate.log == []
    assert scheduler.pending() == 0


@pytest.mark.parametrize(
    "stop_at, state",
    [(800, GateState.VISIBLE), (1500, GateState.PENDING_ACK)],
)
def test_stop_cancels_later_stages(open_gates, stop_at, state):
    fusion, noise = open_gates
    scheduler = Scheduler()
    gate = AnomalyGate(scheduler, fusion, noise, rng=ScriptedRandom(0.0))
    gate.attention_level = 1.0
    acked = []
    gate.register_callback(acked.append)
    gate.start()

    scheduler.advance(stop_at)
    assert gate.state is state

    gate.stop()
    scheduler.advance(500000)
    assert acked == []
    assert gate.current_anomaly() is None
    assert gate.state is GateState.IDLE
    assert gate.log == []
    assert scheduler.pending() == 0
