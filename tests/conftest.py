import random

import pytest

from fusion_engine.feature_schema import Orientation
from fusion_engine.sensor_stream_simulator import demo_scene_objects


class ScriptedRandom:
    """random.Random stand-in that always draws the same unit value."""

    def __init__(self, value=0.5):
        self.value = value

    def random(self):
        return self.value

    def uniform(self, a, b):
        return a + (b - a) * self.value

    def choice(self, seq):
        return seq[0]


class FusionStub:
    """Snapshot-read side of SignalFusion with fixed values."""

    def __init__(self, stability=0.9, deviations=2, reading=0.0, orientation=None):
        self.stability = stability
        self.deviations = deviations
        self.reading = reading
        self._orientation = orientation

    def stability_score(self):
        return self.stability

    def deviation_count(self):
        return self.deviations

    def field_reading(self):
        return self.reading

    def orientation(self):
        return self._orientation


class NoiseStub:
    def __init__(self, score=0.3):
        self.score = score

    def visual_noise_score(self):
        return self.score


@pytest.fixture
def scripted_rng():
    return ScriptedRandom(0.5)


@pytest.fixture
def seeded_rng():
    return random.Random(1234)


@pytest.fixture
def open_gates():
    return FusionStub(stability=0.9, deviations=2), NoiseStub(0.3)


@pytest.fixture
def still_fusion():
    return FusionStub(reading=0.0, orientation=None)


@pytest.fixture
def tilted_fusion():
    return FusionStub(reading=100.0, orientation=Orientation(alpha=0.0, beta=90.0, gamma=90.0))


@pytest.fixture
def demo_scene():
    return demo_scene_objects()
