import asyncio

import numpy as np
import pytest

from fusion_engine.sensor_stream_simulator import SyntheticCamera
from motion_ai.metrics import compute_frame_metrics
from motion_ai.noise import VisualNoiseEstimator, solid_frame


def test_missing_frame_reports_neutral_score(capsys):
    estimator = VisualNoiseEstimator()
    estimator.analyze_frame(None)
    estimator.analyze_frame(None)
    assert estimator.visual_noise_score() == 0.25
    assert capsys.readouterr().out.count("[VisualNoise]") == 1


def test_empty_frame_reports_neutral_score():
    estimator = VisualNoiseEstimator()
    estimator.analyze_frame(np.zeros((0, 0), dtype=np.uint8))
    assert estimator.visual_noise_score() == 0.25


def test_first_frame_only_primes():
    estimator = VisualNoiseEstimator()
    estimator.analyze_frame(solid_frame(0))
    assert estimator.visual_noise_score() == 0.0
    assert estimator.prev_brightness == 0.0


def test_brightness_jump_is_smoothed():
    estimator = VisualNoiseEstimator()
    estimator.analyze_frame(solid_frame(0))
    estimator.analyze_frame(solid_frame(255))
    assert estimator.visual_noise_score() == pytest.approx(0.3)

    estimator.analyze_frame(solid_frame(255))
    assert estimator.visual_noise_score() == pytest.approx(0.21)


def test_frame_metrics_on_gray_and_edges():
    flat = compute_frame_metrics(np.full((240, 320), 128, dtype=np.uint8))
    assert flat["brightness"] == pytest.approx(128.0)
    assert flat["edge_density"] == 0.0

    stripes = np.zeros((120, 160), dtype=np.uint8)
    stripes[:, ::2] = 255
    assert compute_frame_metrics(stripes)["edge_density"] == pytest.approx(1.0)


def test_score_stays_in_unit_interval():
    rng = np.random.RandomState(3)
    estimator = VisualNoiseEstimator()
    for _ in range(50):
        estimator.analyze_frame(rng.randint(0, 256, (90, 120, 3)).astype(np.uint8))
        assert 0.0 <= estimator.visual_noise_score() <= 1.0


def test_synthetic_camera_and_unavailable_camera():
    camera = SyntheticCamera(seed=1)
    estimator = VisualNoiseEstimator()
    assert estimator.request_frame(camera) is None
    assert estimator.request_frame(camera) is None
    assert estimator.frame_count == 2
    assert 0.0 <= estimator.visual_noise_score() <= 1.0

    camera.available = False
    estimator.request_frame(camera)
    assert estimator.visual_noise_score() == 0.25


class AsyncCamera:
    def __init__(self, frame):
        self.frame = frame

    async def _capture(self):
        await asyncio.sleep(0)
        return self.frame

    def capture_low_res_frame(self):
        return self._capture()


class BrokenCamera:
    def capture_low_res_frame(self):
        raise RuntimeError("permission denied")


def test_async_capture_is_analyzed_when_awaited():
    estimator = VisualNoiseEstimator()
    pending = estimator.request_frame(AsyncCamera(solid_frame(40)))
    assert pending is not None
    asyncio.run(pending)
    assert estimator.frame_count == 1
    assert estimator.prev_brightness == pytest.approx(40.0)


def test_async_capture_discarded_after_stop():
    estimator = VisualNoiseEstimator()
    pending = estimator.request_frame(AsyncCamera(solid_frame(40)))
    estimator.stop()
    asyncio.run(pending)
    assert estimator.frame_count == 0
    assert estimator.prev_brightness is None


def test_throwing_camera_degrades_to_neutral():
    estimator = VisualNoiseEstimator()
    assert estimator.request_frame(BrokenCamera()) is None
    assert estimator.visual_noise_score() == 0.25
