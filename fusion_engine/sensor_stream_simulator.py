# fusion_engine/sensor_stream_simulator.py

import random
import time

import numpy as np

from fusion_engine.feature_schema import SceneObject, ScenePoint, SensorSample


def generate_rest_motion(rng=random):
    """Phone lying still: gravity on z plus a little hand tremor."""
    return SensorSample(
        kind="motion",
        x=round(rng.uniform(-0.05, 0.05), 3),
        y=round(rng.uniform(-0.05, 0.05), 3),
        z=round(9.8 + rng.uniform(-0.05, 0.05), 3),
    )


def generate_jerk_motion(step, amplitude=12.0):
    """Alternating shake; every consecutive pair differs by well over the jerk threshold."""
    sign = 1.0 if step % 2 == 0 else -1.0
    return SensorSample(kind="motion", x=sign * amplitude, y=-sign * amplitude, z=9.8)


def generate_orientation(step, spin_rate=0.0, beta=0.0, gamma=0.0):
    return SensorSample(
        kind="orientation",
        alpha=(step * spin_rate) % 360.0,
        beta=beta,
        gamma=gamma,
    )


def generate_magnetometer(rng=random, ambient=45.0, disturbance=0.0):
    """Ambient field in uT with optional disturbance on top."""
    return SensorSample(
        kind="magnetometer",
        magnitude=round(ambient + disturbance + rng.uniform(-0.3, 0.3), 3),
    )


class SyntheticCamera:
    """
    Stands in for the camera collaborator: small noisy frames whose
    brightness wanders a little each capture.
    Set `available = False` to simulate a missing camera / permission.
    """

    def __init__(self, w=160, h=120, seed=0, flicker=8.0):
        self.w = w
        self.h = h
        self.flicker = flicker
        self.available = True
        self._rng = np.random.RandomState(seed)
        self._base = self._rng.randint(40, 200, (h, w, 3)).astype("float32")

    def capture_low_res_frame(self):
        if not self.available:
            return None
        shift = self._rng.uniform(-self.flicker, self.flicker)
        noise = self._rng.normal(0.0, 4.0, self._base.shape)
        frame = np.clip(self._base + shift + noise, 0, 255)
        return frame.astype(np.uint8)


class SyntheticScene:
    """Scene-analysis stand-in returning a fixed list of outlines."""

    def __init__(self, objects=None):
        self.objects = objects if objects is not None else demo_scene_objects()

    def get_scene_objects(self):
        return list(self.objects)


def rectangle(name, x1, y1, x2, y2):
    return SceneObject(
        name=name,
        polylines=[[
            ScenePoint(x=x1, y=y1),
            ScenePoint(x=x2, y=y1),
            ScenePoint(x=x2, y=y2),
            ScenePoint(x=x1, y=y2),
        ]],
    )


def demo_scene_objects():
    return [
        rectangle("doorway", 10, 20, 30, 90),
        rectangle("cabinet", 60, 50, 85, 85),
        rectangle("window", 40, 5, 70, 25),
    ]


def run_stream():
    from necrometer.engine import NecroEngine

    print("\n=== Necrometer LIVE Field Stream ===\n")

    engine = NecroEngine(camera=SyntheticCamera(), scene=SyntheticScene())
    engine.start()
    engine.refresh_scene()
    engine.sync_detections([{"id": 1}, {"id": 2}])

    step = 0
    while True:
        engine.ingest(generate_rest_motion())
        engine.ingest(generate_orientation(step))
        engine.ingest(generate_magnetometer(disturbance=20.0 if step % 100 > 80 else 0.0))
        engine.scheduler.advance(100)
        step += 1

        if step % 10 == 0:
            snap = engine.snapshot()
            print("\n-----------------------------------------")
            print("FIELD:", round(snap["field_reading"], 2), "-", snap["status"])
            print("STABILITY:", round(snap["stability_score"], 3), "DEVIATIONS:", snap["deviation_count"])
            print("VISUAL NOISE:", round(snap["visual_noise_score"], 3))
            print("ATTENTION:", round(snap["attention_level"], 3), "ANOMALY:", snap["current_anomaly"])
            print("-----------------------------------------")

        time.sleep(0.1)


if __name__ == "__main__":
    run_stream()
