# motion_ai/noise.py
import inspect
from typing import Optional

import numpy as np

from fusion_engine.fusion_config import NoiseConfig
from fusion_engine.utils.preprocess import clamp
from motion_ai.metrics import compute_frame_metrics


class VisualNoiseEstimator:
    """
    Turns periodic low-res camera frames into a 0..1 visual noise score
    from brightness and edge-density fluctuation between frames.
    A missing frame reports the neutral score instead of failing.
    """

    def __init__(self, config: Optional[NoiseConfig] = None):
        self.config = config or NoiseConfig()
        self.score = 0.0
        self.prev_brightness = None
        self.prev_edge_density = None
        self.frame_count = 0
        self._generation = 0
        self._warned = False

    def visual_noise_score(self) -> float:
        return self.score

    def analyze_frame(self, frame):
        cfg = self.config
        if frame is None:
            self._fallback("no frame from camera")
            return

        try:
            metrics = compute_frame_metrics(
                frame, cfg.frame_width, cfg.frame_height, cfg.edge_threshold
            )
        except (ValueError, TypeError) as e:
            self._fallback(f"unreadable frame ({e})")
            return

        brightness_change = 0.0
        edge_fluctuation = 0.0
        if self.prev_brightness is not None:
            brightness_change = abs(metrics["brightness"] - self.prev_brightness) / 255.0
        if self.prev_edge_density is not None:
            edge_fluctuation = abs(metrics["edge_density"] - self.prev_edge_density)

        self.prev_brightness = metrics["brightness"]
        self.prev_edge_density = metrics["edge_density"]

        # Higher score = more chaos/movement
        raw = clamp(
            (brightness_change * cfg.brightness_weight + edge_fluctuation * cfg.edge_weight) / 2.0,
            0.0,
            1.0,
        )
        self.score = clamp(self.score * cfg.smoothing + raw * (1.0 - cfg.smoothing), 0.0, 1.0)
        self.frame_count += 1

    def _fallback(self, reason):
        self.score = self.config.neutral_score
        if not self._warned:
            self._warned = True
            print(f"[VisualNoise] {reason}; reporting neutral score {self.config.neutral_score}.")

    # ------------------------------------------------------------
    def request_frame(self, provider):
        """
        Pull one frame from the camera provider.
        Synchronous providers are analyzed immediately and None is returned;
        an awaitable result comes back as a coroutine for the scheduler to run.
        """
        try:
            result = provider.capture_low_res_frame()
        except Exception as e:
            self._fallback(f"capture failed ({e})")
            return None

        if inspect.isawaitable(result):
            return self._await_frame(result, self._generation)

        self.analyze_frame(result)
        return None

    async def _await_frame(self, pending, generation):
        try:
            frame = await pending
        except Exception as e:
            frame = None
            print(f"[VisualNoise] capture failed ({e})")
        if generation != self._generation:
            # stopped while the capture was in flight
            return
        self.analyze_frame(frame)

    def stop(self):
        self._generation += 1

    def reset(self):
        self.stop()
        self.score = 0.0
        self.prev_brightness = None
        self.prev_edge_density = None
        self.frame_count = 0


def solid_frame(value, w=160, h=120):
    return np.full((h, w, 3), value, dtype=np.uint8)
