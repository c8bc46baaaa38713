import cv2
import numpy as np


def to_luminance(frame):
    """Channel-average luminance as float32; gray frames pass through."""
    frame = np.asarray(frame)
    if frame.ndim == 2:
        return frame.astype("float32")
    if frame.ndim == 3 and frame.shape[2] >= 3:
        return frame[:, :, :3].astype("float32").mean(axis=2)
    raise ValueError(f"unsupported frame shape {frame.shape}")


def compute_frame_metrics(frame, width=160, height=120, edge_threshold=30.0):
    """
    Downsample a frame and measure it.
    Edge density counts interior pixels whose right or bottom neighbour
    differs in luminance by more than edge_threshold.
    """
    frame = np.asarray(frame)
    if frame.size == 0:
        raise ValueError("empty frame")

    small = cv2.resize(frame, (width, height), interpolation=cv2.INTER_AREA)
    lum = to_luminance(small)

    core = lum[1:-1, 1:-1]
    right = lum[1:-1, 2:]
    bottom = lum[2:, 1:-1]
    edges = (np.abs(core - right) > edge_threshold) | (np.abs(core - bottom) > edge_threshold)

    return {
        "brightness": float(np.mean(lum)),
        "edge_density": float(np.mean(edges)),
    }
