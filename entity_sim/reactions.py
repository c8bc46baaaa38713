# entity_sim/reactions.py
from fusion_engine.fusion_config import ReactionConfig


def compute_mouth_open(base_mouth: float, emf_reading: float, cfg: ReactionConfig) -> float:
    mouth_open_target = 0.0
    if emf_reading >= cfg.emf_shock_threshold:
        mouth_open_target = cfg.shock_mouth_open
    # Blend base mouth with target (80% target influence)
    return max(0.0, min(1.0, base_mouth + mouth_open_target * 0.8))


def compute_agitation(emf_reading: float, base_agitation: float, cfg: ReactionConfig) -> float:
    if emf_reading >= cfg.emf_shock_threshold:
        return base_agitation + cfg.shock_limb_boost
    return base_agitation
