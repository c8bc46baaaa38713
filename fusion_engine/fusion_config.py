# fusion_engine/fusion_config.py

from pydantic import BaseModel, Field


class FusionConfig(BaseModel):
    """
    Configuration for the signal fusion stage.
    All smoothing rates, window sizes and spike thresholds are defined here.
    """

    # Bounded history of field readings
    history_cap: int = Field(default=120, ge=1)

    # Rolling windows per sensor group (samples at ~10 Hz)
    short_window: int = Field(default=50, ge=1)
    long_window: int = Field(default=300, ge=1)

    # Stability / deviation
    gravity: float = 9.8
    stability_span: float = Field(default=10.0, gt=0)
    deviation_threshold: float = Field(default=0.15, ge=0)

    # Magnetometer model
    baseline_alpha: float = Field(default=0.001, ge=0, le=1)
    magnet_gain: float = 3.0
    reading_smoothing: float = Field(default=0.1, ge=0, le=1)
    jitter_base: float = 0.15
    jitter_per_unit: float = 0.025

    # Decay model (no magnetometer)
    decay: float = Field(default=0.95, ge=0, le=1)
    decay_noise: float = Field(default=0.5, ge=0)
    motion_jerk_threshold: float = 15.0
    motion_spike_gain: float = 3.0
    motion_spike_cap: float = 60.0
    spin_threshold: float = 20.0
    spin_spike_cap: float = 40.0


class MonitorConfig(BaseModel):
    """Status bands and critical detection for the field reading."""

    critical_threshold: float = 90.0
    strong_threshold: float = 95.0
    extreme_threshold: float = 98.0
    detection_cooldown_ms: float = Field(default=10000.0, ge=0)
    reset_level: float = Field(default=20.0, ge=0, le=100)


class NoiseConfig(BaseModel):
    """Visual noise estimation from low-res camera frames."""

    frame_width: int = Field(default=160, ge=3)
    frame_height: int = Field(default=120, ge=3)
    edge_threshold: float = 30.0
    brightness_weight: float = 2.0
    edge_weight: float = 3.0
    smoothing: float = Field(default=0.7, ge=0, le=1)
    neutral_score: float = Field(default=0.25, ge=0, le=1)


class GateConfig(BaseModel):
    """
    Thresholds for the anomaly gate.
    Values are tuned for feel; keep them literal.
    """

    attention_step: float = Field(default=0.004, ge=0)
    attention_threshold: float = Field(default=0.55, ge=0, le=1)
    stability_threshold: float = Field(default=0.72, ge=0, le=1)
    min_deviation_count: int = Field(default=2, ge=0, le=3)
    noise_min: float = Field(default=0.12, ge=0, le=1)
    noise_max: float = Field(default=0.45, ge=0, le=1)
    trigger_probability: float = Field(default=0.035, ge=0, le=1)

    cooldown_min_ms: float = Field(default=90000.0, ge=0)
    cooldown_max_ms: float = Field(default=180000.0, ge=0)
    reveal_min_ms: float = 220.0
    reveal_max_ms: float = 680.0
    ack_min_ms: float = 350.0
    ack_max_ms: float = 650.0

    duration_min_ms: float = 700.0
    duration_max_ms: float = 1100.0
    intensity_min: float = 0.18
    intensity_max: float = 0.42
    position_min: float = 20.0
    position_max: float = 80.0
    min_separation: float = 20.0

    attention_drop: float = 0.65
    attention_floor: float = 0.1


class PhysicsConfig(BaseModel):
    """Per-frame forces and limits for simulated entities."""

    gravity_tilt: float = 0.00005
    downward_drift: float = 0.00002
    friction: float = Field(default=0.97, ge=0, le=1)
    emf_agitation: float = 0.00015
    max_speed: float = Field(default=0.2, gt=0)
    scene_repulsion: float = 0.0001
    scene_repulsion_radius: float = Field(default=12.0, gt=0)
    repulsion_cap: float = 0.0005
    anchor_spring: float = 0.0008
    anchor_damping: float = Field(default=0.995, ge=0, le=1)
    contained_damping: float = Field(default=0.9, ge=0, le=1)
    parallax: float = 1.5  # percent units at full tilt, divided by depth

    near_object_chance: float = Field(default=0.7, ge=0, le=1)
    spawn_jitter: float = 4.0
    exclusion_half_size: float = 15.0

    focal_x: float = 50.0
    focal_y: float = 45.0
    target_radius: float = 15.0
    interaction_cooldown_ms: float = 500.0
    occluded_threshold: float = 0.25


class ReactionConfig(BaseModel):
    """Shock reaction of entities to a high field reading."""

    emf_shock_threshold: float = 85.0
    shock_mouth_open: float = Field(default=0.6, ge=0, le=1)
    shock_limb_boost: float = 0.5


class EngineConfig(BaseModel):
    """
    Top-level configuration for the whole engine.
    Tick intervals are in milliseconds.
    """

    fusion_tick_ms: float = Field(default=100.0, gt=0)
    noise_tick_ms: float = Field(default=500.0, gt=0)
    gate_tick_ms: float = Field(default=500.0, gt=0)
    frame_ms: float = Field(default=16.0, gt=0)
    field_log_ms: float = Field(default=2000.0, gt=0)

    fusion: FusionConfig = Field(default_factory=FusionConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    noise: NoiseConfig = Field(default_factory=NoiseConfig)
    gate: GateConfig = Field(default_factory=GateConfig)
    physics: PhysicsConfig = Field(default_factory=PhysicsConfig)
    reactions: ReactionConfig = Field(default_factory=ReactionConfig)

    def summary(self):
        """Returns a pretty-print summary for debugging."""
        return {
            "fusion_tick_ms": self.fusion_tick_ms,
            "noise_tick_ms": self.noise_tick_ms,
            "gate_tick_ms": self.gate_tick_ms,
            "frame_ms": self.frame_ms,
            "attention_threshold": self.gate.attention_threshold,
            "stability_threshold": self.gate.stability_threshold,
            "trigger_probability": self.gate.trigger_probability,
            "cooldown_ms": [self.gate.cooldown_min_ms, self.gate.cooldown_max_ms],
            "max_speed": self.physics.max_speed,
        }
