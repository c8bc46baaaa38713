# entity_sim/__init__.py
from .geometry import AnchorRef, compute_occlusion_level, find_nearest_anchor
from .simulator import EntitySimulator, SimEntity

__all__ = [
    "AnchorRef",
    "compute_occlusion_level",
    "find_nearest_anchor",
    "EntitySimulator",
    "SimEntity",
]
