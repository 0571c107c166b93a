"""
Named terrain presets.

Each preset is a set of overrides on top of the default TerrainOptions.
"""

from dataclasses import replace
from typing import Any, Dict, List

from ..core.terrain_generator import TerrainOptions

PRESETS: Dict[str, Dict[str, Any]] = {
    "default": {},
    # Tight, tall city core with little open ground
    "downtown": {
        "archetype_weights": (0.4, 0.1, 0.5),
        "core_density": 0.8,
        "edge_density": 0.45,
        "boundary_radius_fraction": 0.95,
        "lake_threshold": 0.92,
    },
    # Low, spread out ruins with more industry and wider streets
    "sprawl": {
        "archetype_weights": (0.55, 0.4, 0.05),
        "street_width": 3,
        "core_density": 0.5,
        "edge_density": 0.2,
        "highway_count": 6,
        "center_park_radius": 5.0,
    },
    # Waterlogged city: extra canals, lakes and water spread
    "flooded": {
        "canal_count": 4,
        "canal_steps": 200,
        "lake_threshold": 0.6,
        "lake_min_distance_fraction": 0.25,
        "stagnant_water_threshold": 0.8,
        "water_spread_chance": 0.6,
    },
}


def list_presets() -> List[str]:
    return sorted(PRESETS)


def get_preset(name: str) -> TerrainOptions:
    """
    Build TerrainOptions for a named preset.

    Args:
        name: Preset name

    Returns:
        Fresh TerrainOptions instance

    Raises:
        ValueError: If the preset does not exist
    """
    if name not in PRESETS:
        raise ValueError(f"Unknown preset {name!r}. Available: {', '.join(list_presets())}")
    return replace(TerrainOptions(), **PRESETS[name])
