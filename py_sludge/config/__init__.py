"""
Configuration modules for world generation and simulation.
"""

from .config import settings, Settings
from .world_presets import get_preset, list_presets, PRESETS

__all__ = ['settings', 'Settings', 'get_preset', 'list_presets', 'PRESETS']
