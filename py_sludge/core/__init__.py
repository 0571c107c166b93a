"""
Core world simulation functionality.
"""

from .grid import DoubleBuffer, validate_dimensions
from .terrain_generator import CellType, TerrainGenerator, TerrainMap, TerrainOptions, generate_terrain
from .fluid_solver import FluidOptions, FluidSolver
from .snapshot_codec import SnapshotDecodeError, encode_snapshot, decode_snapshot, rle_encode, rle_decode
from .world import World, WorldConfig, JoinPayload

__all__ = ['DoubleBuffer', 'validate_dimensions',
           'CellType', 'TerrainGenerator', 'TerrainMap', 'TerrainOptions', 'generate_terrain',
           'FluidOptions', 'FluidSolver',
           'SnapshotDecodeError', 'encode_snapshot', 'decode_snapshot', 'rle_encode', 'rle_decode',
           'World', 'WorldConfig', 'JoinPayload']
