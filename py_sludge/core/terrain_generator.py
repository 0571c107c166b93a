"""
City-ruin terrain generation.

This module builds the static map a world is played on: a categorical grid
of cell types plus a flow field carved along canals. Generation runs once
per world and is a sequence of passes, each refining the previous one:

- Radial city boundary with noisy edge and optional central park
- Highway spokes and a circumferential ring road
- Block street grid with gated super-blocks and per-block archetypes
- Block interior fill (standard, industrial, skyscraper) and lakes
- Canal carving with flow direction recording
- Cellular-automaton decay/consistency cleanup

All passes are vectorized with NumPy over the full grid except canal
carving, which is a short sequential walk.
"""

import math
from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Dict, Optional, Tuple

import numpy as np
import structlog
from scipy import ndimage

from .grid import NEIGHBOR_OFFSETS_8, in_bounds, to_index, validate_dimensions
from ..utils.random import Seed, create_rng

logger = structlog.get_logger()


class CellType(IntEnum):
    """Terrain categories. Values are the wire encoding (one byte per cell)."""

    DIRT = 0
    WALL = 1
    ROAD = 2
    PARK = 3
    WATER = 4
    CANAL = 5
    TANK = 6
    SKYSCRAPER = 7


class BlockArchetype(IntEnum):
    """Fill style assigned to each city block."""

    STANDARD = 0
    INDUSTRIAL = 1
    SKYSCRAPER = 2


STRUCTURAL_TYPES = (CellType.WALL, CellType.TANK, CellType.SKYSCRAPER)
WATER_TYPES = (CellType.WATER, CellType.CANAL)

_STRUCTURAL_CODES = np.array([int(t) for t in STRUCTURAL_TYPES], dtype=np.uint8)
_WATER_CODES = np.array([int(t) for t in WATER_TYPES], dtype=np.uint8)
_MAX_CODE = max(int(t) for t in CellType)

_MASK32 = np.uint64(0xFFFFFFFF)
_TWO_PI = 2.0 * math.pi


@dataclass(frozen=True, eq=False)
class TerrainMap:
    """
    Immutable terrain of one world.

    ``cells`` is a flat uint8 array of ``width * height`` category codes and
    ``flow`` a float32 array of shape ``(width * height, 2)`` holding the
    (x, y) flow direction of each cell, zero everywhere except canals.
    Both arrays are copied on construction and made read-only, so a map can
    be shared between the solver and the broadcaster without locking.
    """

    width: int
    height: int
    cells: np.ndarray
    flow: np.ndarray
    seed: Optional[Seed] = None

    def __post_init__(self):
        width, height = validate_dimensions(self.width, self.height)
        size = width * height

        cells = np.array(self.cells, dtype=np.uint8)
        if cells.size != size:
            raise ValueError(
                f"Terrain has {cells.size} cells, expected {size} ({width}x{height})"
            )
        cells = cells.reshape(size)
        if cells.max() > _MAX_CODE:
            raise ValueError(f"Unknown terrain category {int(cells.max())}")

        flow = np.array(self.flow, dtype=np.float32)
        if flow.size != size * 2:
            raise ValueError(
                f"Flow field has {flow.size} values, expected {size * 2} ({width}x{height}x2)"
            )
        flow = flow.reshape(size, 2)

        cells.setflags(write=False)
        flow.setflags(write=False)
        object.__setattr__(self, "width", width)
        object.__setattr__(self, "height", height)
        object.__setattr__(self, "cells", cells)
        object.__setattr__(self, "flow", flow)

    @property
    def size(self) -> int:
        return self.width * self.height

    def index(self, x: int, y: int) -> int:
        if not in_bounds(x, y, self.width, self.height):
            raise IndexError(f"Cell ({x}, {y}) outside {self.width}x{self.height} terrain")
        return to_index(x, y, self.width)

    def cell_at(self, x: int, y: int) -> CellType:
        return CellType(int(self.cells[self.index(x, y)]))

    def flow_at(self, x: int, y: int) -> Tuple[float, float]:
        fx, fy = self.flow[self.index(x, y)]
        return float(fx), float(fy)

    def grid(self) -> np.ndarray:
        """Read-only (height, width) view of the category grid."""
        return self.cells.reshape(self.height, self.width)

    def cells_bytes(self) -> bytes:
        """Row-major category bytes as shipped to newly joined observers."""
        return self.cells.tobytes()

    def blocked_mask(self) -> np.ndarray:
        """Flat boolean mask of structural cells that fluid cannot enter."""
        return np.isin(self.cells, _STRUCTURAL_CODES)

    def category_counts(self) -> Dict[str, int]:
        counts = np.bincount(self.cells, minlength=len(CellType))
        return {t.name.lower(): int(counts[t]) for t in CellType}


@dataclass
class TerrainOptions:
    """Tuning constants for terrain generation."""

    # City grid
    block_size: int = 12  # Cells per block side
    street_width: int = 2  # Street band at the low edge of each block
    street_jitter: int = 1  # Extra street width drawn per block in [0, jitter]
    street_gate_chance: float = 0.2  # Chance a block drops its street on one axis
    archetype_weights: Tuple[float, float, float] = (0.6, 0.2, 0.2)  # standard, industrial, skyscraper

    # City boundary
    boundary_radius_fraction: float = 0.9  # Of half the shorter map side
    boundary_noise_primary: float = 0.08
    boundary_harmonic_primary: int = 3
    boundary_noise_secondary: float = 0.04
    boundary_harmonic_secondary: int = 7
    outskirts_wall_chance: float = 0.02  # Isolated rubble walls outside the city

    # Central park
    reserve_center_park: bool = True
    center_park_radius: float = 8.0

    # Highways
    highway_count: int = 4
    highway_width: float = 1.5  # Half-width in cells before the angular scaling
    highway_tightness: float = 1.0
    highway_curvature: float = 0.004  # Max angular drift (radians) per cell of distance
    highway_angle_jitter: float = 0.2  # Spoke angle deviation from even spacing
    ring_radius_fraction: float = 0.55  # Of the city radius
    ring_width: float = 1.0
    ring_noise: float = 0.06
    ring_harmonic: int = 5

    # Standard blocks
    core_density: float = 0.7  # Wall density threshold at the center
    edge_density: float = 0.3  # Wall density threshold at the boundary
    noise_scale: float = 2.0  # Lattice spacing of the density hash
    pocket_park_chance: float = 0.1
    stagnant_water_frequency: float = 0.21
    stagnant_water_threshold: float = 0.9

    # Industrial blocks
    tank_radius: float = 2.5
    industrial_debris_chance: float = 0.2

    # Skyscraper blocks
    skyscraper_fill: float = 0.8

    # Lakes
    lake_frequency: float = 0.09
    lake_threshold: float = 0.8
    lake_min_distance_fraction: float = 0.4  # Of the city radius

    # Canals
    canal_count: int = 2
    canal_steps: int = 150
    canal_speed: float = 1.0
    canal_wiggle: float = 0.6  # Amplitude of the heading wiggle in radians
    canal_wiggle_frequency: float = 0.05
    canal_center_start_chance: float = 0.5
    canal_heading_jitter: float = 0.4

    # Decay pass
    decay_iterations: int = 2
    park_spread_chance: float = 0.3
    water_spread_chance: float = 0.4

    def __post_init__(self):
        if self.block_size <= 0:
            raise ValueError(f"block_size must be positive, got {self.block_size}")
        if self.street_width < 0 or self.street_jitter < 0:
            raise ValueError("street_width and street_jitter must be non-negative")
        weights = tuple(self.archetype_weights)
        if len(weights) != len(BlockArchetype) or min(weights) < 0 or sum(weights) <= 0:
            raise ValueError(f"archetype_weights must be 3 non-negative values, got {weights}")
        if self.highway_count < 0 or self.canal_count < 0 or self.canal_steps < 0:
            raise ValueError("highway_count, canal_count and canal_steps must be non-negative")
        if self.decay_iterations < 0:
            raise ValueError(f"decay_iterations must be non-negative, got {self.decay_iterations}")


def _wrap_angle(angle: np.ndarray) -> np.ndarray:
    """Wrap angles into [-pi, pi)."""
    return np.mod(angle + math.pi, _TWO_PI) - math.pi


def _hash2d(ix: np.ndarray, iy: np.ndarray, salt: int) -> np.ndarray:
    """Integer hash of lattice coordinates mapped to [0, 1)."""
    h = (
        ix.astype(np.uint64) * np.uint64(374761393)
        + iy.astype(np.uint64) * np.uint64(668265263)
        + np.uint64(salt)
    ) & _MASK32
    h = ((h ^ (h >> np.uint64(13))) * np.uint64(1274126177)) & _MASK32
    h = h ^ (h >> np.uint64(16))
    return h.astype(np.float64) / 4294967296.0


def _value_noise(xs: np.ndarray, ys: np.ndarray, scale: float, salt: int) -> np.ndarray:
    """Smoothly interpolated lattice hash, one lattice point every ``scale`` cells."""
    gx = xs / scale
    gy = ys / scale
    x0 = np.floor(gx).astype(np.int64)
    y0 = np.floor(gy).astype(np.int64)
    tx = gx - x0
    ty = gy - y0
    tx = tx * tx * (3.0 - 2.0 * tx)
    ty = ty * ty * (3.0 - 2.0 * ty)

    v00 = _hash2d(x0, y0, salt)
    v10 = _hash2d(x0 + 1, y0, salt)
    v01 = _hash2d(x0, y0 + 1, salt)
    v11 = _hash2d(x0 + 1, y0 + 1, salt)

    top = v00 + (v10 - v00) * tx
    bottom = v01 + (v11 - v01) * tx
    return top + (bottom - top) * ty


def _salt(rng: np.random.Generator) -> int:
    return int(rng.integers(0, 2**31))


@dataclass
class _Layout:
    """Per-call coordinate grids shared by the passes."""

    width: int
    height: int
    xs: np.ndarray
    ys: np.ndarray
    cx: int
    cy: int
    dist: np.ndarray
    angle: np.ndarray
    max_radius: float

    @classmethod
    def build(cls, width: int, height: int, options: TerrainOptions) -> "_Layout":
        ys, xs = np.mgrid[0:height, 0:width]
        cx, cy = width // 2, height // 2
        dx = xs - cx
        dy = ys - cy
        return cls(
            width=width,
            height=height,
            xs=xs,
            ys=ys,
            cx=cx,
            cy=cy,
            dist=np.hypot(dx, dy),
            angle=np.arctan2(dy, dx),
            max_radius=min(width, height) / 2.0 * options.boundary_radius_fraction,
        )


class TerrainGenerator:
    """
    Generates city-ruin terrain maps.

    A generator only holds options; every call to ``generate`` works on its
    own arrays, so one instance can serve any number of worlds.
    """

    def __init__(self, options: Optional[TerrainOptions] = None):
        self.options = options or TerrainOptions()

    def generate(
        self, width: int, height: int, rng: Optional[np.random.Generator] = None
    ) -> TerrainMap:
        """
        Generate a terrain map.

        Args:
            width: Map width in cells
            height: Map height in cells
            rng: Caller-owned generator. A freshly seeded one is used if omitted.

        Returns:
            Fully populated TerrainMap

        Raises:
            ValueError: If the dimensions are not positive integers
        """
        width, height = validate_dimensions(width, height)
        seed = None
        if rng is None:
            rng, seed = create_rng()

        logger.info("Generating terrain", width=width, height=height, seed=seed)

        layout = _Layout.build(width, height, self.options)
        cells = np.full((height, width), CellType.DIRT, dtype=np.uint8)
        flow = np.zeros((height, width, 2), dtype=np.float32)

        inside = self._city_boundary(layout, rng)
        # Drawn now, stamped after decay: isolated walls would otherwise erode
        rubble = ~inside & (rng.random(cells.shape) < self.options.outskirts_wall_chance)
        logger.debug("City boundary placed", inside_cells=int(inside.sum()))

        highway = self._highway_mask(layout, inside, rng)
        cells[highway] = CellType.ROAD
        logger.debug("Highways placed", highway_cells=int(highway.sum()))

        street, archetypes = self._city_grid(layout, rng)
        cells[inside & street & ~highway] = CellType.ROAD

        interior = inside & ~street & ~highway
        self._fill_blocks(cells, layout, interior, archetypes, rng)
        self._place_lakes(cells, layout, interior, rng)

        if self.options.reserve_center_park:
            cells[layout.dist < self.options.center_park_radius] = CellType.PARK
        logger.debug("Blocks filled")

        self._carve_canals(cells, flow, layout, rng)
        logger.debug("Canals carved", canal_cells=int((cells == CellType.CANAL).sum()))

        self._decay(cells, rng)
        cells[rubble & (cells == CellType.DIRT)] = CellType.WALL

        terrain = TerrainMap(width=width, height=height, cells=cells, flow=flow, seed=seed)
        logger.info("Terrain generated", width=width, height=height, **terrain.category_counts())
        return terrain

    def _city_boundary(self, layout: _Layout, rng: np.random.Generator) -> np.ndarray:
        """Mask of cells inside the noisy radial city edge."""
        opt = self.options
        phase_a, phase_b = rng.uniform(0.0, _TWO_PI, size=2)
        radius = layout.max_radius * (
            1.0
            + opt.boundary_noise_primary * np.sin(opt.boundary_harmonic_primary * layout.angle + phase_a)
            + opt.boundary_noise_secondary * np.sin(opt.boundary_harmonic_secondary * layout.angle + phase_b)
        )
        return layout.dist <= radius

    def _highway_mask(
        self, layout: _Layout, inside: np.ndarray, rng: np.random.Generator
    ) -> np.ndarray:
        """Radial spokes that narrow with distance, plus the ring road."""
        opt = self.options
        mask = np.zeros(layout.dist.shape, dtype=bool)

        # Angular half-width shrinks as 1/distance, so spokes keep a constant cell width
        half_width = opt.highway_width / np.maximum(layout.dist, 1.0) * opt.highway_tightness
        offset = rng.uniform(0.0, _TWO_PI)
        for k in range(opt.highway_count):
            base = offset + _TWO_PI * k / opt.highway_count
            base += rng.uniform(-opt.highway_angle_jitter, opt.highway_angle_jitter)
            curvature = rng.uniform(-opt.highway_curvature, opt.highway_curvature)
            target = base + curvature * layout.dist
            mask |= np.abs(_wrap_angle(layout.angle - target)) <= half_width

        ring_phase = rng.uniform(0.0, _TWO_PI)
        ring_radius = layout.max_radius * opt.ring_radius_fraction * (
            1.0 + opt.ring_noise * np.sin(opt.ring_harmonic * layout.angle + ring_phase)
        )
        mask |= inside & (np.abs(layout.dist - ring_radius) <= opt.ring_width)
        return mask

    def _city_grid(
        self, layout: _Layout, rng: np.random.Generator
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Lay the block street grid.

        Returns:
            Tuple of (street mask, per-cell block archetype)
        """
        opt = self.options
        size = opt.block_size
        bx = layout.xs // size
        by = layout.ys // size
        local_x = layout.xs % size
        local_y = layout.ys % size
        blocks_y, blocks_x = int(by.max()) + 1, int(bx.max()) + 1

        widths = opt.street_width + rng.integers(0, opt.street_jitter + 1, size=(blocks_y, blocks_x))
        street_width = widths[by, bx]

        # Gated blocks merge with a neighbor into a super-block
        gate_x = _hash2d(bx, by, _salt(rng)) < opt.street_gate_chance
        gate_y = _hash2d(bx, by, _salt(rng)) < opt.street_gate_chance
        street = ((local_x < street_width) & ~gate_x) | ((local_y < street_width) & ~gate_y)

        weights = np.asarray(opt.archetype_weights, dtype=np.float64)
        thresholds = np.cumsum(weights / weights.sum())
        draws = rng.random((blocks_y, blocks_x))
        block_archetypes = np.minimum(
            np.searchsorted(thresholds, draws, side="right"), len(BlockArchetype) - 1
        )
        return street, block_archetypes[by, bx]

    def _fill_blocks(
        self,
        cells: np.ndarray,
        layout: _Layout,
        interior: np.ndarray,
        archetypes: np.ndarray,
        rng: np.random.Generator,
    ) -> None:
        opt = self.options
        rolls = rng.random(cells.shape)
        relative = np.clip(layout.dist / max(layout.max_radius, 1e-6), 0.0, 1.0)

        # Standard: density falls off toward the edge of the city
        standard = interior & (archetypes == BlockArchetype.STANDARD)
        density = opt.core_density * (1.0 - relative) + opt.edge_density * relative
        noise = _value_noise(layout.xs, layout.ys, opt.noise_scale, _salt(rng))
        wall = standard & (noise < density)
        park = standard & ~wall & (rolls < opt.pocket_park_chance)
        dirt = standard & ~wall & ~park
        cells[wall] = CellType.WALL
        cells[park] = CellType.PARK

        phase_x, phase_y = rng.uniform(0.0, _TWO_PI, size=2)
        stagnant = 0.5 + 0.5 * (
            np.sin(layout.xs * opt.stagnant_water_frequency + phase_x)
            * np.sin(layout.ys * opt.stagnant_water_frequency + phase_y)
        )
        cells[dirt & (stagnant > opt.stagnant_water_threshold)] = CellType.WATER

        # Industrial: round tanks at the block center, overgrowth around them
        industrial = interior & (archetypes == BlockArchetype.INDUSTRIAL)
        half = opt.block_size / 2.0
        block_cx = (layout.xs // opt.block_size) * opt.block_size + half
        block_cy = (layout.ys // opt.block_size) * opt.block_size + half
        local_dist = np.hypot(layout.xs - block_cx, layout.ys - block_cy)
        tank = industrial & (local_dist <= opt.tank_radius)
        debris = industrial & ~tank & (rolls < opt.industrial_debris_chance)
        cells[industrial & ~tank & ~debris] = CellType.PARK
        cells[tank] = CellType.TANK
        cells[debris] = CellType.DIRT

        towers = interior & (archetypes == BlockArchetype.SKYSCRAPER)
        cells[towers & (rolls < opt.skyscraper_fill)] = CellType.SKYSCRAPER
        cells[towers & (rolls >= opt.skyscraper_fill)] = CellType.DIRT

    def _place_lakes(
        self, cells: np.ndarray, layout: _Layout, interior: np.ndarray, rng: np.random.Generator
    ) -> None:
        opt = self.options
        phase_x, phase_y = rng.uniform(0.0, _TWO_PI, size=2)
        lake = np.sin(layout.xs * opt.lake_frequency + phase_x) * np.sin(
            layout.ys * opt.lake_frequency * 1.3 + phase_y
        )
        far = layout.dist > opt.lake_min_distance_fraction * layout.max_radius
        cells[interior & far & (lake > opt.lake_threshold)] = CellType.WATER

    def _carve_canals(
        self, cells: np.ndarray, flow: np.ndarray, layout: _Layout, rng: np.random.Generator
    ) -> None:
        """Walk wiggling canal paths, stamping 3x3 canal cells and their heading."""
        opt = self.options
        height, width = cells.shape

        for _ in range(opt.canal_count):
            px, py, heading = self._canal_start(layout, rng)
            phase = rng.uniform(0.0, _TWO_PI)

            for step in range(opt.canal_steps):
                angle = heading + opt.canal_wiggle * math.sin(step * opt.canal_wiggle_frequency + phase)
                dx, dy = math.cos(angle), math.sin(angle)
                px += dx * opt.canal_speed
                py += dy * opt.canal_speed
                ix, iy = int(round(px)), int(round(py))

                # Stop once the whole stamp has left the map
                if ix < -1 or iy < -1 or ix > width or iy > height:
                    break

                for sy in range(iy - 1, iy + 2):
                    for sx in range(ix - 1, ix + 2):
                        if not in_bounds(sx, sy, width, height):
                            continue
                        if cells[sy, sx] == CellType.ROAD:
                            continue
                        cells[sy, sx] = CellType.CANAL
                        flow[sy, sx] = (dx, dy)

    def _canal_start(self, layout: _Layout, rng: np.random.Generator) -> Tuple[float, float, float]:
        """Pick a start point and heading: the center, or an edge pointing inward."""
        opt = self.options
        if rng.random() < opt.canal_center_start_chance:
            return float(layout.cx), float(layout.cy), rng.uniform(0.0, _TWO_PI)

        side = int(rng.integers(0, 4))
        if side == 0:
            px, py = rng.uniform(0, layout.width - 1), 0.0
        elif side == 1:
            px, py = rng.uniform(0, layout.width - 1), float(layout.height - 1)
        elif side == 2:
            px, py = 0.0, rng.uniform(0, layout.height - 1)
        else:
            px, py = float(layout.width - 1), rng.uniform(0, layout.height - 1)

        heading = math.atan2(layout.cy - py, layout.cx - px)
        heading += rng.uniform(-opt.canal_heading_jitter, opt.canal_heading_jitter)
        return px, py, heading

    def _decay(self, cells: np.ndarray, rng: np.random.Generator) -> None:
        """
        Cellular-automaton cleanup over interior cells.

        Each iteration reads a snapshot of the previous state so changes do
        not cascade within one iteration. Neighbor counts use zero padding,
        so positions off the map count as nothing.
        """
        opt = self.options
        kernel = np.zeros((3, 3), dtype=np.int16)
        for dx, dy in NEIGHBOR_OFFSETS_8:
            kernel[dy + 1, dx + 1] = 1
        interior = np.zeros(cells.shape, dtype=bool)
        interior[1:-1, 1:-1] = True

        def count(mask: np.ndarray) -> np.ndarray:
            return ndimage.convolve(mask.astype(np.int16), kernel, mode="constant", cval=0)

        for iteration in range(opt.decay_iterations):
            before = cells.copy()
            structural = np.isin(before, _STRUCTURAL_CODES)
            n_structural = count(structural)
            n_road = count(before == CellType.ROAD)
            n_park = count(before == CellType.PARK)
            n_water = count(np.isin(before, _WATER_CODES))
            park_rolls, water_rolls = rng.random((2,) + cells.shape)

            dirt = interior & (before == CellType.DIRT)
            to_wall = dirt & (n_structural >= 5)
            to_park = dirt & ~to_wall & (n_park > 1) & (park_rolls < opt.park_spread_chance)
            to_water = (
                dirt & ~to_wall & ~to_park & (n_water > 3) & (water_rolls < opt.water_spread_chance)
            )
            eroded = interior & structural & (n_structural < 2)
            stubs = interior & (before == CellType.ROAD) & (n_road == 0)

            cells[to_wall] = CellType.WALL
            cells[to_park] = CellType.PARK
            cells[to_water] = CellType.WATER
            cells[eroded | stubs] = CellType.DIRT

            logger.debug(
                "Decay iteration",
                iteration=iteration,
                filled=int(to_wall.sum()),
                eroded=int(eroded.sum()),
                road_stubs=int(stubs.sum()),
            )


def generate_terrain(
    width: int,
    height: int,
    seed: Optional[Seed] = None,
    options: Optional[TerrainOptions] = None,
) -> TerrainMap:
    """
    Generate a terrain map from a seed.

    Same seed, dimensions and options always give byte-identical maps.

    Args:
        width: Map width in cells
        height: Map height in cells
        seed: Integer or string seed, drawn fresh when omitted
        options: Generation options

    Returns:
        TerrainMap carrying the seed it was built from
    """
    rng, seed = create_rng(seed)
    terrain = TerrainGenerator(options).generate(width, height, rng)
    return replace(terrain, seed=seed)
