"""
Contamination fluid solver.

Evolves a non-negative sludge depth over a fixed terrain. Each tick copies
the field, injects mass at the emitter and lets every wet cell push part
of its level downhill to its 4-neighbors:

- Structural cells (walls, tanks, skyscrapers) neither send nor receive
- Canal cells flow faster and are biased along their carved direction
- Neighbor order is the canonical up/down/left/right, reversed for a
  seeded coin-flip per cell per tick so no direction is favored over time

This is a cheap visual approximation, not a conservative fluid model: the
emitter keeps adding mass and nothing ever drains.

The per-cell rules are evaluated for the whole grid at once. Outflow only
depends on the source cell's own level, its neighbors' levels in the
``current`` buffer and its own remaining budget, so the four neighbor
slots can be processed as four vectorized sweeps.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import structlog

from .grid import DoubleBuffer, NEIGHBOR_OFFSETS_4, in_bounds, shifted, to_index
from .snapshot_codec import DEFAULT_SENSITIVITY, encode_snapshot
from .terrain_generator import TerrainMap
from ..utils.random import create_rng

logger = structlog.get_logger()


@dataclass
class FluidOptions:
    """Fluid simulation parameters."""

    emitter_rate: float = 0.5  # Mass added at the emitter every tick
    initial_emitter_charge: float = 10.0  # Mass deposited at the emitter on construction
    emitter: Optional[Tuple[int, int]] = None  # (x, y); world center when omitted
    wet_threshold: float = 0.01  # Cells at or below this level are skipped
    diffusion_rate: float = 0.1  # Fraction of the level difference moved per tick
    canal_rate_multiplier: float = 4.0  # Rate multiplier on flow-biased cells
    flow_epsilon: float = 1e-3  # Flow vectors shorter than this count as no bias
    alignment_threshold: float = 0.5  # |dot| above this counts as with/against the flow
    pressure_bonus: float = 0.5  # Level bonus when pushing downstream
    downstream_boost: float = 3.0
    upstream_damping: float = 0.1
    sensitivity: float = DEFAULT_SENSITIVITY  # Snapshot bytes per unit of depth

    def __post_init__(self):
        if self.emitter_rate < 0 or self.initial_emitter_charge < 0:
            raise ValueError("emitter_rate and initial_emitter_charge must be non-negative")
        if self.diffusion_rate < 0 or self.canal_rate_multiplier < 0:
            raise ValueError("diffusion_rate and canal_rate_multiplier must be non-negative")
        if self.sensitivity <= 0:
            raise ValueError(f"sensitivity must be positive, got {self.sensitivity}")


class FluidSolver:
    """
    Owns the fluid field of one world.

    The solver is single-threaded and keeps no state shared with other
    instances: the terrain is read-only and both field buffers are private.
    """

    def __init__(
        self,
        terrain: TerrainMap,
        options: Optional[FluidOptions] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        """
        Initialize the solver against a terrain.

        Args:
            terrain: Immutable terrain the fluid flows over
            options: Simulation parameters
            rng: Caller-owned generator for the neighbor-order coin flips

        Raises:
            ValueError: If the emitter lies outside the terrain
        """
        self.terrain = terrain
        self.options = options or FluidOptions()
        self.width = terrain.width
        self.height = terrain.height
        self.size = terrain.size
        self._rng = rng if rng is not None else create_rng()[0]

        ex, ey = self.options.emitter or (self.width // 2, self.height // 2)
        if not in_bounds(ex, ey, self.width, self.height):
            raise ValueError(f"Emitter ({ex}, {ey}) outside {self.width}x{self.height} grid")
        self.emitter_index = to_index(ex, ey, self.width)

        shape = (self.height, self.width)
        self._blocked = terrain.blocked_mask().reshape(shape)
        flow = terrain.flow.reshape(self.height, self.width, 2)
        self._flow_x = flow[..., 0]
        self._flow_y = flow[..., 1]
        biased = np.hypot(self._flow_x, self._flow_y) > self.options.flow_epsilon
        self._biased = biased
        self._rate = np.where(
            biased,
            self.options.diffusion_rate * self.options.canal_rate_multiplier,
            self.options.diffusion_rate,
        ).astype(np.float32)

        # Destination validity never changes: in bounds and not structural
        self._open = [
            shifted(~self._blocked, dx, dy, False) & ~self._blocked
            for dx, dy in NEIGHBOR_OFFSETS_4
        ]
        self._bonus, self._multiplier = self._direction_bias()

        self._buffers = DoubleBuffer(self.size, dtype=np.float32)
        self._export_scratch = np.empty(self.size, dtype=np.float32)
        self.enabled = True
        self.tick_count = 0

        if self.options.initial_emitter_charge > 0:
            self._buffers.current[self.emitter_index] = self.options.initial_emitter_charge

        logger.info(
            "Fluid solver initialized",
            width=self.width,
            height=self.height,
            emitter=(ex, ey),
            canal_cells=int(biased.sum()),
            blocked_cells=int(self._blocked.sum()),
        )

    def _direction_bias(self):
        """Precompute the per-direction pressure bonus and move multiplier."""
        opt = self.options
        bonuses = []
        multipliers = []
        for dx, dy in NEIGHBOR_OFFSETS_4:
            alignment = self._flow_x * dx + self._flow_y * dy
            downstream = self._biased & (alignment > opt.alignment_threshold)
            upstream = self._biased & (alignment < -opt.alignment_threshold)
            bonuses.append(np.where(downstream, opt.pressure_bonus, 0.0).astype(np.float32))
            multiplier = np.ones(alignment.shape, dtype=np.float32)
            multiplier[downstream] = opt.downstream_boost
            multiplier[upstream] = opt.upstream_damping
            multipliers.append(multiplier)
        return bonuses, multipliers

    @property
    def field(self) -> np.ndarray:
        """Read-only view of the authoritative field."""
        view = self._buffers.current.view()
        view.flags.writeable = False
        return view

    def level_at(self, x: int, y: int) -> float:
        return float(self._buffers.current[self.terrain.index(x, y)])

    def total_mass(self) -> float:
        return float(self._buffers.current.sum(dtype=np.float64))

    def enable(self) -> None:
        if not self.enabled:
            logger.info("Fluid simulation enabled")
        self.enabled = True

    def disable(self) -> None:
        if self.enabled:
            logger.info("Fluid simulation disabled", tick_count=self.tick_count)
        self.enabled = False

    def add_fluid(self, x: int, y: int, amount: float) -> None:
        """Deposit mass directly into one cell (structural cells included)."""
        if not np.isfinite(amount) or amount < 0:
            raise ValueError(f"Fluid amount must be finite and non-negative, got {amount}")
        self._buffers.current[self.terrain.index(x, y)] += amount

    def set_field(self, values) -> None:
        """
        Replace the whole field.

        Args:
            values: Sequence of ``width * height`` non-negative levels, row-major

        Raises:
            ValueError: On a length mismatch, negative or non-finite values
        """
        values = np.asarray(values, dtype=np.float32).reshape(-1)
        if values.size != self.size:
            raise ValueError(f"Field has {values.size} values, expected {self.size}")
        if not np.all(np.isfinite(values)):
            raise ValueError("Fluid levels must be finite")
        if np.any(values < 0):
            raise ValueError("Fluid levels must be non-negative")
        np.copyto(self._buffers.current, values)

    def reset(self) -> None:
        self._buffers.clear()
        self.tick_count = 0

    def tick(self, delta_time: float = 0.0) -> None:
        """
        Advance the field by one fixed step.

        Args:
            delta_time: Seconds since the previous tick. Integration uses a
                fixed logical step, the value is accepted for host loops
                that pass their frame time.
        """
        if not self.enabled:
            return

        current = self._buffers.current
        nxt = self._buffers.begin()
        nxt[self.emitter_index] += self.options.emitter_rate

        self._spread(current.reshape(self.height, self.width), nxt.reshape(self.height, self.width))

        # Float drift must never leave visibly negative cells behind
        np.maximum(nxt, 0.0, out=nxt)
        self._buffers.swap()
        self.tick_count += 1

    def _spread(self, current: np.ndarray, nxt: np.ndarray) -> None:
        """Move mass from every wet, open cell to its lower 4-neighbors."""
        active = (current > self.options.wet_threshold) & ~self._blocked
        if not active.any():
            return

        remaining = np.where(active, current, 0.0).astype(np.float32)
        # Per-cell coin flip: True walks the neighbors in reverse order
        reverse = self._rng.random(current.shape) < 0.5

        wanted = []
        for d, (dx, dy) in enumerate(NEIGHBOR_OFFSETS_4):
            neighbor_level = shifted(current, dx, dy, 0.0)
            difference = current + self._bonus[d] - neighbor_level
            movable = active & self._open[d] & (difference > 0)
            wanted.append(np.where(movable, difference * self._rate, 0.0).astype(np.float32))

        moved = [np.zeros_like(current) for _ in NEIGHBOR_OFFSETS_4]
        last = len(NEIGHBOR_OFFSETS_4) - 1
        for slot in range(len(NEIGHBOR_OFFSETS_4)):
            forward, backward = slot, last - slot
            want = np.where(reverse, wanted[backward], wanted[forward])
            multiplier = np.where(reverse, self._multiplier[backward], self._multiplier[forward])
            amount = np.minimum(np.minimum(remaining, want) * multiplier, remaining)
            remaining -= amount
            moved[forward] += np.where(reverse, 0.0, amount)
            moved[backward] += np.where(reverse, amount, 0.0)

        for d, (dx, dy) in enumerate(NEIGHBOR_OFFSETS_4):
            nxt -= moved[d]
            # Mass sent toward (dx, dy) lands on the cell at that offset
            nxt += shifted(moved[d], -dx, -dy, 0.0)

    def export_snapshot(self) -> np.ndarray:
        """
        Quantize the field for broadcast.

        Returns:
            uint8 array of ``width * height`` bytes; all zeros while disabled
        """
        out = np.zeros(self.size, dtype=np.uint8)
        if not self.enabled:
            return out
        return encode_snapshot(
            self._buffers.current, self.options.sensitivity, out=out, scratch=self._export_scratch
        )
