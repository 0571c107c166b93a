"""
World orchestration.

A World ties one terrain to one fluid solver and drives both cadences a
host server needs: fluid ticks at a fixed simulation rate and snapshot
broadcasts at a slower, independent rate. It produces payloads only;
sending them is the host's job.
"""

from typing import List, Optional

import numpy as np
import structlog
from pydantic import BaseModel, ConfigDict, Field

from .fluid_solver import FluidOptions, FluidSolver
from .grid import validate_dimensions
from .snapshot_codec import rle_encode
from .terrain_generator import TerrainGenerator, TerrainMap, TerrainOptions
from ..config.config import settings
from ..utils.random import Seed, create_rng

logger = structlog.get_logger()


class WorldConfig(BaseModel):
    """Configuration record sent to observers when they join."""

    width: int = Field(..., gt=0, description="World width in cells")
    height: int = Field(..., gt=0, description="World height in cells")


class JoinPayload(BaseModel):
    """Everything a newly joined observer needs before the first snapshot."""

    model_config = ConfigDict(frozen=True)

    config: WorldConfig
    terrain: bytes = Field(..., description="Row-major terrain category bytes")


class FixedRateTimer:
    """Accumulates elapsed time and reports how many fixed steps are due."""

    def __init__(self, rate_hz: float):
        if rate_hz <= 0:
            raise ValueError(f"Rate must be positive, got {rate_hz}")
        self.period = 1.0 / rate_hz
        self._accumulated = 0.0

    def advance(self, elapsed: float, max_steps: Optional[int] = None) -> int:
        """
        Add elapsed time and consume whole periods.

        Args:
            elapsed: Seconds since the previous call, negative values count as zero
            max_steps: Cap on returned steps; the backlog beyond it is dropped

        Returns:
            Number of steps due now
        """
        # A clock stepping backwards contributes nothing
        self._accumulated += max(elapsed, 0.0)
        steps = int(self._accumulated // self.period)
        self._accumulated -= steps * self.period
        if max_steps is not None and steps > max_steps:
            steps = max_steps
            self._accumulated = 0.0
        return steps


class World:
    """One simulated world: static terrain plus its evolving fluid field."""

    def __init__(
        self,
        width: Optional[int] = None,
        height: Optional[int] = None,
        seed: Optional[Seed] = None,
        terrain_options: Optional[TerrainOptions] = None,
        fluid_options: Optional[FluidOptions] = None,
        terrain: Optional[TerrainMap] = None,
    ):
        """
        Build a world.

        Args:
            width: World width, defaults to ``settings.default_world_width``
            height: World height, defaults to ``settings.default_world_height``
            seed: Seed for terrain and fluid randomness, drawn when omitted
            terrain_options: Terrain generation options
            fluid_options: Fluid simulation options
            terrain: Prebuilt terrain; skips generation when given

        Raises:
            ValueError: If the dimensions are invalid or exceed the configured maxima
        """
        if terrain is not None:
            width, height = terrain.width, terrain.height
        width = settings.default_world_width if width is None else width
        height = settings.default_world_height if height is None else height
        width, height = validate_dimensions(width, height)
        if width > settings.max_world_width or height > settings.max_world_height:
            raise ValueError(
                f"World {width}x{height} exceeds maximum "
                f"{settings.max_world_width}x{settings.max_world_height}"
            )

        rng, self.seed = create_rng(seed)
        if terrain is None:
            terrain = TerrainGenerator(terrain_options).generate(width, height, rng)
        self.terrain = terrain
        self.solver = FluidSolver(terrain, fluid_options, rng)

        self._tick_timer = FixedRateTimer(settings.tick_rate_hz)
        self._broadcast_timer = FixedRateTimer(settings.broadcast_rate_hz)
        self._join_payload: Optional[JoinPayload] = None

        logger.info("World created", width=width, height=height, seed=self.seed)

    @property
    def width(self) -> int:
        return self.terrain.width

    @property
    def height(self) -> int:
        return self.terrain.height

    def config(self) -> WorldConfig:
        return WorldConfig(width=self.width, height=self.height)

    def join_payload(self) -> JoinPayload:
        """Config record and terrain bytes, built once and reused for every join."""
        if self._join_payload is None:
            self._join_payload = JoinPayload(config=self.config(), terrain=self.terrain.cells_bytes())
        return self._join_payload

    def enable(self) -> None:
        self.solver.enable()

    def disable(self) -> None:
        self.solver.disable()

    def snapshot_payload(self) -> bytes:
        """Current snapshot as transmitted bytes."""
        snapshot = self.solver.export_snapshot()
        if settings.compress_snapshots:
            return rle_encode(snapshot)
        return snapshot.tobytes()

    def advance(self, elapsed: float) -> List[bytes]:
        """
        Run everything due after ``elapsed`` seconds.

        Ticks run first, then broadcasts, so a snapshot always reflects
        every tick due at the same instant.

        Args:
            elapsed: Seconds since the previous call

        Returns:
            Snapshot payloads due for broadcast. Broadcasts that fell behind
            collapse into one, since they would all carry the same field.
        """
        step = self._tick_timer.period
        for _ in range(self._tick_timer.advance(elapsed, settings.max_catch_up_ticks)):
            self.solver.tick(step)

        return [self.snapshot_payload() for _ in range(self._broadcast_timer.advance(elapsed, 1))]

    def levels(self) -> np.ndarray:
        """Read-only (height, width) view of the fluid field."""
        return self.solver.field.reshape(self.height, self.width)
