"""
Tests for world orchestration and broadcast cadence.
"""

import pytest
import numpy as np
from pydantic import ValidationError

from py_sludge.config import settings
from py_sludge.core.fluid_solver import FluidOptions
from py_sludge.core.snapshot_codec import decode_snapshot, rle_decode
from py_sludge.core.terrain_generator import CellType, TerrainMap, TerrainOptions
from py_sludge.core.world import FixedRateTimer, JoinPayload, World, WorldConfig


@pytest.fixture
def world():
    return World(40, 30, seed="world_test")


class TestFixedRateTimer:
    """Test fixed-step accumulation."""

    def test_accumulates_partial_periods(self):
        """Test that short frames add up to whole steps."""
        timer = FixedRateTimer(10.0)
        assert timer.advance(0.06) == 0
        assert timer.advance(0.06) == 1
        assert timer.advance(0.09) == 1

    def test_multiple_steps(self):
        """Test several steps due at once."""
        timer = FixedRateTimer(20.0)
        assert timer.advance(0.26) == 5

    def test_cap_drops_backlog(self):
        """Test that steps beyond the cap are discarded, not deferred."""
        timer = FixedRateTimer(20.0)
        assert timer.advance(10.0, max_steps=5) == 5
        assert timer.advance(0.01, max_steps=5) == 0

    def test_invalid_rate(self):
        """Test that non-positive rates are rejected."""
        with pytest.raises(ValueError):
            FixedRateTimer(0.0)

    def test_negative_elapsed_counts_as_zero(self):
        """Test that a clock stepping backwards neither raises nor eats accumulated time."""
        timer = FixedRateTimer(10.0)
        assert timer.advance(0.06) == 0
        assert timer.advance(-5.0) == 0
        assert timer.advance(0.06) == 1


class TestWorldCreation:
    """Test world construction."""

    def test_dimensions(self, world):
        """Test that the terrain and solver share the world size."""
        assert world.width == 40
        assert world.height == 30
        assert world.solver.size == 40 * 30
        assert world.levels().shape == (30, 40)

    def test_defaults_from_settings(self, monkeypatch):
        """Test that omitted sizes come from settings."""
        monkeypatch.setattr(settings, "default_world_width", 24)
        monkeypatch.setattr(settings, "default_world_height", 16)
        world = World(seed=1)
        assert (world.width, world.height) == (24, 16)

    def test_exceeds_maximum(self, monkeypatch):
        """Test that oversized worlds are refused."""
        monkeypatch.setattr(settings, "max_world_width", 50)
        with pytest.raises(ValueError):
            World(51, 10)

    @pytest.mark.parametrize("width,height", [(0, 10), (10, -1)])
    def test_invalid_dimensions(self, width, height):
        """Test degenerate sizes."""
        with pytest.raises(ValueError):
            World(width, height)

    def test_same_seed_same_world(self):
        """Test that a seed replays terrain and fluid alike."""
        first = World(32, 32, seed="replay")
        second = World(32, 32, seed="replay")
        assert first.terrain.cells_bytes() == second.terrain.cells_bytes()
        for _ in range(20):
            first.solver.tick()
            second.solver.tick()
        np.testing.assert_array_equal(first.levels(), second.levels())

    def test_seed_is_recorded(self):
        """Test that an unseeded world reports the seed it drew."""
        world = World(16, 16)
        assert world.seed is not None

    def test_prebuilt_terrain(self):
        """Test adopting a caller-supplied terrain."""
        cells = np.full(12, CellType.ROAD, dtype=np.uint8)
        terrain = TerrainMap(width=4, height=3, cells=cells, flow=np.zeros((12, 2)))
        world = World(terrain=terrain, fluid_options=FluidOptions(emitter=(0, 0)))
        assert world.terrain is terrain
        assert (world.width, world.height) == (4, 3)
        assert world.solver.level_at(0, 0) == pytest.approx(10.0)

    def test_terrain_options(self):
        """Test that terrain options reach the generator."""
        world = World(64, 64, seed=3, terrain_options=TerrainOptions(canal_count=0))
        assert world.terrain.category_counts()["canal"] == 0


class TestJoin:
    """Test the join-time payload."""

    def test_payload_contents(self, world):
        """Test config record and terrain bytes."""
        payload = world.join_payload()
        assert payload.config == WorldConfig(width=40, height=30)
        assert payload.terrain == world.terrain.cells_bytes()
        assert len(payload.terrain) == 40 * 30

    def test_payload_is_cached(self, world):
        """Test that every join reuses the same payload."""
        assert world.join_payload() is world.join_payload()

    def test_payload_frozen(self, world):
        """Test that a shared payload cannot be altered."""
        with pytest.raises(ValidationError):
            world.join_payload().terrain = b""

    def test_config_validation(self):
        """Test that the config record rejects empty worlds."""
        with pytest.raises(ValidationError):
            WorldConfig(width=0, height=10)

    def test_payload_serializes(self, world):
        """Test that the config record round-trips through JSON."""
        data = world.config().model_dump_json()
        assert WorldConfig.model_validate_json(data) == world.config()
        assert isinstance(world.join_payload(), JoinPayload)


class TestAdvance:
    """Test tick and broadcast cadence."""

    def test_ticks_then_broadcasts(self, world):
        """Test a frame long enough for ticks and one broadcast."""
        payloads = world.advance(0.26)
        assert world.solver.tick_count == 5
        assert len(payloads) == 1
        snapshot = decode_snapshot(payloads[0], world.width, world.height)
        assert snapshot.shape == (30, 40)

    def test_backwards_clock(self, world):
        """Test that a negative frame time is ignored by the world loop."""
        assert world.advance(-1.0) == []
        assert world.solver.tick_count == 0

    def test_nothing_due(self, world):
        """Test a frame shorter than any period."""
        assert world.advance(0.01) == []
        assert world.solver.tick_count == 0

    def test_catch_up_capped(self, world):
        """Test that a long stall runs a bounded number of ticks."""
        payloads = world.advance(10.0)
        assert world.solver.tick_count == settings.max_catch_up_ticks
        assert len(payloads) == 1

    def test_broadcast_rate(self, world):
        """Test about ten broadcasts and twenty ticks per simulated second."""
        broadcasts = 0
        for _ in range(100):
            broadcasts += len(world.advance(0.01))
        assert 9 <= broadcasts <= 10
        assert 19 <= world.solver.tick_count <= 20

    def test_snapshot_reflects_ticks(self, world):
        """Test that the broadcast matches the field after this frame's ticks."""
        payloads = world.advance(0.11)
        assert payloads[0] == world.solver.export_snapshot().tobytes()

    def test_disabled_broadcasts_zeros(self, world):
        """Test that a paused world keeps broadcasting an empty field."""
        world.disable()
        payloads = world.advance(0.11)
        assert world.solver.tick_count == 0
        assert payloads[0] == bytes(world.width * world.height)
        world.enable()
        world.advance(0.11)
        assert world.solver.tick_count == 2

    def test_compressed_snapshots(self, world, monkeypatch):
        """Test run-length payloads when compression is enabled."""
        monkeypatch.setattr(settings, "compress_snapshots", True)
        payload = world.snapshot_payload()
        decoded = rle_decode(payload, world.width, world.height)
        assert decoded.tobytes() == world.solver.export_snapshot().tobytes()
        assert len(payload) < world.width * world.height
