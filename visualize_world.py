#!/usr/bin/env python3
"""
Render a generated world to PNG for eyeballing terrain and sludge spread.

Usage:
    python visualize_world.py [--seed SEED] [--preset NAME] [--ticks N]
"""

from datetime import datetime

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.colors import ListedColormap
from matplotlib.patches import Patch

from py_sludge.config import get_preset, list_presets
from py_sludge.core import CellType, World
from py_sludge.core.snapshot_codec import dequantize
from py_sludge.utils.logging import configure_logging

TERRAIN_COLORS = {
    CellType.DIRT: "#8B7355",
    CellType.WALL: "#555555",
    CellType.ROAD: "#2F2F2F",
    CellType.PARK: "#4F7942",
    CellType.WATER: "#3A6EA5",
    CellType.CANAL: "#1E90FF",
    CellType.TANK: "#B8860B",
    CellType.SKYSCRAPER: "#A9A9A9",
}


def visualize_world(width=100, height=100, seed=None, preset="default", ticks=200):
    """Generate a world, run the fluid for a while and save a two-panel PNG."""
    world = World(width, height, seed=seed, terrain_options=get_preset(preset))
    print(f"World {width}x{height}, seed={world.seed}, preset={preset}")

    for _ in range(ticks):
        world.solver.tick(1.0 / 20)
    print(f"Ran {ticks} ticks, total mass {world.solver.total_mass():.1f}")

    terrain = world.terrain.grid()
    snapshot = world.solver.export_snapshot()
    levels = dequantize(snapshot).reshape(height, width)

    cmap = ListedColormap([TERRAIN_COLORS[t] for t in CellType])
    fig, (ax_terrain, ax_fluid) = plt.subplots(1, 2, figsize=(14, 7))

    ax_terrain.imshow(terrain, cmap=cmap, vmin=0, vmax=len(CellType) - 1, interpolation="nearest")
    ax_terrain.set_title(f"Terrain (seed {world.seed})")
    ax_terrain.legend(
        handles=[Patch(color=TERRAIN_COLORS[t], label=t.name.title()) for t in CellType],
        loc="upper right",
        fontsize=8,
    )

    ax_fluid.imshow(terrain, cmap=cmap, vmin=0, vmax=len(CellType) - 1, interpolation="nearest")
    # Byte 0 is absent, not a faint trace
    overlay = np.ma.masked_where(levels == 0, levels)
    image = ax_fluid.imshow(overlay, cmap="YlGn", alpha=0.85, interpolation="nearest")
    ax_fluid.set_title(f"Sludge after {ticks} ticks")
    fig.colorbar(image, ax=ax_fluid, fraction=0.046, pad=0.04, label="Depth")

    for ax in (ax_terrain, ax_fluid):
        ax.set_xticks([])
        ax.set_yticks([])

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filename = f"world_{world.seed}_{timestamp}.png"

    plt.tight_layout()
    plt.savefig(filename, dpi=150, bbox_inches="tight")
    print(f"World visualization saved as: {filename}")


def main():
    """Main function."""
    import argparse

    parser = argparse.ArgumentParser(description="Visualize a generated world")
    parser.add_argument("--seed", help="World seed (random if not specified)")
    parser.add_argument("--preset", default="default", choices=list_presets())
    parser.add_argument("--width", type=int, default=100)
    parser.add_argument("--height", type=int, default=100)
    parser.add_argument("--ticks", type=int, default=200)
    parser.add_argument("--log-level", default=None)

    args = parser.parse_args()

    configure_logging(level=args.log_level, fmt="plain")
    visualize_world(args.width, args.height, args.seed, args.preset, args.ticks)


if __name__ == "__main__":
    main()
