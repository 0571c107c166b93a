"""
Random number generation utilities.

Every randomized step in world generation and simulation draws from an
explicit NumPy generator owned by the caller. Nothing in py_sludge touches
the global ``random`` or ``np.random`` state, so a seed fully determines
a world.
"""

import uuid
from typing import Optional, Tuple, Union

import numpy as np

Seed = Union[int, str]


def new_seed() -> str:
    """Draw a short, loggable seed string."""
    return str(uuid.uuid4())[:8]


def seed_sequence(seed: Seed) -> np.random.SeedSequence:
    """
    Build a SeedSequence from an integer or string seed.

    String seeds are fed to the sequence as their code points, which keeps
    them stable across interpreter runs (unlike ``hash()``).

    Args:
        seed: Integer or string seed

    Returns:
        SeedSequence for ``np.random.default_rng``
    """
    if isinstance(seed, bool):
        raise ValueError("Seed must be an int or str, not bool")
    if isinstance(seed, (int, np.integer)):
        if seed < 0:
            raise ValueError(f"Integer seed must be non-negative, got {seed}")
        return np.random.SeedSequence(int(seed))
    if isinstance(seed, str):
        # An empty string still needs some entropy words
        return np.random.SeedSequence([ord(char) for char in seed] or [0])
    raise ValueError(f"Seed must be an int or str, got {type(seed).__name__}")


def create_rng(seed: Optional[Seed] = None) -> Tuple[np.random.Generator, Seed]:
    """
    Create a generator for one world.

    Args:
        seed: Optional seed. A fresh seed string is drawn when omitted so the
            run can still be replayed from the logs.

    Returns:
        Tuple of (generator, seed actually used)
    """
    if seed is None:
        seed = new_seed()
    return np.random.default_rng(seed_sequence(seed)), seed
