"""Seeding helpers so generated demo data is reproducible."""

import random
from typing import Optional

DEFAULT_SEED = 42


def get_random_state(seed: Optional[int] = None) -> random.Random:
    """Return an isolated ``random.Random`` seeded with ``seed`` (or the default)."""

    return random.Random(DEFAULT_SEED if seed is None else seed)
