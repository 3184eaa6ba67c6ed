from __future__ import annotations

from typing import Generator

import pytest

from support.eav_store import EavStore
from pytests.common import FRUIT, make_store, seed_store


@pytest.fixture()
def store(tmp_path) -> Generator[EavStore, None, None]:
    """Empty staging store backed by a temp file."""

    s = make_store(tmp_path)
    try:
        yield s
    finally:
        s.close()


@pytest.fixture()
def fruit_store(store) -> EavStore:
    """Store seeded with apple {color} and pear {color, shape}."""

    seed_store(store, FRUIT)
    return store
