from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from sqlvec.config import reset_adapter
from sqlvec.core.cache import clear_all_caches
from sqlvec.core.dispatch import get_dispatch_table

if TYPE_CHECKING:
    from collections.abc import Generator

here = Path(__file__).parent
root_path = here.parent


@pytest.fixture(autouse=True)
def reset_process_state() -> Generator[None, None, None]:
    """Start every test with an empty expression cache, no default adapter and stock aliases."""
    clear_all_caches()
    reset_adapter()
    get_dispatch_table().reset()
    yield
    clear_all_caches()
    reset_adapter()
    get_dispatch_table().reset()
