"""Pytest configuration and fixtures."""
import sys
from pathlib import Path

import pytest

# Ensure backend root is on path when running pytest from repo root or backend
backend = Path(__file__).resolve().parent.parent
if str(backend) not in sys.path:
    sys.path.insert(0, str(backend))

from shuttle.data.network import TransitNetwork  # noqa: E402
from shuttle.geometry.interpolation import clear_interpolator_cache  # noqa: E402


@pytest.fixture
def network():
    """Fresh network from the static route configuration."""
    return TransitNetwork.from_config()


@pytest.fixture(autouse=True)
def _fresh_interpolator_cache():
    clear_interpolator_cache()
    yield
    clear_interpolator_cache()
