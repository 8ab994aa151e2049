"""
Pytest configuration and fixtures.
"""

import pytest


@pytest.fixture(autouse=True)
def clear_config_cache():
    """Each test sees configuration built from its own environment."""
    from config import get_config

    get_config.cache_clear()
    yield
    get_config.cache_clear()
