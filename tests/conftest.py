"""Root pytest configuration for all tests.

Import roots (src/ and the project root) are configured through
``[tool.pytest.ini_options] pythonpath`` in pyproject.toml. This conftest
only provides shared fixtures; grid builders live in conftest_utils.py.
"""

import pytest

from conftest_utils import create_random_grid


@pytest.fixture
def random_grid():
    """60x60 rough random terrain in UTM 42N, 10 m cells."""
    return create_random_grid()
