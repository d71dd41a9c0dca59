"""Shared pytest fixtures for TeamBoard tests."""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import MagicMock, patch

import pytest
import pytest_asyncio
from dotenv import load_dotenv

if TYPE_CHECKING:
    from collections.abc import Iterator

load_dotenv()


@pytest.fixture(autouse=True)
def _reset_config_cache() -> Iterator[None]:
    """Drop cached settings and the mock auth singleton around each test."""
    from teamboard.auth.factory import clear_config_cache

    clear_config_cache()
    yield
    clear_config_cache()


@pytest_asyncio.fixture
async def mock_stytch_client():
    """Create a mocked Stytch B2BClient for unit tests.

    Patches the B2BClient constructor to return a mock, allowing
    tests to set up expected responses without making real API calls.

    Made async to ensure proper event loop handling with pytest-asyncio.
    """
    with patch("teamboard.auth.client.B2BClient") as mock_cls:
        mock_client = MagicMock()
        mock_cls.return_value = mock_client
        yield mock_client
