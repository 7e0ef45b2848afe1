import sys
import os

# Add project root to sys.path to allow imports like 'from rapla_proxy...'
# This assumes pytest is run from the project root directory
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..'))
if project_root not in sys.path:
    sys.path.insert(0, project_root)
import pytest
import pytest_asyncio
from typing import AsyncGenerator

import httpx
from fastapi import FastAPI

from rapla_proxy.core.config import Settings
from rapla_proxy.main import create_app
from rapla_proxy.tests.html_builders import EMPTY_CELL, SEPARATOR_CELL, event_cell, page, week_table

@pytest.fixture
def sample_page() -> str:
    """Two weeks across the 2020/2021 year boundary (parse with start_year=2020)."""
    return page(
        week_table(
            "KW 53",
            "Mo 28.12.",
            [
                [event_cell("09:00&nbsp;-12:15<br>Mathematik I<br>TINF24B", resources=["TINF24B", "Raum 204B"], persons=["Müller, Anna"])],
                [EMPTY_CELL, SEPARATOR_CELL, event_cell("13:00&nbsp;-14:30<br>Programmieren")],
            ],
        ),
        week_table(
            "KW 1",
            "Mo 04.01.",
            [
                [SEPARATOR_CELL, SEPARATOR_CELL, event_cell("&nbsp;-<br>Neujahr")],
            ],
            tbody=False,
        ),
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(cache_enabled=True, cache_ttl=3600, cache_max_size=1)


@pytest_asyncio.fixture(scope="function")
async def app_with_lifespan(settings: Settings) -> AsyncGenerator[FastAPI, None]:
    """Provides the app with its lifespan (HTTP client, cache) started."""
    test_app = create_app(settings)
    async with test_app.router.lifespan_context(test_app):
        yield test_app


@pytest_asyncio.fixture(scope="function")
async def async_client(app_with_lifespan: FastAPI) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Asynchronous test client talking to the app in-process."""
    transport = httpx.ASGITransport(app=app_with_lifespan)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
