import pytest
import aiohttp
from sanic import Sanic
import pytest_asyncio
from sanic_testing import TestManager
from sanic.log import logger

from gh_promotion.config import Config
from tests.utils import WEBHOOK_SECRET


@pytest.fixture
def config():
    config = Config(
        AUTH_MODE="token",
        GITHUB_TOKEN="abc",
        WEBHOOK_SECRET=WEBHOOK_SECRET,
        OVERRIDE_LOGGING="DEBUG",
        STERILE=False,
        COMMIT_STATUS_ENABLED=True,
        CHECK_RUN_ENABLED=True,
        FETCH_RATE_LIMITS=False,
        S3_UPLOAD_ENABLED=False,
    )

    logger.setLevel(config.OVERRIDE_LOGGING)

    return config


@pytest.fixture(scope="function")
def app(monkeypatch, config) -> Sanic:
    """Create a Sanic app for testing."""
    from gh_promotion.web import create_app

    app = create_app(config=config)
    TestManager(app)
    return app


@pytest_asyncio.fixture
async def session():
    async with aiohttp.ClientSession() as session:
        yield session
