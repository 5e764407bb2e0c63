import os
import tempfile

# Must be set before feedback_tracker.main is imported: the app mounts the upload dir at import time.
os.environ.setdefault("JWT_SECRET", "test-secret-for-feedback-tracker")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="feedback-uploads-"))

import httpx
import pytest
import pytest_asyncio

from feedback_tracker.core.config import get_settings
from feedback_tracker.utils.rate_limit import reset_login_rate_limiter


@pytest.fixture(autouse=True)
def _reset_shared_state():
    # Tests mutate env vars and hit the login limiter; nothing may leak across tests.
    get_settings.cache_clear()
    reset_login_rate_limiter()
    yield
    get_settings.cache_clear()
    reset_login_rate_limiter()


@pytest_asyncio.fixture
async def client():
    """In-process ASGI client without database overrides."""
    from feedback_tracker.main import app

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
