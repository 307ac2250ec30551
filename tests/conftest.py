# tests/conftest.py
import os
import tempfile

# Force offline defaults before backend.app is imported anywhere
os.environ.setdefault("MOCK_GENERATION", "true")
os.environ.setdefault("MOCK_SHEETS", "true")
os.environ.setdefault("LOG_AS_JSON", "false")
os.environ.setdefault(
    "DATABASE_URL", "sqlite:///" + os.path.join(tempfile.gettempdir(), "test_requirements.db")
)
os.environ.setdefault("UPLOAD_DIR", os.path.join(tempfile.gettempdir(), "test_uploads"))

import pytest

from backend.app import app
from backend.rate_limit import InMemorySlidingWindowLimiter


@pytest.fixture(autouse=True)
def fresh_limiter():
    """Every test starts with an empty default-sized limiter."""
    app.state.limiter = InMemorySlidingWindowLimiter(max_requests=100, window_seconds=900)
    yield
