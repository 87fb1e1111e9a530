"""Pytest configuration and shared fixtures for contextualize tests.

This file is automatically loaded by pytest and provides common fixtures
that can be used across all test files.
"""

import sys
from pathlib import Path
from types import SimpleNamespace

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

# Add the project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from contextualize.config import get_settings
from contextualize.server.middleware import add_exception_handlers


# ============================================================================
# Settings Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def fresh_settings():
    """Drop cached settings so environment patches take effect."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ============================================================================
# Request Fixtures
# ============================================================================

@pytest.fixture
def plain_request() -> SimpleNamespace:
    """A bare request object without Starlette state."""
    return SimpleNamespace(path="/")


# ============================================================================
# Application Fixtures
# ============================================================================

@pytest.fixture
def app() -> FastAPI:
    """Empty application with structured error responses."""
    application = FastAPI()
    add_exception_handlers(application)
    return application


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Test client bound to the ``app`` fixture."""
    return TestClient(app)
