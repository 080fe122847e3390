"""
Pytest configuration and shared test helpers for backend tests.
"""
import os

# Skip heavy server startup (MongoDB job store) when running under pytest.
os.environ.setdefault("PYTEST_RUNNING", "1")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from unittest.mock import AsyncMock, MagicMock

# Shared TestClient fixture so tests can use in-process requests without a running server.
from fastapi.testclient import TestClient
from server import app

ADVISER = {
    "user_id": "user-1",
    "email": "adviser@example.com",
    "name": "Alex Adviser",
    "role": "ADVISER",
}


@pytest.fixture
def client():
    """Return a TestClient for the main FastAPI app (server:app). Use for unit-style API tests."""
    return TestClient(app)


@pytest.fixture
def adviser():
    return dict(ADVISER)


@pytest.fixture
def request_mock():
    """Bare Request stand-in for calling route functions directly."""
    from fastapi import Request
    request = MagicMock(spec=Request)
    request.headers = {}
    request.client = MagicMock(host="127.0.0.1")
    return request


def make_cursor(items):
    """Motor-style cursor: sort/limit chain, to_list returns items."""
    cursor = MagicMock()
    cursor.sort = MagicMock(return_value=cursor)
    cursor.limit = MagicMock(return_value=cursor)
    cursor.to_list = AsyncMock(return_value=list(items))
    return cursor
