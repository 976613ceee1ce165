"""Shared fixtures for the search proxy tests."""

import json
from unittest.mock import MagicMock

import pytest

from app import create_app
from config import DEFAULT_ALLOWED_ORIGINS
from rate_limiter import FixedWindowRateLimiter, InMemoryRateLimitStore


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


def make_upstream_response(payload=None, status_code=200, reason='OK'):
    response = MagicMock()
    response.status_code = status_code
    response.reason = reason
    response.ok = status_code < 400
    if payload is None:
        body = b'<html>Bad Gateway</html>'
    else:
        body = json.dumps(payload).encode()
    response.iter_content.return_value = [body]
    return response


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return FixedWindowRateLimiter(store=InMemoryRateLimitStore(), clock=clock)


@pytest.fixture
def app(monkeypatch, limiter):
    monkeypatch.setenv('SERPAPI_KEY', 'test-key')
    return create_app({
        'TESTING': True,
        'ALLOWED_ORIGINS': list(DEFAULT_ALLOWED_ORIGINS),
        'SERPAPI_TIMEOUT': 10,
        'RATE_LIMITER': limiter,
    })


@pytest.fixture
def client(app):
    return app.test_client()
