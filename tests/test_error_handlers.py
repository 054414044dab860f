"""
tests/test_error_handlers.py -- Catch-all error rendering and the session purge loop.

Covers:
  - an unexpected exception renders the InternalError envelope without leaking the message
  - the purge loop logs a failed pass and keeps running
"""

from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from api.main import _purge_loop, generic_exception_handler


def test_unhandled_exception_renders_internal_error(caplog):
    request = MagicMock()
    request.method = "GET"
    request.url.path = "/api/v1/users"

    with caplog.at_level("ERROR", logger="storefront.api"):
        resp = asyncio.run(generic_exception_handler(request, RuntimeError("db password is hunter2")))

    assert resp.status_code == 500
    body = json.loads(resp.body)
    assert body["error"]["code"] == "internal_error"
    assert body["error"]["message"] == "Internal server error"
    assert "hunter2" not in resp.body.decode()
    assert "Unhandled exception on GET /api/v1/users" in caplog.text


def test_purge_loop_survives_failed_pass(caplog):
    calls = []

    def purge_expired() -> int:
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("store exploded")
        return 1

    app = SimpleNamespace(state=SimpleNamespace(session_store=SimpleNamespace(purge_expired=purge_expired)))

    async def run() -> None:
        task = asyncio.create_task(_purge_loop(app, 0))
        for _ in range(200):
            await asyncio.sleep(0.01)
            if len(calls) >= 3:
                break
        assert not task.done()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    with caplog.at_level("INFO", logger="storefront.api"):
        asyncio.run(run())

    assert len(calls) >= 3
    assert "Expired session purge failed" in caplog.text
    assert "Purged 1 expired sessions" in caplog.text
