import json

import pytest
from unittest.mock import MagicMock

from counter_queue.exceptions import (
    APIError,
    ConflictError,
    NotFoundError,
    ServiceBusyError,
    api_error_handler,
    error_envelope,
    unhandled_error_handler,
)


def make_request():
    request = MagicMock()
    request.method = "POST"
    request.url.path = "/api/v1/queues/claim"
    return request


def test_error_envelope_with_and_without_field():
    assert error_envelope("Boom") == {"status": False, "message": "Boom", "error": {"message": "Boom"}}
    assert error_envelope("Bad", "counterId")["error"] == {"message": "Bad", "field": "counterId"}


def test_error_status_codes():
    assert NotFoundError().status_code == 404
    assert ConflictError().status_code == 409
    assert ServiceBusyError().status_code == 503
    assert APIError("x").status_code == 500


@pytest.mark.asyncio
async def test_api_error_handler_renders_envelope():
    response = await api_error_handler(make_request(), NotFoundError("Counter not found", field="counterId"))

    assert response.status_code == 404
    assert json.loads(response.body) == {
        "status": False,
        "message": "Counter not found",
        "error": {"message": "Counter not found", "field": "counterId"},
    }


@pytest.mark.asyncio
async def test_unhandled_error_is_logged_and_opaque(caplog):
    response = await unhandled_error_handler(make_request(), RuntimeError("db exploded"))

    assert response.status_code == 500
    assert json.loads(response.body)["message"] == "Unexpected server error."
    assert "db exploded" in caplog.text
