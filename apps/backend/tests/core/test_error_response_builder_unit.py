import json

import pytest

from core.error_handler import _build_error_response


def _render(environment: str, **overrides):
    kwargs = {
        "correlation_id": "cid",
        "error_type": "generation_unavailable",
        "code": "generation_fatal",
        "message": "Pipeline generation is temporarily unavailable",
        "environment": environment,
        "details": {"detail": "All generation models failed"},
        "traceback_str": "trace",
        "exception_type": "GenerationFailure",
        "validation_errors": [{"loc": ["body", "prompt"]}],
        "status_code": 503,
    }
    kwargs.update(overrides)
    resp = _build_error_response(**kwargs)
    return resp, json.loads(resp.body)


def test_production_keeps_only_correlation_type_and_code():
    resp, body = _render("production")

    assert resp.status_code == 503
    assert body["success"] is False
    assert body["message"] == "Pipeline generation is temporarily unavailable"
    assert body["error"] == {
        "correlation_id": "cid",
        "type": "generation_unavailable",
        "code": "generation_fatal",
    }


@pytest.mark.parametrize("environment", ["development", "test"])
def test_non_production_includes_diagnostics(environment):
    _, body = _render(environment)

    assert body["error"]["details"] == {"detail": "All generation models failed"}
    assert body["error"]["traceback"] == "trace"
    assert body["error"]["exception_type"] == "GenerationFailure"
    assert body["error"]["validation_errors"] == [{"loc": ["body", "prompt"]}]


def test_empty_optional_fields_are_omitted():
    _, body = _render(
        "development",
        code=None,
        details=None,
        traceback_str=None,
        exception_type=None,
        validation_errors=None,
    )

    assert set(body["error"]) == {"correlation_id", "type"}


def test_headers_are_passed_through():
    resp, _ = _render(
        "production", status_code=429, headers={"Retry-After": "12"}
    )

    assert resp.status_code == 429
    assert resp.headers["Retry-After"] == "12"
