"""Unit tests for the error taxonomy and classifier."""

import asyncio
import json

import httpx
import pytest

from imagio.core.exceptions import ClassifiedError
from imagio.errors.classifier import classify, classify_status
from imagio.errors.codes import ErrorCode


def _response(status: int, text: str = "") -> httpx.Response:
    return httpx.Response(status, text=text, request=httpx.Request("GET", "https://p.test/x"))


class TestErrorCodes:
    """Tests for the closed error registry."""

    def test_taxonomy_is_closed(self):
        """The registry holds exactly the nine job error codes."""
        assert {e.name for e in ErrorCode} == {
            "INVALID_CREDENTIALS",
            "INSUFFICIENT_CREDITS",
            "RATE_LIMITED",
            "REQUEST_FAILED",
            "NETWORK_UNREACHABLE",
            "MALFORMED_RESPONSE",
            "TIMEOUT",
            "CANCELLED",
            "UNKNOWN",
        }


class TestClassifiedError:
    """Tests for ClassifiedError fields and serialization."""

    def test_default_message_from_registry(self):
        error = ClassifiedError(ErrorCode.TIMEOUT)
        assert error.message == ErrorCode.TIMEOUT.spec.message
        assert error.http_status == 504
        assert error.retryable is True

    def test_cause_is_chained(self):
        cause = ValueError("bad json")
        error = ClassifiedError(ErrorCode.MALFORMED_RESPONSE, cause=cause)
        assert error.__cause__ is cause

    def test_to_dict_problem_shape(self):
        error = ClassifiedError(ErrorCode.INSUFFICIENT_CREDITS, "No credits left")
        data = error.to_dict()
        assert data["type"] == "/errors/INSUFFICIENT_CREDITS"
        assert data["title"] == "No credits left"
        assert data["status"] == 402
        assert data["code"] == "INSUFFICIENT_CREDITS"
        assert data["category"] == "client_error"
        assert data["retryable"] is False


class TestClassifyStatus:
    """Tests for HTTP status classification."""

    @pytest.mark.parametrize(
        "status,code",
        [
            (401, ErrorCode.INVALID_CREDENTIALS),
            (402, ErrorCode.INSUFFICIENT_CREDITS),
            (429, ErrorCode.RATE_LIMITED),
            (400, ErrorCode.REQUEST_FAILED),
            (500, ErrorCode.REQUEST_FAILED),
        ],
    )
    def test_status_mapping(self, status, code):
        assert classify_status(status).code is code

    def test_provider_named_in_message(self):
        error = classify_status(402, provider="BLTCY")
        assert "BLTCY account balance" in error.message

    def test_body_included_for_generic_failure(self):
        error = classify_status(500, "upstream exploded")
        assert error.message == "HTTP 500: upstream exploded"

    def test_empty_body_placeholder(self):
        assert classify_status(503).message == "HTTP 503: Unknown error"


class TestClassify:
    """Tests for the total classify() function."""

    def test_already_classified_passes_through(self):
        error = ClassifiedError(ErrorCode.TIMEOUT)
        assert classify(error) is error

    def test_response_non_2xx(self):
        assert classify(_response(429)).code is ErrorCode.RATE_LIMITED

    def test_response_body_truncated(self):
        error = classify(_response(500, "x" * 1000))
        assert len(error.details["body"]) == 200

    def test_successful_response_is_malformed(self):
        assert classify(_response(200)).code is ErrorCode.MALFORMED_RESPONSE

    def test_http_status_error(self):
        response = _response(401)
        exc = httpx.HTTPStatusError("boom", request=response.request, response=response)
        error = classify(exc)
        assert error.code is ErrorCode.INVALID_CREDENTIALS
        assert error.__cause__ is exc

    @pytest.mark.parametrize(
        "exc",
        [
            httpx.ConnectError("refused"),
            httpx.ReadTimeout("stalled"),
            httpx.RemoteProtocolError("aborted"),
            ConnectionResetError("reset"),
        ],
    )
    def test_transport_failures_are_network(self, exc):
        assert classify(exc, provider="BFL").code is ErrorCode.NETWORK_UNREACHABLE

    @pytest.mark.parametrize(
        "exc",
        [
            json.JSONDecodeError("Expecting value", "", 0),
            KeyError("data"),
            IndexError("list index out of range"),
            TypeError("NoneType is not subscriptable"),
        ],
    )
    def test_parse_failures_are_malformed(self, exc):
        assert classify(exc).code is ErrorCode.MALFORMED_RESPONSE

    def test_cancellation(self):
        assert classify(asyncio.CancelledError()).code is ErrorCode.CANCELLED

    def test_anything_else_is_unknown(self):
        assert classify(RuntimeError("???")).code is ErrorCode.UNKNOWN
        assert classify("not an exception").code is ErrorCode.UNKNOWN
