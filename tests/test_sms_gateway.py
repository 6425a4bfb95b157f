import asyncio

import pytest
import requests

from app.core.exceptions import (
    AuthConfigError,
    RateLimitedError,
    ServiceUnavailableError,
    ValidationError,
)
from app.services.otp_gateway import SmsGateway, classify_gateway_failure


class FakeResponse:
    def __init__(self, status_code, body=None, text=""):
        self.status_code = status_code
        self._body = body
        self.text = text

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


def _gateway(session, token="secret-token", route=None):
    return SmsGateway(
        api_token=token,
        base_url="https://sms.example.com/v1/",
        originator="eSignFlow",
        default_country_code="92",
        route=route,
        timeout=3.0,
        session=session,
    )


def test_send_posts_normalized_number():
    session = FakeSession(FakeResponse(200, {"id": "msg-1"}))
    result = asyncio.run(_gateway(session, route="business").send("0499123456", " Your code is 123456 "))

    assert result.success is True
    assert result.recipient == "+92499123456"
    assert result.message_id == "msg-1"

    call = session.calls[0]
    assert call["url"] == "https://sms.example.com/v1/messages"
    assert call["json"] == {
        "body": "Your code is 123456",
        "encoding": "auto",
        "originator": "eSignFlow",
        "recipients": ["+92499123456"],
        "route": "business",
    }
    assert call["headers"]["Authorization"] == "Bearer secret-token"
    assert call["timeout"] == 3.0


def test_non_json_success_body_is_accepted():
    session = FakeSession(FakeResponse(202, text="queued"))
    result = asyncio.run(_gateway(session).send("+31612345678", "code"))
    assert result.message_id is None


@pytest.mark.parametrize(
    "status,body,error_type",
    [
        (400, {"message": "bad recipient"}, ValidationError),
        (401, {"message": "invalid token"}, AuthConfigError),
        (429, None, RateLimitedError),
        (503, None, ServiceUnavailableError),
    ],
)
def test_gateway_status_is_classified(status, body, error_type):
    session = FakeSession(FakeResponse(status, body, text="upstream error"))
    with pytest.raises(error_type) as exc_info:
        asyncio.run(_gateway(session).send("+31612345678", "code"))
    if body:
        assert body["message"] in exc_info.value.error


def test_retryable_flags():
    assert classify_gateway_failure(429, "").retryable is True
    assert classify_gateway_failure(None, "").retryable is True
    assert classify_gateway_failure(401, "").retryable is False
    assert classify_gateway_failure(400, "").retryable is False


@pytest.mark.parametrize("error", [requests.Timeout("slow"), requests.ConnectionError("down")])
def test_transport_failures_are_unavailable(error):
    session = FakeSession(error=error)
    with pytest.raises(ServiceUnavailableError):
        asyncio.run(_gateway(session).send("+31612345678", "code"))


def test_disabled_without_token():
    session = FakeSession(FakeResponse(200, {}))
    gateway = _gateway(session, token=None)
    assert gateway.enabled is False
    with pytest.raises(ServiceUnavailableError):
        asyncio.run(gateway.send("+31612345678", "code"))
    assert session.calls == []


@pytest.mark.parametrize("recipient,message", [("", "code"), ("+31612345678", "  "), ("12", "code")])
def test_invalid_input_never_reaches_the_gateway(recipient, message):
    session = FakeSession(FakeResponse(200, {}))
    with pytest.raises(ValidationError):
        asyncio.run(_gateway(session).send(recipient, message))
    assert session.calls == []
