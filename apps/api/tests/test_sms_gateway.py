"""Tests for the Twilio SMS gateway client."""
from urllib.parse import parse_qs

import httpx
import pytest

from app.services.sms_gateway import (
    LogSmsGateway,
    SmsNotConfigured,
    SmsSendError,
    TwilioSmsGateway,
    compute_twilio_signature,
    validate_twilio_signature,
)


def _gateway(handler, **kwargs) -> TwilioSmsGateway:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    kwargs.setdefault("from_number", "+15550009999")
    return TwilioSmsGateway("AC123", "token", http_client=client, **kwargs)


def test_send_posts_form_to_messages_api():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(201, json={"sid": "SM42"})

    message = _gateway(handler).send("+15551234567", "hello")

    assert message.id == "SM42"
    assert seen["path"] == "/2010-04-01/Accounts/AC123/Messages.json"
    assert seen["form"] == {"To": ["+15551234567"], "Body": ["hello"], "From": ["+15550009999"]}


def test_messaging_service_takes_precedence():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(201, json={"sid": "SM1"})

    _gateway(handler, messaging_service_sid="MG1").send("+15551234567", "hi")
    assert seen["form"]["MessagingServiceSid"] == ["MG1"]
    assert "From" not in seen["form"]


def test_rejected_send_raises():
    gateway = _gateway(lambda request: httpx.Response(400, json={"code": 21211, "message": "Invalid To"}))
    with pytest.raises(SmsSendError) as exc:
        gateway.send("+15551234567", "hi")
    assert exc.value.status_code == 400
    assert "Invalid To" in str(exc.value)


def test_transport_error_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    with pytest.raises(SmsSendError):
        _gateway(handler).send("+15551234567", "hi")


def test_missing_credentials():
    gateway = TwilioSmsGateway("", "")
    assert gateway.is_configured is False
    with pytest.raises(SmsNotConfigured):
        gateway.send("+15551234567", "hi")


def test_log_gateway():
    assert LogSmsGateway().send("+15551234567", "hi").id.startswith("log-")


def test_signature_round_trip():
    url = "https://api.example.com/sms/inbound"
    params = {"From": "+15551234567", "Body": "STOP"}
    signature = compute_twilio_signature("secret", url, params)
    assert validate_twilio_signature("secret", url, params, signature)
    assert not validate_twilio_signature("secret", url, {**params, "Body": "START"}, signature)
    assert not validate_twilio_signature("", url, params, signature)
    assert not validate_twilio_signature("secret", url, params, None)
