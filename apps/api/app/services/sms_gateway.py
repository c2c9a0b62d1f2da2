"""SMS gateway clients.

``TwilioSmsGateway`` talks to the Twilio Messages REST API with httpx.
``LogSmsGateway`` only logs (dev). Both raise ``SmsNotConfigured`` or
``SmsSendError``; callers decide whether that is fatal.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import uuid
from base64 import b64encode
from dataclasses import dataclass

import httpx

from app.core.config import Settings, settings
from app.core.structured_logging import mask_phone

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


@dataclass(frozen=True)
class SmsMessage:
    id: str


class SmsError(Exception):
    """Base SMS gateway error."""


class SmsNotConfigured(SmsError):
    """Gateway credentials or sender are missing; nothing was sent."""


class SmsSendError(SmsError):
    """Gateway was reached (or not) but the message was not accepted."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TwilioSmsGateway:
    """Twilio Messages API over httpx (sync)."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        *,
        messaging_service_sid: str = "",
        from_number: str = "",
        timeout_seconds: float = 10.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._account_sid = account_sid
        self._auth_token = auth_token
        self._messaging_service_sid = messaging_service_sid
        self._from_number = from_number
        self._http_client = http_client
        self._owns_client = http_client is None
        self._timeout = timeout_seconds

    @property
    def is_configured(self) -> bool:
        return bool(
            self._account_sid
            and self._auth_token
            and (self._messaging_service_sid or self._from_number)
        )

    def _get_client(self) -> httpx.Client:
        if self._http_client is None:
            self._http_client = httpx.Client(timeout=httpx.Timeout(self._timeout))
        return self._http_client

    def close(self) -> None:
        if self._owns_client and self._http_client is not None:
            self._http_client.close()
            self._http_client = None

    def send(self, to: str, body: str) -> SmsMessage:
        if not self.is_configured:
            raise SmsNotConfigured("Twilio credentials or sender missing")

        payload = {"To": to, "Body": body}
        if self._messaging_service_sid:
            payload["MessagingServiceSid"] = self._messaging_service_sid
        else:
            payload["From"] = self._from_number

        url = f"{TWILIO_API_BASE}/Accounts/{self._account_sid}/Messages.json"
        try:
            response = self._get_client().post(
                url,
                data=payload,
                auth=(self._account_sid, self._auth_token),
            )
        except httpx.HTTPError as e:
            logger.warning("Twilio send transport error", extra={"to": mask_phone(to), "error": str(e)})
            raise SmsSendError(f"HTTP error: {e!s}") from e

        if response.status_code >= 400:
            try:
                error_data = response.json() if response.content else {}
            except ValueError:
                error_data = {}
            logger.warning(
                "Twilio send rejected",
                extra={
                    "to": mask_phone(to),
                    "status_code": response.status_code,
                    "twilio_code": error_data.get("code"),
                },
            )
            raise SmsSendError(
                error_data.get("message", "Message send failed"),
                status_code=response.status_code,
            )

        data = response.json()
        return SmsMessage(id=data.get("sid", ""))


class LogSmsGateway:
    """Logs messages instead of sending them."""

    is_configured = True

    def send(self, to: str, body: str) -> SmsMessage:
        message_id = f"log-{uuid.uuid4().hex[:12]}"
        logger.info("SMS (log backend)", extra={"to": mask_phone(to), "sid": message_id, "chars": len(body)})
        return SmsMessage(id=message_id)

    def close(self) -> None:
        return None


def build_sms_gateway(config: Settings = settings):
    """Build the configured SMS gateway. Called once by the app factory."""
    if (config.SMS_BACKEND or "").lower() == "log":
        return LogSmsGateway()
    return TwilioSmsGateway(
        config.TWILIO_ACCOUNT_SID,
        config.TWILIO_AUTH_TOKEN,
        messaging_service_sid=config.TWILIO_MESSAGING_SERVICE_SID,
        from_number=config.TWILIO_FROM_NUMBER,
        timeout_seconds=config.TWILIO_TIMEOUT_SECONDS,
    )


def compute_twilio_signature(auth_token: str, url: str, params: dict[str, str]) -> str:
    """Twilio request signature: base64(HMAC-SHA1(url + sorted key/value pairs))."""
    data = url
    for key in sorted(params.keys()):
        data += key + params[key]
    digest = hmac.new(auth_token.encode("utf-8"), data.encode("utf-8"), hashlib.sha1).digest()
    return b64encode(digest).decode("utf-8")


def validate_twilio_signature(
    auth_token: str, url: str, params: dict[str, str], signature: str | None
) -> bool:
    if not auth_token or not signature:
        return False
    expected = compute_twilio_signature(auth_token, url, params)
    return hmac.compare_digest(expected, signature)
