# =====================================================
# FILE: app/services/otp_gateway.py
# OTP delivery adapters (SMS REST gateway, SMTP email, simulation)
# =====================================================

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import requests
from fastapi.concurrency import run_in_threadpool
from fastapi_mail.errors import ConnectionErrors

from app.core import email as email_transport
from app.core.exceptions import (
    AuthConfigError,
    RateLimitedError,
    ServiceUnavailableError,
    SigningWorkflowError,
    ValidationError,
)
from app.models.package import SignatureMethod
from app.utils.channel_validation import is_valid_email, is_valid_phone, normalize_phone

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatewayResult:
    success: bool
    recipient: str
    message_id: Optional[str] = None


def classify_gateway_failure(status_code: Optional[int], detail: str) -> SigningWorkflowError:
    """Map a gateway HTTP status onto the workflow error kinds"""
    if status_code == 401:
        return AuthConfigError(
            f"SMS gateway authentication failed: {detail}",
            "SMS service authentication failed. Please contact the sender.",
        )
    if status_code == 400:
        return ValidationError(
            f"SMS gateway rejected the request: {detail}",
            "Invalid SMS request. Please check the phone number format.",
        )
    if status_code == 429:
        return RateLimitedError(
            f"SMS gateway rate limit exceeded: {detail}",
            "SMS rate limit exceeded. Please try again later.",
        )
    if status_code is None or status_code >= 500:
        return ServiceUnavailableError(
            f"SMS gateway unavailable (status {status_code}): {detail}",
            "SMS service is temporarily unavailable. Please try again later.",
        )
    return ServiceUnavailableError(f"SMS sending failed (status {status_code}): {detail}")


class OtpGateway(ABC):
    """Sends a rendered message to one recipient over a single channel"""

    method: SignatureMethod

    @abstractmethod
    async def send(self, recipient: str, message: str, subject: Optional[str] = None) -> GatewayResult:
        ...


class SmsGateway(OtpGateway):
    """
    Spryng-compatible REST SMS gateway.

    Provider specifics (base URL, token, originator, route) come from
    configuration.
    """

    method = SignatureMethod.SMS_OTP

    def __init__(
        self,
        api_token: Optional[str],
        base_url: str,
        originator: str,
        default_country_code: str,
        route: Optional[str] = None,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.api_token = api_token
        self.base_url = base_url.rstrip("/")
        self.originator = originator
        self.default_country_code = default_country_code
        self.route = route
        self.timeout = timeout
        self.session = session or requests.Session()

        if not self.api_token:
            logger.warning("SMS gateway: API token is not configured. SMS sending is disabled.")

    @property
    def enabled(self) -> bool:
        return bool(self.api_token)

    async def send(self, recipient: str, message: str, subject: Optional[str] = None) -> GatewayResult:
        if not self.enabled:
            raise ServiceUnavailableError(
                "SMS service is not enabled. Please configure SMS_API_TOKEN.",
                "SMS verification is currently unavailable.",
            )
        if not recipient or not recipient.strip():
            raise ValidationError("Phone number is required.")
        if not message or not message.strip():
            raise ValidationError("Message content is required.")

        number = normalize_phone(recipient, self.default_country_code)
        if not is_valid_phone(number):
            raise ValidationError(f"Invalid phone number format: {recipient!r}", "Invalid phone number format.")

        payload = {
            "body": message.strip(),
            "encoding": "auto",
            "originator": self.originator,
            "recipients": [number],
        }
        if self.route:
            payload["route"] = self.route

        logger.info(f"Attempting to send SMS to: {number}")
        response = await run_in_threadpool(self._post, payload)

        if response.status_code >= 400:
            detail = self._error_detail(response)
            logger.error(f"SMS failed for {number}. Status: {response.status_code}. Error: {detail}")
            raise classify_gateway_failure(response.status_code, detail)

        message_id = None
        try:
            message_id = response.json().get("id")
        except ValueError:
            logger.warning(f"SMS gateway returned a non-JSON body for {number}")

        logger.info(f"SMS submitted successfully for phone number: {number}")
        return GatewayResult(success=True, recipient=number, message_id=message_id)

    def _post(self, payload: dict) -> requests.Response:
        try:
            return self.session.post(
                f"{self.base_url}/messages",
                json=payload,
                headers={
                    "Accept": "application/json",
                    "Authorization": f"Bearer {self.api_token}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise ServiceUnavailableError(f"SMS gateway timed out: {e}") from e
        except requests.RequestException as e:
            raise ServiceUnavailableError(f"No response from SMS service: {e}") from e

    @staticmethod
    def _error_detail(response: requests.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code} error"
        if isinstance(data, dict) and data.get("message"):
            return str(data["message"])
        return str(data)


class EmailGateway(OtpGateway):
    """Delivers codes through the SMTP transport in app.core.email"""

    method = SignatureMethod.EMAIL_OTP

    async def send(self, recipient: str, message: str, subject: Optional[str] = None) -> GatewayResult:
        if not email_transport.is_email_configured():
            raise ServiceUnavailableError(
                "Email service is not configured. Please set MAIL_USERNAME and MAIL_PASSWORD.",
                "Email verification is currently unavailable.",
            )
        if not is_valid_email(recipient):
            raise ValidationError(f"Invalid email address: {recipient!r}", "Invalid email address.")

        try:
            await email_transport.send_email([recipient], subject or "Verification code", message)
        except ConnectionErrors as e:
            logger.error(f"Email delivery to {recipient} failed: {str(e)}")
            raise ServiceUnavailableError(f"Email delivery failed: {e}") from e

        return GatewayResult(success=True, recipient=recipient)


class SimulatedGateway(OtpGateway):
    """Development gateway: logs the message instead of delivering it"""

    def __init__(self, method: SignatureMethod):
        self.method = method

    async def send(self, recipient: str, message: str, subject: Optional[str] = None) -> GatewayResult:
        logger.info("=" * 70)
        logger.info(f"📨 {self.method.value} SIMULATION (delivery disabled)")
        logger.info("=" * 70)
        logger.info(f"To: {recipient}")
        if subject:
            logger.info(f"Subject: {subject}")
        logger.info(message)
        logger.info("=" * 70)
        return GatewayResult(success=True, recipient=recipient, message_id="simulated")
