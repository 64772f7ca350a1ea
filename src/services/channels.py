"""Channel dispatchers that deliver rendered email and SMS messages."""

import logging
from abc import ABC, abstractmethod
from typing import Literal

import httpx
from pydantic import BaseModel, ConfigDict, field_validator

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 425, 429, 500, 502, 503, 504})


class DispatchResult(BaseModel):
    """Outcome of one delivery attempt."""

    model_config = ConfigDict(frozen=True)

    status: Literal["sent", "retryable", "fatal"]
    message_id: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "sent"

    @classmethod
    def sent(cls, message_id: str | None = None) -> "DispatchResult":
        return cls(status="sent", message_id=message_id)

    @classmethod
    def retryable(cls, error: str) -> "DispatchResult":
        return cls(status="retryable", error=error)

    @classmethod
    def fatal(cls, error: str) -> "DispatchResult":
        return cls(status="fatal", error=error)


class ChannelDispatcher(ABC):
    """Interface for email and SMS delivery.

    Implementations return a DispatchResult rather than raising for delivery
    problems; a raised exception is treated by the executor as retryable.
    """

    @abstractmethod
    def send_email(self, to: str, subject: str, body: str) -> DispatchResult:
        """Deliver one email."""
        ...

    @abstractmethod
    def send_sms(self, to: str, body: str) -> DispatchResult:
        """Deliver one SMS."""
        ...


class EmailRequest(BaseModel):
    """Request body for POST /email."""

    model_config = ConfigDict(frozen=True)

    to: str
    subject: str
    body: str

    @field_validator("to")
    @classmethod
    def to_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("to is required")
        return v


class SmsRequest(BaseModel):
    """Request body for POST /sms."""

    model_config = ConfigDict(frozen=True)

    to: str
    body: str

    @field_validator("to")
    @classmethod
    def to_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("to is required")
        return v


class GatewayResponse(BaseModel):
    """Response from the delivery gateway."""

    message_id: str | None = None


class HttpChannelDispatcher(ChannelDispatcher):
    """Delivers messages through an HTTP gateway.

    The gateway exposes ``POST {base_url}/email`` and ``POST {base_url}/sms``.
    Timeouts, connection failures, 408/425/429 and 5xx responses are
    retryable; any other 4xx is a permanent rejection.
    """

    def __init__(self, base_url: str, timeout: float = 10.0, api_key: str | None = None):
        if not base_url or not base_url.strip():
            raise ValueError("base_url is required")
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._api_key = api_key

    def _headers(self) -> dict[str, str]:
        if self._api_key:
            return {"Authorization": f"Bearer {self._api_key}"}
        return {}

    def _post(self, path: str, payload: BaseModel) -> DispatchResult:
        url = f"{self._base_url}/{path}"
        try:
            with httpx.Client(timeout=self._timeout) as client:
                response = client.post(
                    url, json=payload.model_dump(mode="json"), headers=self._headers()
                )
        except httpx.TimeoutException as e:
            return DispatchResult.retryable(f"Request timed out: {e}")
        except httpx.ConnectError as e:
            return DispatchResult.retryable(f"Connection failed: {e}")
        except httpx.RequestError as e:
            return DispatchResult.retryable(f"Request failed: {e}")

        if response.status_code in RETRYABLE_STATUS_CODES:
            return DispatchResult.retryable(
                f"HTTP {response.status_code}: {response.text}"
            )
        if response.status_code >= 400:
            return DispatchResult.fatal(f"HTTP {response.status_code}: {response.text}")

        try:
            data = GatewayResponse.model_validate(response.json())
        except ValueError:
            # Delivered, but the gateway gave us nothing to correlate with.
            logger.warning(f"Gateway returned no JSON body for {url}")
            return DispatchResult.sent()
        return DispatchResult.sent(data.message_id)

    def send_email(self, to: str, subject: str, body: str) -> DispatchResult:
        try:
            request = EmailRequest(to=to, subject=subject, body=body)
        except ValueError as e:
            return DispatchResult.fatal(f"Invalid email request: {e}")
        return self._post("email", request)

    def send_sms(self, to: str, body: str) -> DispatchResult:
        try:
            request = SmsRequest(to=to, body=body)
        except ValueError as e:
            return DispatchResult.fatal(f"Invalid sms request: {e}")
        return self._post("sms", request)
