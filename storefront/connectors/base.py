"""
Base connector class for the payment gateway and logistics carrier
"""
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional
from datetime import datetime
import asyncio

import aiohttp

from storefront.config import Settings, get_settings
from storefront.utils.logger import log
from storefront.utils.retry import RETRYABLE_STATUS_CODES, calculate_backoff, is_retryable_error


class UpstreamError(Exception):
    """
    An external API failed or rejected a request.

    `payload` is the upstream's decoded error body when there was one; it is
    the operator's only diagnostic and is passed through unchanged.
    """

    def __init__(self, message: str, status: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.payload = payload

    @property
    def transient(self) -> bool:
        """Unreachable (no status) or a rate-limit/server-side status."""
        return self.status is None or self.status in RETRYABLE_STATUS_CODES

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "status": self.status, "details": self.payload}


class NotConfiguredError(UpstreamError):
    """Credentials for an upstream are missing from settings."""

    def __init__(self, message: str):
        super().__init__(message, status=None, payload=None)

    @property
    def transient(self) -> bool:
        return False


class BaseConnector(ABC):
    """Base class for outbound API connectors"""

    # Retry configuration (can be overridden by subclasses)
    RETRY_MAX_ATTEMPTS = 3
    RETRY_BASE_DELAY = 1.0  # seconds
    RETRY_MAX_DELAY = 10.0  # seconds

    error_class = UpstreamError

    def __init__(self, name: str, base_url: str, settings: Optional[Settings] = None):
        self.name = name
        self.settings = settings or get_settings()
        self.base_url = base_url.rstrip("/")
        self.last_request = None
        self.request_count = 0
        self.error_count = 0
        self.retry_count = 0

    @abstractmethod
    async def validate_connection(self) -> bool:
        """Validate credentials are configured and accepted"""
        pass

    def _headers(self) -> Dict[str, str]:
        return {"Accept": "application/json", "Content-Type": "application/json"}

    def _error_message(self, data: Any, status: int) -> str:
        """Pull the upstream's own message out of an error body."""
        if isinstance(data, dict):
            message = data.get("message")
            if message:
                return str(message)
        return f"{self.name} API returned status {status}"

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        auth: Optional[aiohttp.BasicAuth] = None,
    ) -> Any:
        """
        Send one request and decode the JSON body.

        Raises error_class with the decoded body attached on any status >= 400,
        and with no status when the upstream could not be reached.
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        session_kwargs = {}
        if self.settings.outbound_timeout_seconds:
            session_kwargs["timeout"] = aiohttp.ClientTimeout(total=self.settings.outbound_timeout_seconds)

        self.last_request = datetime.utcnow()
        self.request_count += 1
        try:
            async with aiohttp.ClientSession(**session_kwargs) as session:
                async with session.request(
                    method,
                    url,
                    json=json,
                    params=params,
                    headers=headers or self._headers(),
                    auth=auth,
                ) as response:
                    try:
                        data = await response.json(content_type=None)
                    except ValueError:
                        data = {"raw": await response.text()}

                    if response.status >= 400:
                        self.error_count += 1
                        raise self.error_class(
                            self._error_message(data, response.status),
                            status=response.status,
                            payload=data,
                        )
                    return data
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.error_count += 1
            log.error(f"{self.name} {method} {path} failed: {e}")
            raise self.error_class(f"{self.name} API unreachable: {e}") from e

    async def _retry_operation(
        self,
        operation: Callable,
        operation_name: str = "operation",
    ) -> Any:
        """
        Execute an async operation, retrying transient failures with backoff.

        Rejections (4xx, missing configuration) are raised on the first attempt.
        """
        for attempt in range(1, self.RETRY_MAX_ATTEMPTS + 1):
            try:
                result = await operation()
                if attempt > 1:
                    self.retry_count += (attempt - 1)
                return result

            except Exception as e:
                transient = getattr(e, "transient", None)
                retryable = transient if transient is not None else is_retryable_error(e)
                if attempt >= self.RETRY_MAX_ATTEMPTS or not retryable:
                    raise

                delay = calculate_backoff(
                    attempt,
                    base_delay=self.RETRY_BASE_DELAY,
                    max_delay=self.RETRY_MAX_DELAY
                )
                log.warning(
                    f"{self.name} {operation_name} attempt {attempt} failed: {e}. "
                    f"Retrying in {delay:.1f}s..."
                )
                await asyncio.sleep(delay)

        raise RuntimeError("Retry exhausted")

    def get_status(self) -> Dict[str, Any]:
        """Get connector status"""
        return {
            "name": self.name,
            "base_url": self.base_url,
            "last_request": self.last_request.isoformat() if self.last_request else None,
            "request_count": self.request_count,
            "error_count": self.error_count,
            "retry_count": self.retry_count,
            "retry_config": {
                "max_attempts": self.RETRY_MAX_ATTEMPTS,
                "base_delay": self.RETRY_BASE_DELAY,
                "max_delay": self.RETRY_MAX_DELAY
            }
        }
