from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional, TypeVar, Generic, Protocol, runtime_checkable
from datetime import datetime, timedelta, timezone
from enum import Enum
import asyncio
import logging
from contextlib import asynccontextmanager

import httpx
from pydantic import BaseModel, Field

from ..core.commands import StandupAction
from ..core.report import StandupReport

ConfigType = TypeVar('ConfigType', bound='IntegrationConfig')

# Enums
class IntegrationStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    ERROR = "error"

# Base configuration
class IntegrationConfig(BaseModel):
    """Base configuration for all integrations."""

    name: str
    enabled: bool = True
    timeout: int = Field(default=30, ge=1, le=300)
    retry_attempts: int = Field(default=2, ge=0, le=10)
    retry_delay: float = Field(default=1.0, ge=0.0, le=60.0)

    model_config = {"extra": "forbid"}

# Data models
class IntegrationCredentials(BaseModel):
    """Bearer token plus optional expiry."""

    access_token: str
    expires_at: Optional[datetime] = None

    @property
    def is_expired(self) -> bool:
        """Check if credentials are expired."""
        if self.expires_at is None:
            return False
        return datetime.now(timezone.utc) >= self.expires_at

# Custom exceptions
class IntegrationError(Exception):
    """Base exception for integration errors."""

    def __init__(
        self,
        message: str,
        integration_name: str,
        status_code: Optional[int] = None,
        response_data: Optional[Dict[str, Any]] = None
    ) -> None:
        super().__init__(message)
        self.integration_name = integration_name
        self.status_code = status_code
        self.response_data = response_data
        self.timestamp = datetime.now(timezone.utc)

class AuthenticationError(IntegrationError):
    """Authentication failed."""
    pass

class AuthorizationError(IntegrationError):
    """Authorization/permission denied."""
    pass

class RateLimitError(IntegrationError):
    """Rate limit exceeded."""

    def __init__(
        self,
        message: str,
        integration_name: str,
        reset_at: datetime,
        **kwargs
    ) -> None:
        super().__init__(message, integration_name, **kwargs)
        self.reset_at = reset_at

class ValidationError(IntegrationError):
    """Data validation failed."""
    pass

class NetworkError(IntegrationError):
    """Network/connectivity error."""
    pass


# Collaborator interfaces used by the standup core

@runtime_checkable
class MessagingClient(Protocol):
    """Outbound chat messaging; implementations raise on delivery failure."""

    async def send_direct_message(
        self,
        user_id: str,
        text: str,
        action: Optional[StandupAction] = None,
        action_label: Optional[str] = None
    ) -> None:
        ...

    async def send_channel_message(self, channel_id: str, text: str) -> Optional[str]:
        ...


class Publisher(ABC):
    """One delivery destination. ``publish`` raises on failure and is safe to re-run."""

    destination: str

    @abstractmethod
    async def publish(self, report: StandupReport) -> Optional[str]:
        """Publish the report, returning a link or file path when there is one."""
        pass


# Base integration class
class BaseIntegration(ABC, Generic[ConfigType]):
    """
    Abstract base class for HTTP-backed integrations.

    Provides common functionality:
    - HTTP client management
    - Retry of transient failures
    - Error mapping
    """

    def __init__(
        self,
        config: ConfigType,
        credentials: Optional[IntegrationCredentials] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> None:
        self.config = config
        self.credentials = credentials
        self.status = IntegrationStatus.DISCONNECTED
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    async def refresh_credentials(self) -> None:
        """Refresh expired credentials."""
        pass

    async def __aenter__(self) -> BaseIntegration[ConfigType]:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @asynccontextmanager
    async def _get_client(self):
        """Get HTTP client with proper lifecycle management."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.config.timeout,
                transport=self._transport
            )

        try:
            yield self._client
        finally:
            # Keep client alive for reuse, close on close()
            pass

    def _get_default_headers(self) -> Dict[str, str]:
        """Get default headers for requests."""
        headers = {
            "User-Agent": f"Standup-Scribe/{self.config.name}",
            "Accept": "application/json",
            "Content-Type": "application/json"
        }

        if self.credentials and self.credentials.access_token:
            headers["Authorization"] = f"Bearer {self.credentials.access_token}"

        return headers

    async def _make_request(
        self,
        method: str,
        url: str,
        **kwargs
    ) -> httpx.Response:
        """
        Make HTTP request with error handling and retry logic.

        Server errors and network failures are retried with exponential
        backoff inside a single call; anything left over is raised so that
        the delivery engine can schedule its own retry.

        Raises:
            Various IntegrationError subclasses
        """
        if self.credentials is None or self.credentials.is_expired:
            await self.refresh_credentials()

        extra_headers = kwargs.pop("headers", {})

        for attempt in range(self.config.retry_attempts + 1):
            try:
                async with self._get_client() as client:
                    headers = {**self._get_default_headers(), **extra_headers}
                    response = await client.request(method, url, headers=headers, **kwargs)

                    if response.is_success:
                        return response
                    elif response.status_code == 401:
                        raise AuthenticationError(
                            "Authentication failed",
                            self.config.name,
                            response.status_code,
                            self._safe_json(response)
                        )
                    elif response.status_code == 403:
                        raise AuthorizationError(
                            "Authorization denied",
                            self.config.name,
                            response.status_code,
                            self._safe_json(response)
                        )
                    elif response.status_code == 429:
                        retry_after = self._get_retry_after(response)
                        raise RateLimitError(
                            "Rate limit exceeded",
                            self.config.name,
                            datetime.now(timezone.utc) + timedelta(seconds=retry_after),
                            status_code=response.status_code
                        )
                    elif 400 <= response.status_code < 500:
                        raise ValidationError(
                            f"Client error: {response.status_code}",
                            self.config.name,
                            response.status_code,
                            self._safe_json(response)
                        )
                    else:
                        # Server error - retry
                        if attempt < self.config.retry_attempts:
                            await asyncio.sleep(
                                self.config.retry_delay * (2 ** attempt)
                            )
                            continue

                        raise IntegrationError(
                            f"Server error: {response.status_code}",
                            self.config.name,
                            response.status_code,
                            self._safe_json(response)
                        )

            except IntegrationError:
                raise

            except httpx.TimeoutException as e:
                if attempt < self.config.retry_attempts:
                    await asyncio.sleep(self.config.retry_delay * (2 ** attempt))
                    continue

                raise NetworkError(
                    f"Request timeout after {self.config.timeout}s",
                    self.config.name
                ) from e

            except httpx.NetworkError as e:
                if attempt < self.config.retry_attempts:
                    await asyncio.sleep(self.config.retry_delay * (2 ** attempt))
                    continue

                raise NetworkError(
                    f"Network error: {str(e)}",
                    self.config.name
                ) from e

        # Should never reach here
        raise IntegrationError(
            "Request failed after all retries",
            self.config.name
        )

    def _get_retry_after(self, response: httpx.Response) -> int:
        """Get retry-after seconds from response."""
        retry_after = response.headers.get("retry-after", "60")
        try:
            return int(retry_after)
        except ValueError:
            return 60

    def _safe_json(self, response: httpx.Response) -> Optional[Dict[str, Any]]:
        """Safely parse JSON response."""
        try:
            return response.json()
        except ValueError:
            return None

    async def close(self) -> None:
        """Close HTTP client and cleanup resources."""
        if self._client:
            await self._client.aclose()
            self._client = None

        self.status = IntegrationStatus.DISCONNECTED


# Export types and utilities
__all__ = [
    "BaseIntegration",
    "IntegrationConfig",
    "IntegrationCredentials",
    "IntegrationStatus",
    "IntegrationError",
    "AuthenticationError",
    "AuthorizationError",
    "RateLimitError",
    "ValidationError",
    "NetworkError",
    "MessagingClient",
    "Publisher"
]
