"""
Async HTTP transport for Param Miner with rate limiting.

The guessing engine only needs ``send(request) -> response``; everything
about connections, TLS and proxies lives here.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol

import httpx

from param_miner.core.exceptions import TransportError
from param_miner.core.logger import get_component_logger

logger = get_component_logger("http_client")


@dataclass
class RequestConfig:
    """Configuration for HTTP requests."""
    timeout: float = 10
    verify_ssl: bool = False
    allow_redirects: bool = False
    max_redirects: int = 10
    proxy: Optional[str] = None
    headers: Optional[Dict[str, str]] = None
    cookies: Optional[Dict[str, str]] = None


@dataclass
class RateLimitConfig:
    """Rate limiting configuration."""
    requests_per_second: float = 0.0
    burst_size: int = 20

    @property
    def enabled(self) -> bool:
        return self.requests_per_second > 0


@dataclass
class ProbeRequest:
    """A fully built request, ready to hand to a transport."""
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    content: Optional[str] = None


@dataclass
class ProbeResponse:
    """The parts of an HTTP response the engine looks at."""
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""
    url: str = ""

    def header(self, name: str, default: str = "") -> str:
        return self.headers.get(name.lower(), default)


class HTTPTransport(Protocol):
    """Capability the guessing engine requires from a transport."""

    async def send(self, request: ProbeRequest) -> ProbeResponse:
        """Send ``request``; raise ``TransportError`` if no response was obtained."""
        ...


class TokenBucket:
    """Token bucket implementation for rate limiting."""

    def __init__(self, rate: float, burst: int):
        self.rate = rate
        self.burst = burst
        self.tokens = burst
        self.last_update = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Acquire a token, waiting if necessary."""
        async with self._lock:
            now = time.monotonic()
            # Add tokens based on elapsed time
            elapsed = now - self.last_update
            self.tokens = min(self.burst, self.tokens + elapsed * self.rate)
            self.last_update = now

            if self.tokens >= 1:
                self.tokens -= 1
                return

            # Wait for next token
            wait_time = (1 - self.tokens) / self.rate
            await asyncio.sleep(wait_time)
            self.last_update = time.monotonic()
            self.tokens = 0


class HttpxTransport:
    """httpx based transport. Does not retry; retries belong to the engine."""

    def __init__(
            self,
            request_config: RequestConfig = None,
            rate_limit_config: RateLimitConfig = None,
            transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.request_config = request_config or RequestConfig()
        self.rate_limit_config = rate_limit_config or RateLimitConfig()

        self.rate_limiter: Optional[TokenBucket] = None
        if self.rate_limit_config.enabled:
            self.rate_limiter = TokenBucket(
                self.rate_limit_config.requests_per_second,
                self.rate_limit_config.burst_size
            )

        self.client_config = {
            "timeout": httpx.Timeout(self.request_config.timeout),
            "verify": self.request_config.verify_ssl,
            "follow_redirects": self.request_config.allow_redirects,
            "max_redirects": self.request_config.max_redirects,
            "headers": self.request_config.headers or {},
            "cookies": self.request_config.cookies or {},
        }
        if self.request_config.proxy:
            self.client_config["proxy"] = self.request_config.proxy
        if transport is not None:
            self.client_config["transport"] = transport

        self._client: Optional[httpx.AsyncClient] = None
        self.requests_sent = 0

    async def __aenter__(self):
        """Async context manager entry."""
        self._client = httpx.AsyncClient(**self.client_config)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send(self, request: ProbeRequest) -> ProbeResponse:
        """
        Send a request and reduce the answer to a ``ProbeResponse``.

        Args:
            request: The request to send

        Returns:
            The response

        Raises:
            TransportError: on connection, timeout, redirect or decoding failure
        """
        if self._client is None:
            raise RuntimeError("HttpxTransport must be used as an async context manager")

        if self.rate_limiter:
            await self.rate_limiter.acquire()

        self.requests_sent += 1
        logger.debug(f"{request.method} {request.url}")
        try:
            response = await self._client.request(
                method=request.method,
                url=request.url,
                headers=request.headers,
                content=request.content.encode("utf-8") if request.content is not None else None,
            )
            body = response.text
        except httpx.TimeoutException as e:
            raise TransportError(f"timeout: {e}", url=request.url) from e
        except (httpx.TransportError, httpx.DecodingError, httpx.TooManyRedirects) as e:
            raise TransportError(f"{type(e).__name__}: {e}", url=request.url) from e

        return ProbeResponse(
            status_code=response.status_code,
            headers={k.lower(): v for k, v in response.headers.items()},
            body=body,
            url=str(response.url),
        )


def create_transport(config, headers: Optional[Dict[str, str]] = None,
                     cookies: Optional[Dict[str, str]] = None) -> HttpxTransport:
    """
    Build a transport from the application ``Config``.

    Args:
        config: Application configuration
        headers: Extra headers sent with every request
        cookies: Cookies sent with every request

    Returns:
        Transport instance (enter it with ``async with`` before use)
    """
    request_headers = {"User-Agent": config.scanning.user_agent}
    if headers:
        request_headers.update(headers)

    request_config = RequestConfig(
        timeout=config.scanning.request_timeout,
        verify_ssl=config.security.verify_ssl,
        allow_redirects=config.security.follow_redirects,
        max_redirects=config.security.max_redirects,
        proxy=config.security.proxy_url,
        headers=request_headers,
        cookies=cookies,
    )
    rate_limit_config = RateLimitConfig(requests_per_second=config.scanning.rate_limit)
    return HttpxTransport(request_config, rate_limit_config)
