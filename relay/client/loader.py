"""Load surfaces: where the navigation engine's loads actually happen.

A load surface receives a gateway URL and a navigation token, performs the
load, and reports exactly one signal back to the receiver: loaded (with an
optional gateway error payload) or failed (the request raised an httpx error).
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

logger = logging.getLogger(__name__)

PROXY_ERROR_HEADER = "X-Proxy-Error"


@dataclass(frozen=True)
class GatewayErrorPayload:
    """Error body produced by the gateway (or a client-side load failure)."""
    kind: str
    message: str = ""
    details: str = ""
    retry_after: Optional[int] = None

    @classmethod
    def from_response(cls, response: httpx.Response) -> Optional["GatewayErrorPayload"]:
        """Extract the gateway error from a response, if it carries one.

        Only responses marked with the X-Proxy-Error header are gateway
        errors; anything else is upstream content, whatever its status.
        """
        kind = response.headers.get(PROXY_ERROR_HEADER)
        if not kind:
            return None
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        retry_after = body.get("retryAfter")
        if retry_after is None:
            retry_after = response.headers.get("Retry-After")
        try:
            retry_after = int(retry_after) if retry_after is not None else None
        except (TypeError, ValueError):
            retry_after = None

        return cls(
            kind=kind,
            message=str(body.get("message") or ""),
            details=str(body.get("details") or ""),
            retry_after=retry_after,
        )


class LoadSignalReceiver(Protocol):
    def handle_loaded(self, token: int, error: Optional[GatewayErrorPayload] = None) -> None:
        ...

    def handle_load_failed(self, token: int, reason: Optional[str] = None) -> None:
        ...


class LoadSurface(ABC):
    """Performs loads on behalf of the navigation engine."""

    @abstractmethod
    def load(self, proxy_url: str, token: int, receiver: LoadSignalReceiver) -> None:
        """Start loading ``proxy_url``; report back to ``receiver`` with ``token``.

        Must not block. A new call supersedes any load still in flight.
        """


class HttpLoadSurface(LoadSurface):
    """Loads gateway URLs with an httpx client on the running event loop.

    The client is expected to carry the gateway's ``base_url``.
    """

    def __init__(self, http_client: httpx.AsyncClient):
        self._http_client = http_client
        self._inflight: Optional[asyncio.Task] = None
        self.last_response: Optional[httpx.Response] = None

    def load(self, proxy_url: str, token: int, receiver: LoadSignalReceiver) -> None:
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        self._inflight = asyncio.get_running_loop().create_task(
            self._run(proxy_url, token, receiver)
        )

    async def wait(self) -> None:
        """Wait for the load in flight, if any, to report."""
        task = self._inflight
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _run(self, proxy_url: str, token: int, receiver: LoadSignalReceiver) -> None:
        try:
            response = await self._http_client.get(proxy_url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.info(f"Load failed: {type(e).__name__}: {e}")
            receiver.handle_load_failed(token, str(e) or type(e).__name__)
            return
        self.last_response = response
        receiver.handle_loaded(token, GatewayErrorPayload.from_response(response))

    async def aclose(self) -> None:
        """Cancel the load in flight."""
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        await self.wait()
