"""Sandbox runtimes: isolated environments that perform one HTTP call each"""

import json
from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import uuid4

import httpx

from app.schemas.sandbox import SandboxRequest


class SandboxResponse:
    """Raw response produced inside a sandbox"""

    def __init__(self, status_code: int, headers: dict, data: Any):
        self.status_code = status_code
        self.headers = headers
        self.data = data

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class Sandbox(ABC):
    """One isolated, single-use execution environment"""

    sandbox_id: str

    @abstractmethod
    async def run(self, request: SandboxRequest) -> SandboxResponse:
        """
        Perform the request inside the sandbox.

        Transport failures propagate as ``httpx.TransportError``.
        """

    @abstractmethod
    async def destroy(self) -> None:
        """Release every resource held by the sandbox. Must be idempotent."""


class SandboxRuntime(ABC):
    """Factory for sandboxes"""

    @abstractmethod
    async def create(self) -> Sandbox:
        ...


def parse_body(response: httpx.Response) -> Any:
    """Parse a response body as JSON, falling back to text"""
    if not response.content:
        return None
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return response.text


class HttpSandbox(Sandbox):
    """
    Sandbox backed by a private ``httpx.AsyncClient``.

    The client has its own connection pool and cookie jar, ignores proxy
    environment variables and does not follow redirects.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.sandbox_id = f"sbx-{uuid4().hex[:12]}"
        self._client: Optional[httpx.AsyncClient] = httpx.AsyncClient(
            transport=transport,
            trust_env=False,
            follow_redirects=False,
            timeout=None
        )

    async def run(self, request: SandboxRequest) -> SandboxResponse:
        if self._client is None:
            raise RuntimeError(f"Sandbox {self.sandbox_id} has been destroyed")

        response = await self._client.request(
            request.method,
            request.url,
            headers=request.headers,
            content=request.body.encode("utf-8") if request.body is not None else None
        )
        return SandboxResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            data=parse_body(response)
        )

    async def destroy(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()


class HttpSandboxRuntime(SandboxRuntime):
    """Creates one ``HttpSandbox`` per execution"""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.transport = transport

    async def create(self) -> Sandbox:
        return HttpSandbox(transport=self.transport)
