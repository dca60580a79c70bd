"""HTTP access to the authoritative endpoint's state resource."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import aiohttp
from pydantic import ValidationError

from junctionsync._constants import USER_AGENT
from junctionsync.exceptions import SyncTransportError
from junctionsync.models.messages import StateWriteResponse
from junctionsync.models.state import StateDocument

_logger = logging.getLogger(__name__)


class StateApi(Protocol):
    """Structural interface of the endpoint's network contract.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`StateHttpClient`) concrete.
    """

    async def fetch_state(self) -> StateDocument | None: ...

    async def submit_state(self, doc: StateDocument) -> StateDocument: ...


class StateHttpClient:
    """``GET``/``POST`` client for ``<base_url><api_path>``."""

    def __init__(
        self,
        base_url: str,
        http_session: aiohttp.ClientSession,
        *,
        api_path: str = "/api/state",
        timeout: float = 10.0,
    ) -> None:
        self._url = f"{base_url.rstrip('/')}{api_path}"
        self._endpoint = api_path
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    @property
    def url(self) -> str:
        return self._url

    async def _request(self, method: str, *, body: dict[str, Any] | None = None) -> Any:
        headers = {"accept": "application/json", "user-agent": USER_AGENT}
        _logger.debug("%s %s", method, self._url)

        try:
            async with self._http.request(
                method,
                self._url,
                json=body,
                headers=headers,
                timeout=self._timeout,
            ) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise SyncTransportError(
                        f"HTTP {resp.status} from {self._endpoint}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=self._endpoint,
                    )
        except SyncTransportError:
            raise
        except TimeoutError as exc:
            raise SyncTransportError(
                f"Request to {self._endpoint} timed out",
                endpoint=self._endpoint,
            ) from exc
        except aiohttp.ClientError as exc:
            raise SyncTransportError(
                f"Request to {self._endpoint} failed: {exc}",
                endpoint=self._endpoint,
            ) from exc

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise SyncTransportError(
                f"Invalid JSON from {self._endpoint}: {text[:200]}",
                endpoint=self._endpoint,
            ) from exc

    async def fetch_state(self) -> StateDocument | None:
        """Current authoritative document, or ``None`` when none exists yet."""
        body = await self._request("GET")
        if body is None or body == {}:
            return None
        if not isinstance(body, dict):
            raise SyncTransportError(
                f"Expected a JSON object from {self._endpoint}",
                endpoint=self._endpoint,
            )
        try:
            return StateDocument.model_validate(body)
        except ValidationError as exc:
            raise SyncTransportError(
                f"Invalid state document from {self._endpoint}: {exc}",
                endpoint=self._endpoint,
            ) from exc

    async def submit_state(self, doc: StateDocument) -> StateDocument:
        """Submit a full candidate and return the resulting authoritative document."""
        body = await self._request("POST", body=doc.to_wire())
        try:
            response = StateWriteResponse.model_validate(body)
        except ValidationError as exc:
            raise SyncTransportError(
                f"Invalid write response from {self._endpoint}: {exc}",
                endpoint=self._endpoint,
            ) from exc
        if not response.success:
            raise SyncTransportError(
                f"Write rejected by {self._endpoint}",
                endpoint=self._endpoint,
            )
        return response.state
