import json
import logging
import urllib.parse
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Union

import httpx

from utils.timing import wait

from .errors import ResponseDecodeError, SpotifyAPIError, SpotifyRequestError
from .retry_policy import DEFAULT_BACKOFF_MS, Action, Decision, decide, decide_transport_error

logger = logging.getLogger(__name__)

SPOTIFY_API_BASE_URL = "https://api.spotify.com"

QueryValue = Union[str, List[str]]


class _EmptyBody:
    """Marker for a 200/201 response that carried no body at all."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "EMPTY_BODY"

    def __bool__(self) -> bool:
        return False


# Spotify's PUT/POST endpoints sometimes answer 200 with no body. That is a
# different outcome from 204, which is reported as None.
EMPTY_BODY = _EmptyBody()


@dataclass(frozen=True)
class ClientConfig:
    base_url: str
    token_type: str
    token: str

    @staticmethod
    def from_token(token: Any, *, base_url: str = SPOTIFY_API_BASE_URL) -> "ClientConfig":
        """Build a config from anything exposing token_type/access_token (e.g. TokenInfo)."""
        return ClientConfig(
            base_url=base_url,
            token_type=str(getattr(token, "token_type", "") or "Bearer"),
            token=str(getattr(token, "access_token")),
        )


@dataclass(frozen=True)
class ApiRequest:
    url: str
    method: str = "GET"
    query: Optional[Mapping[str, QueryValue]] = None
    body: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)


class SpotifyClient:
    """Authenticated Spotify Web API client.

    One call to `send` is one logical request: connection resets, 429 and 502
    are retried (without limit) until the API gives a final answer.

    Returns, depending on the status code:
    - the decoded JSON body for 200/201
    - EMPTY_BODY for a 200/201 without a body
    - None for 204
    Any other status raises SpotifyAPIError.
    """

    def __init__(
        self,
        config: ClientConfig,
        *,
        backoff_ms: int = DEFAULT_BACKOFF_MS,
        sleep: Callable[[int], Awaitable[None]] = wait,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if int(backoff_ms) < DEFAULT_BACKOFF_MS:
            raise ValueError(f"backoff_ms must be at least {DEFAULT_BACKOFF_MS}, got {backoff_ms}")

        self.config = config
        self.backoff_ms = int(backoff_ms)
        self._sleep = sleep
        self._http = httpx.AsyncClient(transport=transport, timeout=None, follow_redirects=False)

    async def __aenter__(self) -> "SpotifyClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # -----------------
    # Request building
    # -----------------

    def resolve_url(self, url: str) -> str:
        return urllib.parse.urljoin(self.config.base_url, url)

    def build_headers(self, overrides: Optional[Mapping[str, str]] = None) -> httpx.Headers:
        # Case-insensitive, so an override named "content-type" replaces the default.
        headers = httpx.Headers(
            {
                "Authorization": f"{self.config.token_type} {self.config.token}",
                "Accept": "application/json",
                "Content-Type": "application/json",
            }
        )
        headers.update(overrides or {})
        return headers

    def _build_request(self, req: ApiRequest) -> httpx.Request:
        content = None
        if req.body is not None:
            content = json.dumps(req.body).encode("utf-8")

        return self._http.build_request(
            (req.method or "GET").upper(),
            self.resolve_url(req.url),
            params=dict(req.query) if req.query else None,
            content=content,
            headers=self.build_headers(req.headers),
        )

    # -----------------
    # Sending
    # -----------------

    async def request(
        self,
        method: str,
        url: str,
        *,
        query: Optional[Mapping[str, QueryValue]] = None,
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        return await self.send(ApiRequest(url=url, method=method, query=query, body=body, headers=headers or {}))

    async def get(self, url: str, *, query: Optional[Mapping[str, QueryValue]] = None) -> Any:
        return await self.request("GET", url, query=query)

    async def send(self, req: ApiRequest) -> Any:
        attempt = 0
        while True:
            attempt += 1
            http_request = self._build_request(req)

            try:
                response = await self._http.send(http_request)
            except httpx.TransportError as e:
                decision = decide_transport_error(e, backoff_ms=self.backoff_ms)
                if decision.action is not Action.RETRY:
                    raise SpotifyRequestError(f"Spotify API request failed: {e}") from e
                await self._before_retry(req, attempt, decision)
                continue

            decision = decide(response.status_code, response.headers, backoff_ms=self.backoff_ms)

            if decision.action is Action.RETRY:
                await self._before_retry(req, attempt, decision)
                continue

            if decision.action is Action.NO_CONTENT:
                return None

            if decision.action is Action.DECODE:
                return self._decode(response)

            raise SpotifyAPIError(response.status_code, response.text, url=str(http_request.url))

    async def _before_retry(self, req: ApiRequest, attempt: int, decision: Decision) -> None:
        # 429 waits what the server asked for, everything else the fixed backoff.
        logger.warning(
            "%s %s: %s, retrying in %d ms (attempt %d)",
            req.method.upper(),
            req.url,
            decision.reason,
            decision.delay_ms,
            attempt + 1,
        )
        await self._sleep(decision.delay_ms)

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return EMPTY_BODY

        try:
            return response.json()
        except ValueError as e:
            raise ResponseDecodeError(response.status_code, response.text) from e
