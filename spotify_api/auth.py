import asyncio
import base64
import hashlib
import logging
import secrets
import threading
import time
import urllib.parse
import webbrowser
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

import httpx

from .errors import AuthenticationError

logger = logging.getLogger(__name__)

SPOTIFY_AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"

DEFAULT_SCOPES = ("user-library-read", "playlist-modify-private")


def _base64url_no_pad(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def code_challenge_from_verifier(verifier: str) -> str:
    """Compute PKCE S256 code_challenge from code_verifier."""

    digest = hashlib.sha256((verifier or "").encode("utf-8")).digest()
    return _base64url_no_pad(digest)


def extract_code_from_redirect_url(redirect_url: str) -> Dict[str, str]:
    """Parse a redirect URL (or bare path) and return {"code", "state", "error"} where present."""

    parsed = urllib.parse.urlparse(str(redirect_url or "").strip())
    qs = urllib.parse.parse_qs(parsed.query)
    out: Dict[str, str] = {}
    if qs.get("code"):
        out["code"] = str(qs["code"][0])
    if qs.get("state"):
        out["state"] = str(qs["state"][0])
    if qs.get("error"):
        out["error"] = str(qs["error"][0])
    return out


def spotify_app_setup_instructions(*, redirect_uri: str) -> str:
    """Return user-facing setup instructions for creating a Spotify Developer app."""

    return (
        "Spotify app setup:\n"
        "1) Go to https://developer.spotify.com/dashboard\n"
        "2) Create an app (or select an existing app)\n"
        f"3) Add this Redirect URI in the app settings: {redirect_uri}\n"
        "4) Copy the Client ID (and optionally the Client Secret) into config.json\n"
        "   as spotify_client_id / spotify_client_secret\n\n"
        "Notes:\n"
        "- Without a client secret the Authorization Code + PKCE flow is used.\n"
        "- Redirect URI must match *exactly* what you configure in the Spotify dashboard.\n"
    )


@dataclass(frozen=True)
class TokenInfo:
    """Token endpoint result. Only token_type/access_token are needed by the API client."""

    access_token: str
    token_type: str
    expires_at: float
    refresh_token: Optional[str] = None
    scope: Optional[str] = None

    @staticmethod
    def from_spotify_token_response(payload: Dict[str, Any], *, now: Optional[float] = None) -> "TokenInfo":
        """Convert Spotify token response JSON into TokenInfo.

        Spotify returns:
        - access_token
        - token_type
        - expires_in (seconds)
        - refresh_token (optional)
        - scope (space-delimited string)
        """

        now_ts = float(time.time() if now is None else now)
        expires_in = float(payload.get("expires_in", 0))

        return TokenInfo(
            access_token=str(payload.get("access_token", "") or ""),
            token_type=str(payload.get("token_type", "") or "Bearer"),
            expires_at=now_ts + expires_in,
            refresh_token=payload.get("refresh_token"),
            scope=payload.get("scope"),
        )


@dataclass(frozen=True)
class PKCEPair:
    code_verifier: str
    code_challenge: str


def generate_pkce_pair() -> PKCEPair:
    # RFC 7636: verifier length 43-128 chars, characters from ALPHA / DIGIT / "-" / "." / "_" / "~"
    verifier = secrets.token_urlsafe(64).rstrip("=")[:128]
    return PKCEPair(code_verifier=verifier, code_challenge=code_challenge_from_verifier(verifier))


@dataclass(frozen=True)
class OAuthSettings:
    client_id: str
    client_secret: str = ""
    scopes: Tuple[str, ...] = DEFAULT_SCOPES
    authorize_url: str = SPOTIFY_AUTHORIZE_URL
    token_url: str = SPOTIFY_TOKEN_URL
    host: str = "127.0.0.1"
    port: int = 3000
    login_path: str = "/spotify/login"
    callback_path: str = "/spotify/callback"

    @staticmethod
    def from_config(config: Dict[str, Any]) -> "OAuthSettings":
        config = config or {}
        return OAuthSettings(
            client_id=str(config.get("spotify_client_id", "")).strip(),
            client_secret=str(config.get("spotify_client_secret", "") or "").strip(),
            scopes=tuple(str(s).strip() for s in (config.get("spotify_scopes") or DEFAULT_SCOPES) if str(s).strip()),
            authorize_url=str(config.get("spotify_authorize_url") or SPOTIFY_AUTHORIZE_URL),
            token_url=str(config.get("spotify_token_url") or SPOTIFY_TOKEN_URL),
            host=str(config.get("oauth_host") or "127.0.0.1"),
            port=int(config.get("oauth_port", 3000)),
            login_path=str(config.get("oauth_login_path") or "/spotify/login"),
            callback_path=str(config.get("oauth_callback_path") or "/spotify/callback"),
        )

    def redirect_uri(self, port: Optional[int] = None) -> str:
        return f"http://{self.host}:{self.port if port is None else port}{self.callback_path}"

    def login_url(self, port: Optional[int] = None) -> str:
        return f"http://{self.host}:{self.port if port is None else port}{self.login_path}"


class _CallbackServer(HTTPServer):
    """Serves the login redirect and receives the OAuth callback."""

    def __init__(self, address, *, login_path: str, callback_path: str, deliver: Callable[[Dict[str, str]], None]):
        super().__init__(address, _CallbackHandler)
        self.login_path = login_path
        self.callback_path = callback_path
        self.deliver = deliver
        self.authorize_url = ""


class _CallbackHandler(BaseHTTPRequestHandler):
    server_version = "SpotifyOAuthCallback/1.0"

    def do_GET(self):  # noqa: N802
        path = urllib.parse.urlparse(self.path).path

        if path == self.server.login_path:
            self.send_response(302)
            self.send_header("Location", self.server.authorize_url)
            self.end_headers()
            return

        if path != self.server.callback_path:
            self._respond(404, "Not found.")
            return

        params = extract_code_from_redirect_url(self.path)
        self.server.deliver(params)

        if params.get("code") and not params.get("error"):
            self._respond(200, "Spotify authorization received. You can close this tab and return to the terminal.")
        else:
            self._respond(400, f"Spotify authorization failed: {params.get('error') or 'no code received'}")

    def _respond(self, status: int, message: str) -> None:
        body = f"<html><body><h2>{message}</h2></body></html>".encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        logger.debug("OAuth callback server: " + format, *args)


class SpotifyAuthenticator:
    """Spotify OAuth authorization-code flow with a local callback server.

    The server is listening before the browser is pointed at it, and it is
    shut down as soon as the callback has been received (or waiting failed).
    With a client secret the code is exchanged using HTTP Basic client
    credentials; without one, PKCE is used instead.
    """

    def __init__(
        self,
        settings: OAuthSettings,
        *,
        open_browser: Optional[Callable[[str], Any]] = webbrowser.open,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self._open_browser = open_browser
        self._transport = transport

    @property
    def uses_pkce(self) -> bool:
        return not self.settings.client_secret

    def get_authorize_url(
        self,
        *,
        redirect_uri: str,
        state: str,
        code_challenge: Optional[str] = None,
        scopes: Optional[Iterable[str]] = None,
    ) -> str:
        if not self.settings.client_id:
            raise AuthenticationError("Missing Spotify client id")

        scope_list = list(scopes if scopes is not None else self.settings.scopes)
        params: Dict[str, str] = {
            "response_type": "code",
            "client_id": self.settings.client_id,
            "scope": " ".join(s for s in scope_list if s),
            "redirect_uri": redirect_uri,
            "state": state,
        }
        if code_challenge:
            params["code_challenge_method"] = "S256"
            params["code_challenge"] = code_challenge

        return f"{self.settings.authorize_url}?{urllib.parse.urlencode(params)}"

    async def authenticate(self) -> TokenInfo:
        loop = asyncio.get_running_loop()
        received: "asyncio.Future[Dict[str, str]]" = loop.create_future()

        def _resolve(params: Dict[str, str]) -> None:
            if not received.done():
                received.set_result(params)

        def deliver(params: Dict[str, str]) -> None:
            # Called on the server thread.
            loop.call_soon_threadsafe(_resolve, params)

        address = (self.settings.host, self.settings.port)
        try:
            server = _CallbackServer(
                address,
                login_path=self.settings.login_path,
                callback_path=self.settings.callback_path,
                deliver=deliver,
            )
        except OSError as e:
            raise AuthenticationError(f"Could not start the OAuth callback server on {address[0]}:{address[1]}: {e}") from e

        port = server.server_port
        redirect_uri = self.settings.redirect_uri(port)
        pkce = generate_pkce_pair() if self.uses_pkce else None
        state = secrets.token_urlsafe(16).rstrip("=")

        # shutdown() blocks until serve_forever() has run, so start it before the try.
        threading.Thread(target=server.serve_forever, name="oauth-callback", daemon=True).start()
        try:
            server.authorize_url = self.get_authorize_url(
                redirect_uri=redirect_uri,
                state=state,
                code_challenge=pkce.code_challenge if pkce else None,
            )

            login_url = self.settings.login_url(port)
            logger.info("Log in to Spotify at %s", login_url)
            if self._open_browser is not None:
                self._open_browser(login_url)

            params = await received
        finally:
            # shutdown() waits for the serve_forever poll loop, keep it off the event loop.
            await loop.run_in_executor(None, server.shutdown)
            server.server_close()

        code = self._code_from_callback(params, state)
        return await self.exchange_code_for_token(
            code=code,
            redirect_uri=redirect_uri,
            code_verifier=pkce.code_verifier if pkce else None,
        )

    @staticmethod
    def _code_from_callback(params: Dict[str, str], expected_state: str) -> str:
        if params.get("error"):
            raise AuthenticationError(f"Spotify returned an error: {params['error']}")
        if params.get("state") != expected_state:
            raise AuthenticationError("OAuth state mismatch on callback")
        code = params.get("code", "")
        if not code:
            raise AuthenticationError("OAuth callback did not contain an authorization code")
        return code

    async def exchange_code_for_token(
        self,
        *,
        code: str,
        redirect_uri: str,
        code_verifier: Optional[str] = None,
    ) -> TokenInfo:
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
        }
        if code_verifier:
            form["client_id"] = self.settings.client_id
            form["code_verifier"] = code_verifier

        payload = await self._post_form(self.settings.token_url, form)
        token = TokenInfo.from_spotify_token_response(payload)
        if not token.access_token:
            raise AuthenticationError(f"Spotify token exchange failed: {payload}")
        return token

    async def _post_form(self, url: str, form: Dict[str, Any]) -> Dict[str, Any]:
        data = {k: str(v) for k, v in (form or {}).items() if v is not None}
        auth = None
        if self.settings.client_secret:
            auth = (self.settings.client_id, self.settings.client_secret)

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=30.0, follow_redirects=False) as client:
                resp = await client.post(
                    url,
                    data=data,
                    auth=auth,
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as e:
            raise AuthenticationError(f"Spotify token request failed: {e}") from e

        if resp.status_code >= 400:
            raise AuthenticationError(f"Spotify token request failed (HTTP {resp.status_code}): {resp.text}")

        try:
            payload = resp.json()
        except ValueError as e:
            raise AuthenticationError(f"Spotify token response was not JSON: {resp.text}") from e

        if not isinstance(payload, dict):
            raise AuthenticationError(f"Spotify token response was not an object: {payload}")

        return payload
