import asyncio
import base64
import hashlib
import os
import socket
import threading
import unittest
import urllib.parse
from unittest import mock

import httpx

# Ensure local imports work when running this file directly.
THIS_DIR = os.path.dirname(os.path.abspath(__file__))
if THIS_DIR not in os.sys.path:
    os.sys.path.insert(0, THIS_DIR)

from spotify_api.auth import (
    OAuthSettings,
    SpotifyAuthenticator,
    TokenInfo,
    _CallbackServer,
    code_challenge_from_verifier,
    extract_code_from_redirect_url,
)
from spotify_api.errors import AuthenticationError


class TestSpotifyAuthHelpers(unittest.TestCase):
    def test_code_challenge_matches_sha256_base64url_no_pad(self):
        verifier = "abc"
        expected = base64.urlsafe_b64encode(hashlib.sha256(verifier.encode("utf-8")).digest()).decode("utf-8").rstrip("=")
        self.assertEqual(code_challenge_from_verifier(verifier), expected)
        self.assertNotIn("=", code_challenge_from_verifier(verifier))

    def test_extract_code_from_redirect_url(self):
        parsed = extract_code_from_redirect_url("http://127.0.0.1:3000/spotify/callback?code=AAA&state=BBB")
        self.assertEqual(parsed, {"code": "AAA", "state": "BBB"})
        self.assertEqual(extract_code_from_redirect_url("/spotify/callback?error=access_denied"), {"error": "access_denied"})

    def test_settings_from_config(self):
        settings = OAuthSettings.from_config(
            {
                "spotify_client_id": " cid ",
                "spotify_scopes": ["user-library-read", "", "playlist-modify-private"],
                "oauth_port": 8888,
                "oauth_callback_path": "/cb",
            }
        )
        self.assertEqual(settings.client_id, "cid")
        self.assertEqual(settings.client_secret, "")
        self.assertEqual(settings.scopes, ("user-library-read", "playlist-modify-private"))
        self.assertEqual(settings.redirect_uri(), "http://127.0.0.1:8888/cb")
        self.assertEqual(settings.login_url(), "http://127.0.0.1:8888/spotify/login")

    def test_authorize_url(self):
        auth = SpotifyAuthenticator(OAuthSettings(client_id="cid"), open_browser=None)
        url = auth.get_authorize_url(redirect_uri="http://127.0.0.1:3000/spotify/callback", state="s1")
        parsed = urllib.parse.urlparse(url)
        qs = urllib.parse.parse_qs(parsed.query)

        self.assertEqual(f"{parsed.scheme}://{parsed.netloc}{parsed.path}", "https://accounts.spotify.com/authorize")
        self.assertEqual(qs["response_type"], ["code"])
        self.assertEqual(qs["client_id"], ["cid"])
        self.assertEqual(qs["scope"], ["user-library-read playlist-modify-private"])
        self.assertEqual(qs["redirect_uri"], ["http://127.0.0.1:3000/spotify/callback"])
        self.assertEqual(qs["state"], ["s1"])
        self.assertNotIn("code_challenge", qs)

    def test_authorize_url_requires_client_id(self):
        auth = SpotifyAuthenticator(OAuthSettings(client_id=""), open_browser=None)
        with self.assertRaises(AuthenticationError):
            auth.get_authorize_url(redirect_uri="http://x/cb", state="s")

    def test_token_info_from_response(self):
        token = TokenInfo.from_spotify_token_response(
            {"access_token": "at", "token_type": "Bearer", "expires_in": 3600, "scope": "user-library-read"},
            now=1000.0,
        )
        self.assertEqual(token.access_token, "at")
        self.assertEqual(token.token_type, "Bearer")
        self.assertEqual(token.expires_at, 4600.0)
        self.assertIsNone(token.refresh_token)

        self.assertEqual(TokenInfo.from_spotify_token_response({"access_token": "x"}).token_type, "Bearer")


class FakeBrowser:
    """Follows the login redirect like a browser would, then hits the callback."""

    def __init__(self, callback_params=None, tamper_state=False):
        self.callback_params = callback_params
        self.tamper_state = tamper_state
        self.authorize_params = None
        self.login_url = None
        self.callback_status = None
        self.errors = []
        self._thread = None

    def __call__(self, login_url):
        self.login_url = login_url
        self._thread = threading.Thread(target=self._visit, daemon=True)
        self._thread.start()
        return True

    def _visit(self):
        try:
            with httpx.Client(trust_env=False, timeout=5.0) as http:
                resp = http.get(self.login_url)
                location = resp.headers["location"]
                self.authorize_params = urllib.parse.parse_qs(urllib.parse.urlparse(location).query)

                redirect_uri = self.authorize_params["redirect_uri"][0]
                state = self.authorize_params["state"][0]
                params = dict(self.callback_params or {"code": "the-code"})
                params["state"] = "forged" if self.tamper_state else state

                callback = http.get(f"{redirect_uri}?{urllib.parse.urlencode(params)}")
                self.callback_status = callback.status_code
        except Exception as e:  # surfaced through self.errors in the test
            self.errors.append(e)

    def join(self):
        if self._thread is not None:
            self._thread.join(timeout=5)


class TokenEndpoint:
    def __init__(self, response=None):
        self.response = response or httpx.Response(
            200,
            json={"access_token": "AT", "token_type": "Bearer", "expires_in": 3600, "refresh_token": "RT"},
        )
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        return self.response

    def form(self, index=0):
        return dict(urllib.parse.parse_qsl(self.requests[index].content.decode("utf-8")))


class TestSpotifyAuthenticatorFlow(unittest.IsolatedAsyncioTestCase):
    def make_auth(self, *, client_secret="", token_endpoint=None, browser=None):
        self.token_endpoint = token_endpoint or TokenEndpoint()
        self.browser = browser or FakeBrowser()
        settings = OAuthSettings(client_id="cid", client_secret=client_secret, port=0)
        return SpotifyAuthenticator(
            settings,
            open_browser=self.browser,
            transport=httpx.MockTransport(self.token_endpoint),
        )

    async def test_confidential_client_flow(self):
        auth = self.make_auth(client_secret="secret")

        token = await asyncio.wait_for(auth.authenticate(), timeout=10)
        self.browser.join()

        self.assertEqual(self.browser.errors, [])
        self.assertEqual(self.browser.callback_status, 200)
        self.assertEqual(token.access_token, "AT")
        self.assertEqual(token.token_type, "Bearer")

        request = self.token_endpoint.requests[0]
        expected_basic = base64.b64encode(b"cid:secret").decode("ascii")
        self.assertEqual(request.headers["Authorization"], f"Basic {expected_basic}")

        form = self.token_endpoint.form()
        self.assertEqual(form["grant_type"], "authorization_code")
        self.assertEqual(form["code"], "the-code")
        self.assertEqual(form["redirect_uri"], self.browser.authorize_params["redirect_uri"][0])
        self.assertNotIn("code_verifier", form)

    async def test_public_client_uses_pkce(self):
        auth = self.make_auth()

        await asyncio.wait_for(auth.authenticate(), timeout=10)
        self.browser.join()

        self.assertEqual(self.browser.authorize_params["code_challenge_method"], ["S256"])
        form = self.token_endpoint.form()
        self.assertEqual(form["client_id"], "cid")
        self.assertEqual(
            code_challenge_from_verifier(form["code_verifier"]),
            self.browser.authorize_params["code_challenge"][0],
        )
        self.assertNotIn("Authorization", self.token_endpoint.requests[0].headers)

    async def test_callback_server_is_released(self):
        auth = self.make_auth(client_secret="secret")
        await asyncio.wait_for(auth.authenticate(), timeout=10)
        self.browser.join()

        with httpx.Client(trust_env=False, timeout=2.0) as http:
            with self.assertRaises(httpx.ConnectError):
                http.get(self.browser.login_url)

    async def test_server_shutdown_runs_off_the_event_loop_thread(self):
        shutdown_threads = []
        real_shutdown = _CallbackServer.shutdown

        def recording_shutdown(server):
            shutdown_threads.append(threading.current_thread())
            real_shutdown(server)

        auth = self.make_auth(client_secret="secret")
        with mock.patch.object(_CallbackServer, "shutdown", recording_shutdown):
            await asyncio.wait_for(auth.authenticate(), timeout=10)
        self.browser.join()

        self.assertEqual(len(shutdown_threads), 1)
        self.assertIsNot(shutdown_threads[0], threading.current_thread())

    async def test_error_on_callback_fails(self):
        auth = self.make_auth(browser=FakeBrowser(callback_params={"error": "access_denied"}))

        with self.assertRaises(AuthenticationError) as ctx:
            await asyncio.wait_for(auth.authenticate(), timeout=10)
        self.browser.join()

        self.assertIn("access_denied", str(ctx.exception))
        self.assertEqual(self.browser.callback_status, 400)
        self.assertEqual(self.token_endpoint.requests, [])

    async def test_state_mismatch_fails(self):
        auth = self.make_auth(browser=FakeBrowser(tamper_state=True))
        with self.assertRaises(AuthenticationError):
            await asyncio.wait_for(auth.authenticate(), timeout=10)
        self.browser.join()
        self.assertEqual(self.token_endpoint.requests, [])

    async def test_token_endpoint_error_fails(self):
        auth = self.make_auth(token_endpoint=TokenEndpoint(httpx.Response(400, json={"error": "invalid_grant"})))
        with self.assertRaises(AuthenticationError) as ctx:
            await asyncio.wait_for(auth.authenticate(), timeout=10)
        self.browser.join()
        self.assertIn("invalid_grant", str(ctx.exception))

    async def test_token_without_access_token_fails(self):
        auth = self.make_auth(token_endpoint=TokenEndpoint(httpx.Response(200, json={"token_type": "Bearer"})))
        with self.assertRaises(AuthenticationError):
            await asyncio.wait_for(auth.authenticate(), timeout=10)
        self.browser.join()

    async def test_port_in_use_fails(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
            busy.bind(("127.0.0.1", 0))
            busy.listen(1)
            port = busy.getsockname()[1]

            opened = []
            auth = SpotifyAuthenticator(OAuthSettings(client_id="cid", port=port), open_browser=opened.append)
            with self.assertRaises(AuthenticationError):
                await auth.authenticate()
            self.assertEqual(opened, [])


if __name__ == "__main__":
    unittest.main(verbosity=2)
