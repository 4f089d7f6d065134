"""Spotify Web API integration: OAuth login, a retrying async client and library helpers."""

from .auth import OAuthSettings, SpotifyAuthenticator, TokenInfo
from .client import EMPTY_BODY, ApiRequest, ClientConfig, SpotifyClient
from .errors import (
    AuthenticationError,
    MalformedPageError,
    ResponseDecodeError,
    SpotifyAPIError,
    SpotifyError,
    SpotifyRequestError,
)
from .library import ADD_TRACKS_LIMIT, SpotifyLibrary
from .pagination import get_all_items

__all__ = [
    "ADD_TRACKS_LIMIT",
    "ApiRequest",
    "AuthenticationError",
    "ClientConfig",
    "EMPTY_BODY",
    "MalformedPageError",
    "OAuthSettings",
    "ResponseDecodeError",
    "SpotifyAPIError",
    "SpotifyAuthenticator",
    "SpotifyClient",
    "SpotifyError",
    "SpotifyLibrary",
    "SpotifyRequestError",
    "TokenInfo",
    "get_all_items",
]
