from typing import Optional


class SpotifyError(Exception):
    """Base class for every error raised by spotify_api."""


class SpotifyAPIError(SpotifyError):
    """The API answered with a status code the client does not handle."""

    def __init__(self, status_code: int, body: str, *, url: Optional[str] = None):
        self.status_code = int(status_code)
        self.body = body
        self.url = url
        super().__init__(f"Invalid status code {self.status_code}: {body}")


class ResponseDecodeError(SpotifyError):
    """A successful response carried a body that is not JSON."""

    def __init__(self, status_code: int, body: str):
        self.status_code = int(status_code)
        self.body = body
        super().__init__(f"Spotify API response was not JSON (status {self.status_code}): {body}")


class SpotifyRequestError(SpotifyError):
    """The request failed at the transport level and is not retryable."""


class MalformedPageError(SpotifyError):
    """A paginated response did not contain an `items` list."""


class AuthenticationError(SpotifyError):
    """The OAuth authorization-code flow failed."""
