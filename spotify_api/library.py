from typing import Any, Dict, List, Optional, Sequence

from tqdm import tqdm

from utils.chunking import slices

from .pagination import get_all_items

# Spotify accepts at most 100 URIs per "add items to playlist" call.
ADD_TRACKS_LIMIT = 100

SAVED_TRACKS_PAGE_SIZE = 50


class SpotifyLibrary:
    """The handful of Spotify endpoints needed to copy liked songs into a playlist.

    Every call goes through the given SpotifyClient, so retries and rate
    limiting are handled there.
    """

    def __init__(self, client, *, chunk_size: int = ADD_TRACKS_LIMIT, show_progress: bool = True):
        self.client = client
        self.chunk_size = min(int(chunk_size), ADD_TRACKS_LIMIT)
        self.show_progress = show_progress

    async def me(self) -> Dict[str, Any]:
        return await self.client.request("GET", "/v1/me")

    async def liked_tracks(self) -> List[Dict[str, Any]]:
        """Return the track object of every saved track, in library order.

        Items whose track is null (removed from the catalogue) are skipped.
        """
        first_page = await self.client.request(
            "GET",
            "/v1/me/tracks",
            query={"limit": str(SAVED_TRACKS_PAGE_SIZE)},
        )
        items = await get_all_items(self.client, first_page)
        return [item["track"] for item in items if isinstance(item, dict) and item.get("track")]

    async def create_playlist(
        self,
        user_id: str,
        name: str,
        *,
        public: bool = False,
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {"name": name, "public": bool(public)}
        if description:
            body["description"] = description
        return await self.client.request("POST", f"/v1/users/{user_id}/playlists", body=body)

    async def add_tracks(self, playlist_id: str, uris: Sequence[str]) -> int:
        """Append the URIs to the playlist in order, one request per chunk.

        Returns the number of requests made. A failure part-way leaves the
        playlist partially filled.
        """
        chunks = slices(list(uris), self.chunk_size)
        for chunk in tqdm(chunks, desc="Adding tracks", unit="batch", disable=not self.show_progress):
            await self.client.request(
                "POST",
                f"/v1/playlists/{playlist_id}/tracks",
                body={"uris": chunk},
            )
        return len(chunks)


def track_uris(tracks: Sequence[Dict[str, Any]]) -> List[str]:
    return [t["uri"] for t in tracks if t.get("uri")]
