from typing import Any, Dict, List

from .errors import MalformedPageError


def _page_items(page: Any) -> List[Any]:
    if not isinstance(page, dict) or not isinstance(page.get("items"), list):
        raise MalformedPageError(f"Expected a page object with an 'items' list, got: {page!r}")
    return page["items"]


async def get_all_items(client, first_page: Dict[str, Any]) -> List[Any]:
    """Return the items of `first_page` and of every page reachable via `next`.

    `next` URLs are absolute and are requested verbatim through `client`.
    Items keep the order in which the pages were fetched. A failing page fetch
    propagates immediately; nothing collected so far is returned.
    """
    items = list(_page_items(first_page))
    page = first_page

    while page.get("next"):
        page = await client.request("GET", page["next"])
        items.extend(_page_items(page))

    return items
