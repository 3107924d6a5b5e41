"""
Profile Page Feed Example

A "my page" with three tabs backed by REST endpoints (likes, provides and
requests) plus a combined "all" tab. Run against any backend answering
``{"data": {"<collection>": [...], "next_id": "..."}}``.

    MY_PAGE_API=https://api.example.com MY_PAGE_TOKEN=... python examples/my_page_feed.py
"""

import asyncio
import logging
import os

import httpx

from cursorfeed import FeedView, HttpSourceFetcher, ItemKeyer, PaginationConfig

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s %(message)s")


async def main() -> None:
    headers = {"Authorization": f"Bearer {os.environ.get('MY_PAGE_TOKEN', '')}"}
    async with httpx.AsyncClient(
        base_url=os.environ.get("MY_PAGE_API", "http://localhost:8000"),
        headers=headers,
        timeout=10.0,
    ) as client:
        # Images are identified by imageDocId; entries without one fall back
        # to their position in the source
        keyer = ItemKeyer(primary="imageDocId")
        view = FeedView(
            {
                "likes": HttpSourceFetcher(client, "/my-page/likes", "likes"),
                "provides": HttpSourceFetcher(client, "/my-page/provides", "provides"),
                "requests": HttpSourceFetcher(client, "/my-page/requests", "requests"),
            },
            keyers={"likes": keyer, "provides": keyer, "requests": keyer},
            config=PaginationConfig.from_env(),
        )

        # "all": likes first, then provides, then requests
        for _ in range(5):
            await view.load_more()
            state = view.state()
            print(f"all: {len(state.items)} items, has_more={state.has_more}")
            if not state.has_more:
                break

        # Keep this token to continue the combined feed later
        print(f"continuation token: {view.next_cursor_token()}")

        # Switching tab starts that source from scratch
        view.set_filter("provides")
        await view.load_more()
        for item in view.state().items:
            print(f"provides: {item.id} (page {item.group_key})")

        if view.state().last_error is not None:
            print(f"last error: {view.state().last_error}")

        await view.aclose()


if __name__ == "__main__":
    asyncio.run(main())
