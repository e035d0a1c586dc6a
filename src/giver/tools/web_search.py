"""Web search through a local SearXNG instance."""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger("giver.tools.web_search")

DEFAULT_SEARXNG_URL = "http://localhost:8080"
_DEFAULT_MAX_RESULTS = 5
_MAX_RESULTS_CAP = 20
_REQUEST_TIMEOUT = 10.0

_NOT_RUNNING_HINT = (
    "SearXNG is not running. To fix:\n"
    "  1. Install Docker\n"
    "  2. Start a SearXNG container with the JSON output format enabled\n"
    "  3. Point searxng_url in giver.config.json at it"
)


def _format_results(query: str, data: dict[str, Any], max_results: int) -> str:
    results = data.get("results", [])[:max_results]
    if not results:
        return f'No results found for: "{query}"'

    formatted = [
        f"{i}. {r.get('title', '')}\n   {r.get('url', '')}\n   {r.get('content') or '(no snippet)'}"
        for i, r in enumerate(results, start=1)
    ]
    total = data.get("number_of_results", len(results))
    return f'Search results for "{query}" ({total} total):\n\n' + "\n\n".join(formatted)


async def web_search(
    query: str,
    max_results: int | None = None,
    *,
    searxng_url: str = DEFAULT_SEARXNG_URL,
    _client: httpx.AsyncClient | None = None,
) -> str:
    """Query SearXNG and return a numbered list of results.

    Connection problems are reported as text so the model can tell the
    user how to start the search service.
    """
    count = max(1, min(max_results or _DEFAULT_MAX_RESULTS, _MAX_RESULTS_CAP))
    url = f"{searxng_url.rstrip('/')}/search"
    params = {"q": query, "format": "json"}

    try:
        if _client is not None:
            response = await _client.get(url, params=params, timeout=_REQUEST_TIMEOUT)
        else:
            async with httpx.AsyncClient(timeout=_REQUEST_TIMEOUT) as client:
                response = await client.get(url, params=params)
    except httpx.ConnectError:
        logger.warning("SearXNG unreachable at %s", searxng_url)
        return _NOT_RUNNING_HINT
    except httpx.HTTPError as exc:
        logger.warning("Search request failed: %s", exc)
        return f"Search error: {exc}"

    if response.status_code != 200:
        return f"SearXNG returned status {response.status_code}. Is SearXNG running?"

    return _format_results(query, response.json(), count)
