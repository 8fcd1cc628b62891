"""Google Custom Search JSON API client for datasheet and distributor evidence."""

import logging
from typing import Any

import httpx

from .config import (
    AUTHORIZED_DISTRIBUTOR_SITES,
    GOOGLE_API_KEY,
    GOOGLE_CX,
    GOOGLE_SEARCH_URL,
    SEARCH_REQUEST_TIMEOUT,
    SEARCH_RESULT_COUNT,
    ConfigurationError,
)
from .models import EvidenceItem

logger = logging.getLogger(__name__)

NO_SEARCH_RESULTS = "No search results found."


class SearchAPIError(Exception):
    """Google Custom Search request failed or returned an unusable payload."""


def build_query(part_number: str) -> str:
    """Bias the query towards datasheets and authorized distributors."""
    sites = " OR ".join(f"site:{site}" for site in AUTHORIZED_DISTRIBUTOR_SITES)
    return f"{part_number} datasheet OR {sites} filetype:pdf"


def _normalize_item(item: dict[str, Any]) -> EvidenceItem:
    return EvidenceItem(
        title=item.get("title") or "",
        link=item.get("link") or "",
        snippet=item.get("snippet") or "",
    )


def format_search_summary(items: list[EvidenceItem], limit: int = SEARCH_RESULT_COUNT) -> str:
    """Render evidence as a numbered text block for the prompt."""
    if not items:
        return NO_SEARCH_RESULTS
    return "\n\n".join(
        f"{i}. {item.title}\nURL: {item.link}\n{item.snippet}"
        for i, item in enumerate(items[:limit], 1)
    )


class GoogleSearchClient:
    """Async client for the Google Custom Search JSON API."""

    def __init__(
        self,
        api_key: str = GOOGLE_API_KEY,
        engine_id: str = GOOGLE_CX,
        num_results: int = SEARCH_RESULT_COUNT,
        timeout: float = SEARCH_REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = api_key
        self._engine_id = engine_id
        self._num_results = num_results
        self._timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._api_key and self._engine_id)

    async def search(self, part_number: str) -> list[EvidenceItem]:
        """Search for datasheets and distributor listings of a part.

        Args:
            part_number: Manufacturer part number

        Returns:
            Up to num_results evidence items, in the order Google ranked them

        Raises:
            ConfigurationError: API key or engine id not set
            SearchAPIError: Request failed or returned a non-JSON / error payload
        """
        if not self.configured:
            logger.error("Google search requested but GOOGLE_API_KEY / GOOGLE_CX are not set")
            raise ConfigurationError("Server is not configured with GOOGLE_API_KEY and GOOGLE_CX")

        params = {
            "key": self._api_key,
            "cx": self._engine_id,
            "num": str(self._num_results),
            "q": build_query(part_number),
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as http:
                response = await http.get(GOOGLE_SEARCH_URL, params=params)
        except httpx.HTTPError:
            # Sanitize: httpx exceptions may include the full URL with API key
            raise SearchAPIError("Google Search API request failed (network/connection error)")

        if response.status_code >= 400:
            raise SearchAPIError(f"Google Search API returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            raise SearchAPIError("Google Search API returned invalid JSON")

        raw_items = data.get("items") if isinstance(data, dict) else None
        if not isinstance(raw_items, list):
            raw_items = []

        items = [_normalize_item(it) for it in raw_items if isinstance(it, dict)]
        logger.info(f"Google search for {part_number}: {len(items)} items")
        return items[:self._num_results]
