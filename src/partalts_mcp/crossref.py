"""TI cross-reference search scraper.

The cross-reference tool has no public API, so each lookup drives a headless
Chromium session, waits for product links to render, and reads candidates out
of the rendered HTML. This source is best-effort: any failure yields an empty
list instead of an exception.
"""

import logging
from urllib.parse import quote, urljoin

from bs4 import BeautifulSoup
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from .config import (
    CROSSREF_LAUNCH_ARGS,
    CROSSREF_NAVIGATION_TIMEOUT_MS,
    CROSSREF_RESULT_SELECTOR,
    CROSSREF_SELECTOR_TIMEOUT_MS,
    CROSSREF_URL,
    get_random_user_agent,
)
from .match_type import bs4_parent, bs4_text, infer_match_type, is_plausible_part_text
from .models import CrossReferenceAlternative

logger = logging.getLogger(__name__)


def extract_alternatives(html: str, base_url: str) -> list[CrossReferenceAlternative]:
    """Pull candidate parts out of a rendered cross-reference results page.

    Args:
        html: Rendered page HTML
        base_url: URL the page was loaded from, used to absolutize links

    Returns:
        Candidates in document order
    """
    soup = BeautifulSoup(html, "html.parser")
    alternatives = []
    for link in soup.select(CROSSREF_RESULT_SELECTOR):
        text = link.get_text().strip()
        if not is_plausible_part_text(text):
            continue
        href = urljoin(base_url, link.get("href", ""))
        alternatives.append(CrossReferenceAlternative(
            part_number=text,
            match_type=infer_match_type(link, bs4_text, bs4_parent),
            href=href,
            title=(link.get("title") or "").strip() or text,
        ))
    return alternatives


class TICrossReferenceClient:
    """Scrapes ti.com/cross-reference-search for one part number per call.

    Each call launches and closes its own browser; nothing is shared
    between calls.
    """

    def __init__(
        self,
        url_template: str = CROSSREF_URL,
        navigation_timeout_ms: int = CROSSREF_NAVIGATION_TIMEOUT_MS,
        selector_timeout_ms: int = CROSSREF_SELECTOR_TIMEOUT_MS,
        user_agent: str | None = None,
    ):
        self._url_template = url_template
        self._navigation_timeout_ms = navigation_timeout_ms
        self._selector_timeout_ms = selector_timeout_ms
        self._user_agent = user_agent

    def build_url(self, part_number: str) -> str:
        return self._url_template.format(part=quote(part_number.strip(), safe=""))

    async def _render(self, part_number: str) -> tuple[str, str] | None:
        """Load the results page and return (html, url), or None if no results rendered."""
        url = self.build_url(part_number)
        logger.info(f"Cross-reference search for {part_number}: {url}")

        async with async_playwright() as pw:
            browser = await pw.chromium.launch(headless=True, args=CROSSREF_LAUNCH_ARGS)
            try:
                context = await browser.new_context(
                    user_agent=self._user_agent or get_random_user_agent(),
                )
                page = await context.new_page()
                await page.goto(url, wait_until="networkidle", timeout=self._navigation_timeout_ms)
                try:
                    await page.wait_for_selector(
                        CROSSREF_RESULT_SELECTOR, timeout=self._selector_timeout_ms,
                    )
                except PlaywrightTimeoutError:
                    logger.info(f"No cross-reference results rendered for {part_number}")
                    return None
                return await page.content(), page.url
            finally:
                await browser.close()

    async def find_alternatives(self, part_number: str) -> list[CrossReferenceAlternative]:
        """Find cross-reference alternatives for a part number.

        Never raises: launch failures, navigation timeouts and parse errors
        all come back as an empty list.
        """
        try:
            rendered = await self._render(part_number)
            if rendered is None:
                return []
            html, page_url = rendered
            alternatives = extract_alternatives(html, page_url)
        except Exception as e:
            logger.warning(f"Cross-reference search failed for {part_number}: {type(e).__name__}: {e}")
            return []

        logger.info(
            f"Found {len(alternatives)} cross-reference alternatives for {part_number}: "
            f"{[a.part_number for a in alternatives]}"
        )
        return alternatives
