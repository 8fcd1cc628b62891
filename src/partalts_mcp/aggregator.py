"""Per-part pipeline: web evidence, cross-reference scrape, then synthesis.

Evidence sources are optional enrichment: if either fails, the part carries
on with an empty result for that source. Synthesis is the deliverable, so
its failures are left to propagate.
"""

import logging

from .config import ConfigurationError
from .crossref import TICrossReferenceClient
from .models import CrossReferenceAlternative, EvidenceItem, LookupResult, PartResult
from .render import markdown_to_html
from .search import GoogleSearchClient, format_search_summary
from .synthesis import AlternativesSynthesizer, format_crossref_summary

logger = logging.getLogger(__name__)


class PartAggregator:
    """Runs the three sources for one part number, sequentially."""

    def __init__(
        self,
        search_client: GoogleSearchClient,
        crossref_client: TICrossReferenceClient,
        synthesizer: AlternativesSynthesizer,
    ):
        self._search = search_client
        self._crossref = crossref_client
        self._synthesizer = synthesizer

    async def _search_evidence(self, part_number: str) -> list[EvidenceItem]:
        try:
            return await self._search.search(part_number)
        except Exception as e:
            logger.warning(f"Google search failed for {part_number}, continuing without results: {e}")
            return []

    async def _crossref_evidence(self, part_number: str) -> list[CrossReferenceAlternative]:
        try:
            return await self._crossref.find_alternatives(part_number)
        except Exception as e:
            logger.warning(f"Cross-reference search failed for {part_number}, continuing without results: {e}")
            return []

    async def gather_evidence(
        self, part_number: str,
    ) -> tuple[list[EvidenceItem], list[CrossReferenceAlternative]]:
        """Web search first, then cross-reference. Neither raises."""
        search_items = await self._search_evidence(part_number)
        crossref_items = await self._crossref_evidence(part_number)
        return search_items, crossref_items

    async def process_part(self, part_number: str) -> PartResult:
        """Build the batch row for one part.

        Raises whatever synthesis raises; the batch records that as an
        error row.
        """
        search_items, crossref_items = await self.gather_evidence(part_number)
        ai_alternatives = await self._synthesizer.batch_alternatives(
            part_number,
            format_search_summary(search_items),
            format_crossref_summary(crossref_items),
        )
        return PartResult.success(part_number, crossref_items, ai_alternatives)

    async def lookup(self, part_number: str) -> LookupResult:
        """Single lookup: full narrative plus the evidence it was grounded on.

        Raises:
            ConfigurationError: No model credential, checked before any external call
            SynthesisError / openai errors: Model call failed
        """
        if not self._synthesizer.configured:
            raise ConfigurationError("Server is not configured with OPENAI_API_KEY")

        search_items, crossref_items = await self.gather_evidence(part_number)
        logger.info(
            f"Lookup {part_number}: {len(search_items)} search results, "
            f"{len(crossref_items)} cross-reference alternatives"
        )
        raw = await self._synthesizer.narrative(
            part_number,
            format_search_summary(search_items),
            format_crossref_summary(crossref_items),
        )
        return LookupResult(
            html=markdown_to_html(raw),
            raw=raw,
            search_results=search_items,
            ti_alternatives=crossref_items,
        )

    async def close(self) -> None:
        """Release the model client. Search and cross-reference close per call."""
        await self._synthesizer.close()


def build_aggregator() -> PartAggregator:
    """Build a fresh aggregator from environment settings."""
    return PartAggregator(
        search_client=GoogleSearchClient(),
        crossref_client=TICrossReferenceClient(),
        synthesizer=AlternativesSynthesizer(),
    )
