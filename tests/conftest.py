"""Shared fakes for the pipeline tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from partalts_mcp.aggregator import PartAggregator
from partalts_mcp.models import CrossReferenceAlternative, EvidenceItem, SynthesizedAlternative


def make_evidence(n: int = 2) -> list[EvidenceItem]:
    return [EvidenceItem(f"Datasheet {i}", f"https://example.com/{i}.pdf", f"snippet {i}") for i in range(n)]


def make_crossref(*parts: str) -> list[CrossReferenceAlternative]:
    return [
        CrossReferenceAlternative(p, "Drop-in replacement", f"https://www.ti.com/product/{p}", p)
        for p in parts
    ]


def make_synthesized(*parts: str) -> list[SynthesizedAlternative]:
    return [SynthesizedAlternative(p, f"{p} description", f"{p} Maker") for p in parts]


@pytest.fixture
def search_client():
    client = MagicMock()
    client.search = AsyncMock(return_value=make_evidence())
    return client


@pytest.fixture
def crossref_client():
    client = MagicMock()
    client.find_alternatives = AsyncMock(return_value=make_crossref("TLV1117", "LM1117"))
    return client


@pytest.fixture
def synthesizer():
    synth = MagicMock()
    synth.configured = True
    synth.batch_alternatives = AsyncMock(return_value=make_synthesized("A100", "B200", "C300"))
    synth.narrative = AsyncMock(return_value="## Alternatives\n\n1. **A100**")
    synth.close = AsyncMock()
    return synth


@pytest.fixture
def aggregator(search_client, crossref_client, synthesizer):
    return PartAggregator(search_client, crossref_client, synthesizer)
