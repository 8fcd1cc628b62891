"""Tests for prompt building, reply parsing, and the OpenAI synthesizer."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from partalts_mcp.config import ConfigurationError
from partalts_mcp.models import CrossReferenceAlternative, SynthesizedAlternative
from partalts_mcp.synthesis import (
    AlternativesSynthesizer,
    SynthesisError,
    build_batch_prompt,
    build_lookup_prompt,
    format_crossref_summary,
    parse_batch_reply,
)

THREE_LINES = """Here are three alternatives:
1. LM1117 - 800mA LDO regulator, SOT-223 - Texas Instruments
2. AMS1117-ADJ - 1A adjustable LDO, SOT-223 - Advanced Monolithic Systems
3. LD1117AS - 1A adjustable LDO, SOT-223 - STMicroelectronics
"""


def _fake_openai(content: str | None) -> MagicMock:
    message = MagicMock()
    message.content = content
    choice = MagicMock()
    choice.message = message
    response = MagicMock()
    response.choices = [choice]

    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=response)
    return client


class TestParseBatchReply:
    def test_three_well_formed(self):
        alts = parse_batch_reply(THREE_LINES)
        assert alts == [
            SynthesizedAlternative("LM1117", "800mA LDO regulator, SOT-223", "Texas Instruments"),
            SynthesizedAlternative("AMS1117-ADJ", "1A adjustable LDO, SOT-223", "Advanced Monolithic Systems"),
            SynthesizedAlternative("LD1117AS", "1A adjustable LDO, SOT-223", "STMicroelectronics"),
        ]

    def test_malformed_lines_dropped(self):
        reply = "\n".join([
            "1. TLC555 - CMOS timer - Texas Instruments",
            "2. **ICM7555** - CMOS timer - Renesas",  # markdown bold
            "3. LMC555 - CMOS timer",  # missing manufacturer
            "4. SE555 - Precision timer - Texas Instruments",
        ])
        alts = parse_batch_reply(reply)
        assert [a.part_number for a in alts] == ["TLC555", "SE555"]
        for alt in alts:
            assert alt.part_number and alt.description and alt.manufacturer

    def test_truncates_to_three(self):
        reply = "\n".join(f"{i}. PART{i} - Description {i} - Maker {i}" for i in range(1, 6))
        assert len(parse_batch_reply(reply)) == 3

    def test_unnumbered_and_lowercase_ignored(self):
        reply = "- LM317 - Regulator - TI\n1. lm317 - Regulator - TI\nLM317 - Regulator - TI"
        assert parse_batch_reply(reply) == []

    def test_indented_lines(self):
        alts = parse_batch_reply("   1. OPA2333 - Zero-drift op amp - Texas Instruments   ")
        assert alts == [SynthesizedAlternative("OPA2333", "Zero-drift op amp", "Texas Instruments")]

    def test_empty(self):
        assert parse_batch_reply("") == []


class TestFormatCrossrefSummary:
    def test_placeholder(self):
        assert format_crossref_summary([]) == "No TI cross-reference results found."

    def test_numbered(self):
        alts = [
            CrossReferenceAlternative("LM317HV", "Drop-in replacement", "https://www.ti.com/product/LM317HV", "LM317HV"),
        ]
        assert format_crossref_summary(alts) == (
            "TI Cross-Reference Alternatives Found:\n"
            "1. LM317HV - LM317HV\nURL: https://www.ti.com/product/LM317HV"
        )


class TestPrompts:
    def test_lookup_prompt_grounding_and_ranking(self):
        prompt = build_lookup_prompt("LM317", "1. LM317 datasheet", "No TI cross-reference results found.")
        assert "LM317" in prompt
        assert "1. LM317 datasheet" in prompt
        assert "No TI cross-reference results found." in prompt
        assert "must NOT be from the same manufacturer" in prompt
        ranking = ["Package Match", "Functional Match", "Lifecycle Status",
                   "Distributor Availability", "Price Competitiveness"]
        positions = [prompt.index(r) for r in ranking]
        assert positions == sorted(positions)

    def test_batch_prompt_format(self):
        prompt = build_batch_prompt("NE555", "No search results found.", "No TI cross-reference results found.")
        assert "exactly 3 alternatives" in prompt
        assert "1. [Part Number] - [Brief Description] - [Manufacturer]" in prompt
        assert "Different manufacturers than the original" in prompt


class TestAlternativesSynthesizer:
    @pytest.mark.asyncio
    async def test_batch_alternatives(self):
        client = _fake_openai(THREE_LINES)
        synth = AlternativesSynthesizer(model="gpt-4o", client=client)

        alts = await synth.batch_alternatives("LM317", "search", "crossref")

        assert len(alts) == 3
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["max_tokens"] == 2000
        assert kwargs["temperature"] == 0.3
        assert kwargs["messages"][0]["role"] == "system"
        assert "LM317" in kwargs["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_batch_two_good_two_bad(self):
        reply = "1. A1234 - desc - Maker\n2. broken line\n3. B5678 - desc - Maker\nSummary: -"
        synth = AlternativesSynthesizer(client=_fake_openai(reply))
        alts = await synth.batch_alternatives("X100", "s", "c")
        assert [a.part_number for a in alts] == ["A1234", "B5678"]

    @pytest.mark.asyncio
    async def test_narrative(self):
        client = _fake_openai("## Alternatives\n1. **TLV1117**")
        synth = AlternativesSynthesizer(client=client)

        text = await synth.narrative("LM317", "search", "crossref")

        assert text == "## Alternatives\n1. **TLV1117**"
        assert client.chat.completions.create.call_args.kwargs["max_tokens"] == 16384

    @pytest.mark.asyncio
    async def test_empty_reply_is_error(self):
        synth = AlternativesSynthesizer(client=_fake_openai("   "))
        with pytest.raises(SynthesisError):
            await synth.batch_alternatives("LM317", "s", "c")

    @pytest.mark.asyncio
    async def test_no_choices_is_error(self):
        client = _fake_openai("unused")
        client.chat.completions.create.return_value.choices = []
        synth = AlternativesSynthesizer(client=client)
        with pytest.raises(SynthesisError):
            await synth.narrative("LM317", "s", "c")

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        synth = AlternativesSynthesizer(api_key="")
        assert not synth.configured
        with pytest.raises(ConfigurationError):
            await synth.batch_alternatives("LM317", "s", "c")

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(side_effect=RuntimeError("401 Unauthorized"))
        synth = AlternativesSynthesizer(client=client)
        with pytest.raises(RuntimeError, match="401"):
            await synth.batch_alternatives("LM317", "s", "c")
        assert client.chat.completions.create.await_count == 1

    @pytest.mark.asyncio
    async def test_compare(self):
        client = _fake_openai("| Spec | A | B |\n|---|---|---|\n| Vin | 40V | 37V |")
        synth = AlternativesSynthesizer(client=client)
        text = await synth.compare("LM317", "LM1117")
        assert "Vin" in text
        prompt = client.chat.completions.create.call_args.kwargs["messages"][1]["content"]
        assert '"LM317" vs "LM1117"' in prompt


class TestClientLifecycle:
    @pytest.mark.asyncio
    async def test_close_releases_owned_client(self):
        openai_client = _fake_openai(THREE_LINES)
        openai_client.close = AsyncMock()
        with patch("partalts_mcp.synthesis.AsyncOpenAI", return_value=openai_client) as factory:
            synth = AlternativesSynthesizer(api_key="sk-test")
            await synth.batch_alternatives("LM317", "s", "c")
            await synth.close()

        factory.assert_called_once()
        assert factory.call_args.kwargs["max_retries"] == 0
        openai_client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_twice_is_harmless(self):
        openai_client = _fake_openai(THREE_LINES)
        openai_client.close = AsyncMock()
        with patch("partalts_mcp.synthesis.AsyncOpenAI", return_value=openai_client):
            synth = AlternativesSynthesizer(api_key="sk-test")
            await synth.narrative("LM317", "s", "c")
            await synth.close()
            await synth.close()
        assert openai_client.close.await_count == 1

    @pytest.mark.asyncio
    async def test_close_without_client(self):
        await AlternativesSynthesizer(api_key="sk-test").close()

    @pytest.mark.asyncio
    async def test_injected_client_left_open(self):
        openai_client = _fake_openai(THREE_LINES)
        openai_client.close = AsyncMock()
        synth = AlternativesSynthesizer(client=openai_client)
        await synth.batch_alternatives("LM317", "s", "c")
        await synth.close()
        openai_client.close.assert_not_awaited()
