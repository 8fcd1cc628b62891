"""OpenAI-backed synthesis of component alternatives.

Two reply modes share the same grounding context:

- narrative: long markdown analysis for a single lookup
- batch: exactly three ``N. Part - Description - Manufacturer`` lines,
  parsed leniently (lines that don't fit are dropped)
"""

import logging
import re

from openai import AsyncOpenAI

from .config import (
    BATCH_MAX_TOKENS,
    BATCH_TEMPERATURE,
    COMPARE_TEMPERATURE,
    LOOKUP_MAX_TOKENS,
    MAX_AI_ALTERNATIVES,
    OPENAI_API_KEY,
    OPENAI_MODEL,
    OPENAI_TIMEOUT,
    ConfigurationError,
)
from .models import CrossReferenceAlternative, SynthesizedAlternative

logger = logging.getLogger(__name__)

NO_CROSSREF_RESULTS = "No TI cross-reference results found."

# "1. TLV1117 - 1A LDO regulator, SOT-223 - Texas Instruments"
# Separators need surrounding spaces so hyphenated packages stay in the description.
_ALTERNATIVE_LINE_RE = re.compile(
    r"^\d+\.\s+([A-Z0-9][A-Z0-9\-./]*)\s+[-–—]\s+(.+)\s+[-–—]\s+(.+)$"
)

LOOKUP_SYSTEM_PROMPT = (
    "You are a helpful electronics engineer who specializes in finding component alternatives. "
    "Provide accurate, practical alternatives with clear specifications. The alternatives should "
    "be package and footprint compatible with similar electrical and timing specifications and, "
    "if applicable, firmware/register similarities."
)

BATCH_SYSTEM_PROMPT = (
    "You are a helpful electronics engineer. Provide exactly 3 alternatives in the specified "
    "format. Be concise and accurate."
)

COMPARE_SYSTEM_PROMPT = " ".join([
    "You are an expert electronics engineer and component librarian specializing in detailed component analysis.",
    "Compare electronic components with extreme accuracy and attention to detail.",
    "Only state values you are confident about and say whether each is typical, minimum, maximum or absolute maximum.",
    "Prefer less information that is correct over more information that may be wrong.",
    "Never assume or invent a package type: confirm it from the datasheet (Features, Description, Ordering Information)",
    "or a distributor listing (Digi-Key, Mouser) and cite where it was confirmed.",
    "Give test conditions (temperature, voltage) for electrical values where possible.",
    "Highlight all differences, no matter how small, and state uncertainty clearly.",
])


class SynthesisError(Exception):
    """The model returned nothing usable."""


def format_crossref_summary(alternatives: list[CrossReferenceAlternative]) -> str:
    """Render cross-reference hits as a numbered text block for the prompt."""
    if not alternatives:
        return NO_CROSSREF_RESULTS
    lines = "\n\n".join(
        f"{i}. {alt.part_number} - {alt.title}\nURL: {alt.href}"
        for i, alt in enumerate(alternatives, 1)
    )
    return f"TI Cross-Reference Alternatives Found:\n{lines}"


def build_lookup_prompt(part_number: str, search_summary: str, crossref_summary: str) -> str:
    """Prompt for the single-lookup narrative, grounded on both evidence blocks."""
    return f"""I need to find 3 alternative components for the electronic part number: {part_number}.

Web search results (context for the original part only):
{search_summary}

TI Cross-Reference Results:
{crossref_summary}

Follow these requirements carefully:

1. Original Part Verification (use the web search results above as the only context for the original part)
- Short Description: concise summary of the component's function and key specifications.
- Package Type: confirm from both "Package / Case" and "Supplier Device Package". Family parts do not
  necessarily share a package. Do not invent, infer, or guess.
- Core Electrical Specs: voltage, current, frequency, timing and power from the datasheet.
- Pinout: confirm from the datasheet.
- Block Diagram Summary: internal functional blocks (PLL, MUX, buffers, ADC, interfaces).
- Price & Lifecycle: current unit price from Digi-Key or Mouser; lifecycle status (Active, NRND, Last Time Buy).

2. Alternatives Search
- Identify 3 alternatives from reputable manufacturers (TI, ADI, NXP, ON Semi, Microchip, ...).
- **Important:** an alternative must NOT be from the same manufacturer as the original part.
- Prioritize parts that are functionally equivalent and package-compatible, and always include known
  industry-preferred equivalents when they meet the functional and package criteria.
- For each candidate confirm lifecycle status, verify package, pinout and core electrical specs from the
  datasheet, compare block diagrams, confirm functionality with datasheet keywords, give the unit price with
  a distributor citation, note differences (footprint, electrical, interface, software) and a confidence level
  (High / Medium / Low).

3. For each alternative include
- Part number and manufacturer
- Brief description of key specifications, including the package type with the datasheet section or
  distributor field where it was confirmed
- Notable differences from the original part
- Whether it matches the original's functionality and package
- Price per unit (with link)
- Confirmed package type (datasheet ordering code plus at least one distributor listing). If the package
  cannot be verified, state "Package type cannot be confirmed" and exclude the part.

4. Ranking
Rank the 3 alternatives by closeness to the original using these priorities:
1. Package Match
2. Functional Match, including block diagram similarity
3. Lifecycle Status
4. Distributor Availability
5. Price Competitiveness
List a verified preferred alternate first and explain any minor deviations. Include the rationale for the ranking.

5. Summary & Conclusion
- Overview of findings.
- Whether package-compatible alternatives exist or PCB/firmware changes are required.
- Differences in functional blocks that may affect compatibility.
- Recommended alternatives with reasoning.
- Date of availability verification for all parts.

Make each alternative visually distinct: numbered sections, distinct headings, and horizontal rules (---)
between alternatives.

Cite datasheets or distributor listings for every claim and never invent parts, packages, or specifications."""


def build_batch_prompt(part_number: str, search_summary: str, crossref_summary: str) -> str:
    """Prompt for a batch row: exactly three parseable lines."""
    return f"""I need to find 3 alternative components for the electronic part number: {part_number}.
Use the following web search results as context: {search_summary}

TI Cross-Reference Results: {crossref_summary}

Please provide exactly 3 alternatives in this format:
1. [Part Number] - [Brief Description] - [Manufacturer]
2. [Part Number] - [Brief Description] - [Manufacturer]
3. [Part Number] - [Brief Description] - [Manufacturer]

Focus on:
- Different manufacturers than the original
- Package compatibility
- Functional equivalence
- Current availability"""


def build_compare_prompt(part_a: str, part_b: str) -> str:
    return f"""Compare these two electronic components: "{part_a}" vs "{part_b}".

Provide a comprehensive analysis including:

1. **OVERVIEW TABLE** - markdown table with columns: Specification Category, {part_a} Value, {part_b} Value,
   Difference (bold if significant), Impact Assessment. Cover function and application of each part,
   a high-level block diagram summary, and notable differences in intended use.

2. **ELECTRICAL SPECIFICATIONS** - markdown table with columns: Specification, {part_a} Value, {part_b} Value.
   Include voltage ranges (min/max/typical), current ratings, power dissipation, thermal characteristics,
   frequency/speed and memory sizes where applicable.

3. **REGISTER/FIRMWARE COMPATIBILITY** - markdown table with columns: Compatibility Aspect, {part_a} Details,
   {part_b} Details. Include register map differences (address in hex, name, function), firmware compatibility,
   programming differences, boot sequence and memory organization.

4. **PACKAGE & FOOTPRINT** - markdown table with columns: Physical Characteristic, {part_a} Specification,
   {part_b} Specification. Include dimensions, pin count and pitch, mounting, thermal pad and operating
   temperature range, then a side-by-side pinout table (pin number, pin name/function for both parts, every
   pin listed, mismatches marked) taken from the manufacturer datasheets.

5. **DROP-IN COMPATIBILITY ASSESSMENT** - overall compatibility score (0-100%), reasons for any
   incompatibility, modifications required for replacement, and a risk assessment.

6. **RECOMMENDATIONS** - when to use each part, migration strategies, alternative suggestions.

Include confidence levels for each section. Format the response in clean markdown with proper tables."""


def parse_batch_reply(text: str, limit: int = MAX_AI_ALTERNATIVES) -> list[SynthesizedAlternative]:
    """Parse numbered ``Part - Description - Manufacturer`` lines.

    Lines that don't fit the pattern are skipped without error.
    """
    alternatives = []
    for line in text.splitlines():
        match = _ALTERNATIVE_LINE_RE.match(line.strip())
        if not match:
            continue
        part, description, manufacturer = (group.strip() for group in match.groups())
        if not (part and description and manufacturer):
            continue
        alternatives.append(SynthesizedAlternative(part, description, manufacturer))
        if len(alternatives) >= limit:
            break
    return alternatives


class AlternativesSynthesizer:
    """Asks an OpenAI chat model for alternatives given gathered evidence."""

    def __init__(
        self,
        api_key: str = OPENAI_API_KEY,
        model: str = OPENAI_MODEL,
        client: AsyncOpenAI | None = None,
    ):
        self._api_key = api_key
        self._model = model
        self._client = client
        self._owns_client = False

    @property
    def configured(self) -> bool:
        return self._client is not None or bool(self._api_key)

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self._api_key:
                raise ConfigurationError("Server is not configured with OPENAI_API_KEY")
            # No retries: a failed synthesis call fails the part
            self._client = AsyncOpenAI(api_key=self._api_key, timeout=OPENAI_TIMEOUT, max_retries=0)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the OpenAI client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.close()
            self._client = None
            self._owns_client = False

    async def _complete(self, system: str, user: str, **options) -> str:
        response = await self._get_client().chat.completions.create(
            model=self._model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            **options,
        )
        if not response.choices or response.choices[0].message is None:
            raise SynthesisError("Unexpected API response structure")
        content = response.choices[0].message.content or ""
        if not content.strip():
            raise SynthesisError("Empty response from model")
        return content

    async def narrative(self, part_number: str, search_summary: str, crossref_summary: str) -> str:
        """Long-form markdown analysis of alternatives for a single lookup."""
        prompt = build_lookup_prompt(part_number, search_summary, crossref_summary)
        logger.debug(f"Lookup prompt for {part_number}: {prompt}")
        return await self._complete(LOOKUP_SYSTEM_PROMPT, prompt, max_tokens=LOOKUP_MAX_TOKENS)

    async def batch_alternatives(
        self, part_number: str, search_summary: str, crossref_summary: str,
    ) -> list[SynthesizedAlternative]:
        """Up to three parsed alternatives for a batch row."""
        prompt = build_batch_prompt(part_number, search_summary, crossref_summary)
        content = await self._complete(
            BATCH_SYSTEM_PROMPT, prompt,
            max_tokens=BATCH_MAX_TOKENS, temperature=BATCH_TEMPERATURE,
        )
        alternatives = parse_batch_reply(content)
        logger.info(f"Model suggested {len(alternatives)} alternatives for {part_number}")
        return alternatives

    async def compare(self, part_a: str, part_b: str) -> str:
        """Markdown side-by-side comparison of two parts."""
        return await self._complete(
            COMPARE_SYSTEM_PROMPT, build_compare_prompt(part_a, part_b),
            max_tokens=LOOKUP_MAX_TOKENS, temperature=COMPARE_TEMPERATURE,
        )
