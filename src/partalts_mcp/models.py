"""Records produced by the alternatives pipeline.

Every record serializes to the camelCase JSON shape the HTTP and MCP
surfaces return, via ``to_dict()``.
"""

from dataclasses import dataclass, field
from typing import Any, Literal

from .config import MAX_AI_ALTERNATIVES, MAX_TI_ALTERNATIVES


# Match-type vocabulary, highest priority first
EXACT_MATCH = "Exact Match"
DROP_IN_REPLACEMENT = "Drop-in replacement"
SAME_FUNCTIONALITY = "Same Functionality"
PIN_COMPATIBLE = "Pin Compatible"
FUNCTIONAL_EQUIVALENT = "Functional Equivalent"
COMPATIBLE = "Compatible"
REPLACEMENT = "Replacement"
DEFAULT_MATCH_TYPE = "Cross-Reference Match"

MATCH_TYPES = (
    EXACT_MATCH,
    DROP_IN_REPLACEMENT,
    SAME_FUNCTIONALITY,
    PIN_COMPATIBLE,
    FUNCTIONAL_EQUIVALENT,
    COMPATIBLE,
    REPLACEMENT,
    DEFAULT_MATCH_TYPE,
)

Status = Literal["success", "error"]


@dataclass(frozen=True)
class EvidenceItem:
    """One web search hit used as grounding context."""
    title: str
    link: str
    snippet: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"title": self.title, "link": self.link, "snippet": self.snippet}


@dataclass(frozen=True)
class CrossReferenceAlternative:
    """A candidate part found on the manufacturer cross-reference page."""
    part_number: str
    match_type: str
    href: str
    title: str

    def __post_init__(self):
        if self.match_type not in MATCH_TYPES:
            raise ValueError(f"Unknown match type: {self.match_type!r}")

    def to_dict(self) -> dict[str, str]:
        return {
            "partNumber": self.part_number,
            "matchType": self.match_type,
            "href": self.href,
            "title": self.title,
        }


@dataclass(frozen=True)
class SynthesizedAlternative:
    """A candidate part parsed from the model's numbered reply."""
    part_number: str
    description: str
    manufacturer: str

    def to_dict(self) -> dict[str, str]:
        return {
            "partNumber": self.part_number,
            "description": self.description,
            "manufacturer": self.manufacturer,
        }


@dataclass(frozen=True)
class PartResult:
    """Outcome for one part number of a batch."""
    original_part: str
    ti_alternatives: tuple[CrossReferenceAlternative, ...] = ()
    ai_alternatives: tuple[SynthesizedAlternative, ...] = ()
    status: Status = "success"
    error: str | None = None

    @classmethod
    def success(
        cls,
        original_part: str,
        ti_alternatives: list[CrossReferenceAlternative],
        ai_alternatives: list[SynthesizedAlternative],
    ) -> "PartResult":
        # Only the first cross-reference hit is kept for the batch row
        return cls(
            original_part=original_part,
            ti_alternatives=tuple(ti_alternatives[:MAX_TI_ALTERNATIVES]),
            ai_alternatives=tuple(ai_alternatives[:MAX_AI_ALTERNATIVES]),
        )

    @classmethod
    def failure(cls, original_part: str, error: str) -> "PartResult":
        return cls(original_part=original_part, status="error", error=error)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "originalPart": self.original_part,
            "tiAlternatives": [alt.to_dict() for alt in self.ti_alternatives],
            "aiAlternatives": [alt.to_dict() for alt in self.ai_alternatives],
            "status": self.status,
        }
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass
class BatchSummary:
    """Aggregate over a batch; one result per input part, in input order."""
    results: list[PartResult] = field(default_factory=list)
    errors: list[dict[str, str]] = field(default_factory=list)

    @property
    def total_processed(self) -> int:
        return len(self.results)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.status == "success")

    @property
    def error_count(self) -> int:
        return sum(1 for r in self.results if r.status == "error")

    def add_success(self, result: PartResult) -> None:
        self.results.append(result)

    def add_failure(self, part_number: str, error: str) -> None:
        self.errors.append({"partNumber": part_number, "error": error})
        self.results.append(PartResult.failure(part_number, error))

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "results": [r.to_dict() for r in self.results],
            "errors": list(self.errors),
            "totalProcessed": self.total_processed,
            "successCount": self.success_count,
            "errorCount": self.error_count,
        }


@dataclass
class LookupResult:
    """Single-lookup response: rendered narrative plus the evidence behind it."""
    html: str
    raw: str
    search_results: list[EvidenceItem] = field(default_factory=list)
    ti_alternatives: list[CrossReferenceAlternative] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "alternatives": self.html,
            "raw": self.raw,
            "searchResults": [item.to_dict() for item in self.search_results],
            "tiAlternatives": [alt.to_dict() for alt in self.ti_alternatives],
        }
