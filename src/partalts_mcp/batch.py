"""Sequential batch processing over a bounded list of part numbers."""

import logging
from typing import Any

from .aggregator import PartAggregator
from .config import MAX_BATCH_PARTS
from .models import BatchSummary

logger = logging.getLogger(__name__)


class InvalidBatchError(ValueError):
    """Batch input rejected before any work started."""


def validate_part_numbers(part_numbers: Any, max_parts: int = MAX_BATCH_PARTS) -> list[str]:
    """Check batch input and return stripped part numbers.

    Raises:
        InvalidBatchError: Not a list, empty, over max_parts, or has blank/non-string entries
    """
    if not isinstance(part_numbers, list) or not part_numbers:
        raise InvalidBatchError("Part numbers array is required")
    if len(part_numbers) > max_parts:
        raise InvalidBatchError(f"Maximum {max_parts} part numbers allowed")

    cleaned = []
    for i, part in enumerate(part_numbers):
        if not isinstance(part, str) or not part.strip():
            raise InvalidBatchError(f"Part number at position {i + 1} must be a non-empty string")
        cleaned.append(part.strip())
    return cleaned


class BatchOrchestrator:
    """Runs the aggregator over each part in order, one at a time.

    Every input gets exactly one result row, in input order. A part whose
    pipeline raises becomes an error row and is also listed in ``errors``;
    it never stops the remaining parts.
    """

    def __init__(self, aggregator: PartAggregator, max_parts: int = MAX_BATCH_PARTS):
        self._aggregator = aggregator
        self._max_parts = max_parts

    async def run(self, part_numbers: list[str]) -> BatchSummary:
        """Process a batch.

        Raises:
            InvalidBatchError: Input rejected (nothing was processed)
        """
        parts = validate_part_numbers(part_numbers, self._max_parts)
        logger.info(f"Processing batch of {len(parts)} parts: {parts}")

        summary = BatchSummary()
        for i, part_number in enumerate(parts, 1):
            logger.info(f"Processing {i}/{len(parts)}: {part_number}")
            try:
                result = await self._aggregator.process_part(part_number)
            except Exception as e:
                message = str(e) or type(e).__name__
                logger.error(f"Error processing {part_number}: {type(e).__name__}: {message}")
                summary.add_failure(part_number, message)
                continue
            summary.add_success(result)

        logger.info(
            f"Batch complete: {summary.total_processed} processed, "
            f"{summary.success_count} succeeded, {summary.error_count} failed"
        )
        return summary
