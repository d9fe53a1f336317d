# krishi/core/grounding.py - Decide whether to ground an answer and keep only relevant records
import logging
import re
from typing import List

from krishi.models.advisory import MarketPayload, QueryContext, RelevanceResult, RetrievedRecord

logger = logging.getLogger(__name__)

GROUNDING_TOPICS = {"weather", "market", "price", "scheme"}
TIME_SENSITIVE = re.compile(r"\b(current|today|latest)\b", re.IGNORECASE)


def should_ground(ctx: QueryContext, draft_answer: str = "") -> bool:
    """True when the answer depends on live, local or crop-specific data."""
    if ctx.location is not None or ctx.crop is not None:
        return True
    if ctx.topics & GROUNDING_TOPICS:
        return True
    return bool(draft_answer and TIME_SENSITIVE.search(draft_answer))


def _market_rejection(payload: MarketPayload, crop: str) -> str:
    """Reason a market record cannot answer for ``crop``, or empty when it can."""
    if payload.requested_crop and payload.requested_crop.lower() != crop.lower():
        return f"answers for {payload.requested_crop}"
    if payload.missing_data_note or not payload.requested_crop_available:
        return "reports missing data"
    if not payload.covers(crop):
        return "has no prices for the crop"
    return ""


def filter_relevant(records: List[RetrievedRecord], ctx: QueryContext) -> RelevanceResult:
    """Drop market records that do not answer the requested crop.

    Missing-data notes of rejected records are preserved so the answer can say
    the data is absent. Other categories are kept, with records matching the
    requested location ordered first.
    """
    kept, rejected, notes = [], [], []
    requested_crop = ctx.crop.name if ctx.crop else None

    for record in records:
        payload = record.payload
        if isinstance(payload, MarketPayload) and requested_crop:
            reason = _market_rejection(payload, requested_crop)
            if reason:
                logger.info(f"Rejected market record from {record.source_name}: {reason}")
                rejected.append(record)
                if payload.missing_data_note and payload.missing_data_note not in notes:
                    notes.append(payload.missing_data_note)
                continue
        kept.append(record)

    if ctx.location is not None:
        # Stable sort keeps source order within each group
        kept.sort(key=lambda r: 0 if ctx.location.matches(r.location) else 1)

    return RelevanceResult(records=kept, rejected=rejected, missing_data_notes=notes)
