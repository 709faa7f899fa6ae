"""Pre-fill a ProductInput from an uploaded document.

Not part of the research pipeline; it reuses the completion client and the
JSON extractor to map free text onto the questionnaire fields.
"""
from __future__ import annotations

from io import BytesIO
from pathlib import Path
from typing import Any

from loguru import logger
from markitdown import MarkItDown

from marketseg.errors import ConfigError, ParseError, SegmentationError
from marketseg.models.schemas import BusinessModel, GtmApproach, Stage
from marketseg.services.completion_client import CompletionClient
from marketseg.services.json_extractor import extract_and_parse_json
from marketseg.services.prompt_store import render_prompt

TEXT_EXTENSIONS = {".txt", ".md", ".markdown", ".csv", ".json"}
MAX_DOCUMENT_CHARS = 100_000


class DocumentError(SegmentationError):
    """The upload could not be turned into questionnaire fields."""


_STRING_FIELDS = (
    "productOverview",
    "businessModelOther",
    "vision",
    "industryFocus",
    "jobTitles",
    "incomeLevel",
    "interests",
    "onlinePresence",
    "productRoadmap",
    "competitors",
    "existingCustomers",
)
_NUMBER_FIELDS = (
    "priceRangeMin",
    "priceRangeMax",
    "revenueGoal",
    "freeTrialDays",
    "companySizeMin",
    "companySizeMax",
    "budgetRangeMin",
    "budgetRangeMax",
    "ageRangeMin",
    "ageRangeMax",
)
_ENUM_FIELDS: dict[str, set[str]] = {
    "businessType": {"b2b", "b2c"},
    "stage": {s.value for s in Stage},
    "businessModel": {m.value for m in BusinessModel},
    "gtmApproach": {g.value for g in GtmApproach},
}


def document_to_text(content: bytes, filename: str | None, content_type: str | None) -> str:
    extension = Path(filename or "").suffix.lower()
    if (content_type or "").startswith("text/") or extension in TEXT_EXTENSIONS:
        return content.decode("utf-8", errors="replace")

    try:
        result = MarkItDown().convert_stream(BytesIO(content), file_extension=extension or ".pdf")
    except Exception as e:
        logger.error(f"[DocumentPrefill] Conversion failed for {filename!r}: {e}")
        raise DocumentError(
            "Failed to extract text from the document. Please ensure it contains selectable text "
            "and is not corrupted."
        ) from e
    text = getattr(result, "text_content", "")
    return text if isinstance(text, str) else ""


def clean_extracted_fields(data: dict[str, Any]) -> dict[str, Any]:
    """Keep only known fields whose values have the expected type."""
    cleaned: dict[str, Any] = {}
    for key, allowed in _ENUM_FIELDS.items():
        value = data.get(key)
        if isinstance(value, str) and value.strip().lower() in allowed:
            cleaned[key] = value.strip().lower()
    for key in _STRING_FIELDS:
        value = data.get(key)
        if isinstance(value, list):
            value = ", ".join(str(v) for v in value if v)
        if isinstance(value, str) and value.strip():
            cleaned[key] = value.strip()
    for key in _NUMBER_FIELDS:
        value = data.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            cleaned[key] = value
    if isinstance(data.get("hasFreeTrial"), bool):
        cleaned["hasFreeTrial"] = data["hasFreeTrial"]
    problems = data.get("customerProblems")
    if isinstance(problems, list):
        cleaned["customerProblems"] = [p.strip() for p in problems if isinstance(p, str) and p.strip()]
    return cleaned


async def extract_product_input(
    content: bytes,
    filename: str | None,
    content_type: str | None,
    completion: CompletionClient | None = None,
) -> dict[str, Any]:
    text = document_to_text(content, filename, content_type)
    if not text.strip():
        raise DocumentError("File appears to be empty. Please ensure it contains text content.")

    completion = completion or CompletionClient()
    prompt = render_prompt("documents.extract_product_input", document_text=text[:MAX_DOCUMENT_CHARS])
    try:
        response = await completion.generate_completion(prompt, 4000, "Document Extraction")
    except ConfigError:
        raise
    except SegmentationError as e:
        raise DocumentError("Failed to extract information from document. Please try again.") from e

    try:
        parsed = extract_and_parse_json(response)
    except ParseError as e:
        logger.error(f"[DocumentPrefill] Failed to parse response: {response[:200]}")
        raise DocumentError("Failed to parse extracted information") from e
    if not isinstance(parsed, dict):
        raise DocumentError("Failed to parse extracted information")

    cleaned = clean_extracted_fields(parsed)
    logger.info(f"[DocumentPrefill] Extracted {len(cleaned)} fields from {filename!r}")
    return cleaned
