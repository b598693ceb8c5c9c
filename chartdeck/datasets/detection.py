"""Format detection for pasted, imported and fetched data.

Checks run in a fixed order and the first hit wins:
1. Structured parse (JSON): topology document, then array, then object
2. Tab-delimited text (tabs outnumber commas, same count on the first 5 lines)
3. Comma-delimited text (comma count within 1 across the first 5 lines)

Confidence reflects how unambiguous the evidence was: a parsed array or
topology is `high`, a consistent tab grid is `high`, a bare JSON object
and a comma grid are `medium`, and a guess from a file extension is `low`.
"""

import json
import logging
from typing import Any, Optional
from urllib.parse import urlparse

from chartdeck.errors import FormatUndetected
from chartdeck.fetch.client import Fetcher

from .schemas import Confidence, DataFormat, DataSource, DetectionResult

logger = logging.getLogger(__name__)

CONSISTENCY_WINDOW = 5

_EXTENSIONS = (
    (".topojson", DataFormat.TOPOJSON),
    (".json", DataFormat.JSON),
    (".csv", DataFormat.CSV),
    (".tsv", DataFormat.TSV),
    (".tab", DataFormat.TSV),
)


def _is_topology(parsed: Any) -> bool:
    return isinstance(parsed, dict) and parsed.get("type") == "Topology"


def _detect_structured(text: str) -> Optional[DetectionResult]:
    try:
        parsed = json.loads(text)
    except ValueError:
        return None

    if _is_topology(parsed):
        return DetectionResult(
            format=DataFormat.TOPOJSON, confidence=Confidence.HIGH, parsed_payload=parsed
        )
    if isinstance(parsed, list):
        return DetectionResult(
            format=DataFormat.JSON, confidence=Confidence.HIGH, parsed_payload=parsed
        )
    if isinstance(parsed, dict):
        return DetectionResult(
            format=DataFormat.JSON, confidence=Confidence.MEDIUM, parsed_payload=parsed
        )
    # Bare scalars are not datasets; let the delimiter checks decide
    return None


def _detect_delimited(text: str) -> Optional[DetectionResult]:
    lines = [line for line in text.split("\n") if line.strip()]
    if len(lines) < 2:
        return None

    first = lines[0]
    comma_count = first.count(",")
    tab_count = first.count("\t")
    window = lines[:CONSISTENCY_WINDOW]

    if tab_count > 0 and tab_count > comma_count:
        if all(line.count("\t") == tab_count for line in window):
            return DetectionResult(
                format=DataFormat.TSV, confidence=Confidence.HIGH, parsed_payload=text
            )

    if comma_count > 0:
        if all(abs(line.count(",") - comma_count) <= 1 for line in window):
            return DetectionResult(
                format=DataFormat.CSV, confidence=Confidence.MEDIUM, parsed_payload=text
            )

    return None


def detect_format(text: str, source: DataSource = DataSource.INLINE) -> DetectionResult:
    """Classify raw text into a data format with a confidence level.

    Returns an undetermined result (format None, confidence low) when no
    heuristic matches; use require_format() to turn that into an error.
    """
    text = text.strip()
    result = _detect_structured(text) or _detect_delimited(text)
    if result is None:
        logger.debug(f"No format detected for {len(text)} chars of {source.value} content")
        return DetectionResult(source=source)
    return result.model_copy(update={"source": source})


def require_format(result: DetectionResult) -> DetectionResult:
    if not result.detected:
        raise FormatUndetected(
            "Could not detect data format. Expected JSON, CSV, TSV or TopoJSON."
        )
    return result


def is_likely_url(text: str) -> bool:
    """True only for absolute http(s) URLs with a host."""
    try:
        parsed = urlparse(text.strip())
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def detect_format_from_extension(url: str) -> Optional[DataFormat]:
    """Guess a format from the URL path suffix."""
    path = urlparse(url).path.lower() or url.lower()
    for suffix, fmt in _EXTENSIONS:
        if path.endswith(suffix):
            return fmt
    return None


def detect_format_from_filename(filename: str) -> Optional[DataFormat]:
    """Like detect_format_from_extension, plus .txt as tab-separated."""
    if filename.lower().endswith(".txt"):
        return DataFormat.TSV
    return detect_format_from_extension(filename)


async def fetch_and_detect(url: str, fetcher: Fetcher) -> DetectionResult:
    """Fetch a URL and detect the format of its content.

    Falls back to the URL extension (low confidence) when the content
    matches no heuristic. NetworkFetchError propagates to the caller.
    """
    text = await fetcher.fetch(url)
    detected = detect_format(text, source=DataSource.URL)

    if not detected.detected:
        from_extension = detect_format_from_extension(url)
        if from_extension is not None:
            logger.info(f"Content of {url} undetected, using extension: {from_extension.value}")
            return DetectionResult(
                format=from_extension,
                confidence=Confidence.LOW,
                source=DataSource.URL,
                content=text,
            )

    return detected.model_copy(update={"content": text})
