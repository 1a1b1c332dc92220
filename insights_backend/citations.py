"""
Citation Extraction
===================

The RAG workflow is asked to return citations as structured data, but the
model occasionally leaks them inline into the answer text, e.g.:

    "Umowa wygasa po 30 dniach {"chunk_index": 3, "chunk_source_id": "abc",
     "chunk_lines_from": 10, "chunk_lines_to": 12} zgodnie z..."

This module detects those fragments (object- or array-shaped, valid JSON or
not), turns them into citation records resolved against the notebook's
sources, and removes them from the text.
"""

import json
import re
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Any

logger = logging.getLogger(__name__)

RAW_CITATION_OBJECT_RE = re.compile(r'\{["\s]*chunk_index["\s]*:\s*\d+[^}]*\}')
RAW_CITATION_ARRAY_RE = re.compile(r'\[["\s]*chunk_index["\s]*:\s*\d+[^\]]*\]')

_CHUNK_INDEX_RE = re.compile(r'chunk_index["\s]*:\s*(\d+)')
_CHUNK_SOURCE_ID_RE = re.compile(r'chunk_source_id["\s]*:\s*["\']([^"\']+)["\']')
_CHUNK_LINES_FROM_RE = re.compile(r'chunk_lines_from["\s]*:\s*(\d+)')
_CHUNK_LINES_TO_RE = re.compile(r'chunk_lines_to["\s]*:\s*(\d+)')

_WHITESPACE_RE = re.compile(r"\s+")

UNKNOWN_SOURCE_TITLE = "Unknown Source"
DEFAULT_SOURCE_TYPE = "pdf"

# source_id -> {"id", "title", "type", "content"}
SourceMap = Dict[str, Dict[str, Any]]


@dataclass
class RawCitationMatch:
    """A citation fragment found in text"""
    match: str
    start: int
    end: int


@dataclass
class ParsedCitation:
    chunk_index: int
    chunk_source_id: str
    chunk_lines_from: int = 0
    chunk_lines_to: int = 0


def generate_excerpt(
    source_content: Optional[str],
    lines_from: int,
    lines_to: int,
    max_length: int = 150,
) -> str:
    """
    Build a short excerpt of the cited line range (1-based, inclusive).

    Falls back to "Lines a-b" when the source has no text or the range is empty.
    """
    if not source_content:
        return f"Lines {lines_from}-{lines_to}"

    lines = source_content.split("\n")
    start_line = max(0, (lines_from or 1) - 1)
    end_line = min(len(lines), lines_to or lines_from or 1)

    excerpt = _WHITESPACE_RE.sub(" ", " ".join(lines[start_line:end_line]).strip())
    if not excerpt:
        return f"Lines {lines_from}-{lines_to}"

    if len(excerpt) > max_length:
        return excerpt[:max_length] + "..."
    return excerpt


def detect_raw_citations(text: str) -> List[RawCitationMatch]:
    """Find object-shaped and array-shaped citation fragments (object matches first)"""
    matches = [
        RawCitationMatch(match=m.group(0), start=m.start(), end=m.end())
        for m in RAW_CITATION_OBJECT_RE.finditer(text)
    ]
    matches.extend(
        RawCitationMatch(match=m.group(0), start=m.start(), end=m.end())
        for m in RAW_CITATION_ARRAY_RE.finditer(text)
    )
    return matches


def parse_raw_citation(raw: str) -> Optional[ParsedCitation]:
    """
    Parse a citation fragment.

    Well-formed JSON must carry chunk_index and a non-empty chunk_source_id.
    Malformed fragments fall back to per-field regex extraction.
    """
    try:
        parsed = json.loads(raw)
    except ValueError:
        return _parse_raw_citation_fields(raw)

    if isinstance(parsed, dict) and "chunk_index" in parsed and parsed.get("chunk_source_id"):
        return ParsedCitation(
            chunk_index=parsed["chunk_index"],
            chunk_source_id=parsed["chunk_source_id"],
            chunk_lines_from=parsed.get("chunk_lines_from") or 0,
            chunk_lines_to=parsed.get("chunk_lines_to") or 0,
        )
    return None


def _parse_raw_citation_fields(raw: str) -> Optional[ParsedCitation]:
    index_match = _CHUNK_INDEX_RE.search(raw)
    source_match = _CHUNK_SOURCE_ID_RE.search(raw)
    if not index_match or not source_match:
        return None

    lines_from = _CHUNK_LINES_FROM_RE.search(raw)
    lines_to = _CHUNK_LINES_TO_RE.search(raw)
    return ParsedCitation(
        chunk_index=int(index_match.group(1)),
        chunk_source_id=source_match.group(1),
        chunk_lines_from=int(lines_from.group(1)) if lines_from else 0,
        chunk_lines_to=int(lines_to.group(1)) if lines_to else 0,
    )


def build_citation(citation_id: int, parsed: ParsedCitation, source_map: SourceMap) -> Dict[str, Any]:
    """Resolve a parsed citation against the source map into the API shape"""
    source = source_map.get(parsed.chunk_source_id) or {}
    return {
        "citation_id": citation_id,
        "source_id": parsed.chunk_source_id,
        "source_title": source.get("title") or UNKNOWN_SOURCE_TITLE,
        "source_type": source.get("type") or DEFAULT_SOURCE_TYPE,
        "chunk_lines_from": parsed.chunk_lines_from,
        "chunk_lines_to": parsed.chunk_lines_to,
        "chunk_index": parsed.chunk_index,
        "excerpt": generate_excerpt(source.get("content"), parsed.chunk_lines_from, parsed.chunk_lines_to),
    }


def clean_and_extract_citations(
    text: str,
    source_map: SourceMap,
    starting_citation_id: int,
) -> Tuple[str, List[Dict[str, Any]], int]:
    """
    Strip citation fragments out of `text`.

    Returns (cleaned_text, citations_in_text_order, next_citation_id).
    Unparseable fragments are left in place; text without any fragment is
    returned untouched (whitespace included).
    """
    raw_matches = detect_raw_citations(text)
    if not raw_matches:
        return text, [], starting_citation_id

    cleaned = text
    citations: List[Dict[str, Any]] = []
    citation_id = starting_citation_id

    # Remove from the end so earlier offsets stay valid
    for raw in sorted(raw_matches, key=lambda m: m.start, reverse=True):
        parsed = parse_raw_citation(raw.match)
        if not parsed:
            continue
        citations.insert(0, build_citation(citation_id, parsed, source_map))
        cleaned = cleaned[:raw.start] + cleaned[raw.end:]
        citation_id += 1

    cleaned = _WHITESPACE_RE.sub(" ", cleaned).strip()
    logger.debug("Extracted %d inline citations", len(citations))
    return cleaned, citations, citation_id
