"""
Chat Message Transformers
=========================

Convert stored chat history rows into the structure the UI renders:

    {"segments": [{"text": ..., "citation_id": 1}, ...],
     "citations": [{"citation_id": 1, "source_id": ..., ...}, ...]}

The workflow engine stores AI answers as a JSON *string* with an `output`
list; human messages are stored as plain strings.
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from .citations import (
    SourceMap, ParsedCitation, build_citation, clean_and_extract_citations,
)

logger = logging.getLogger(__name__)

EMPTY_MESSAGE = "Empty message"
UNPARSEABLE_MESSAGE = "Unable to parse message"

# LangChain message fields the workflow engine may store next to type/content
_PASSTHROUGH_FIELDS = ("additional_kwargs", "response_metadata", "tool_calls", "invalid_tool_calls")


def build_source_map(sources: Iterable[Any]) -> SourceMap:
    """Index notebook sources by id for citation lookup"""
    return {
        str(source.id): {
            "id": str(source.id),
            "title": source.title,
            "type": getattr(source.type, "value", source.type),
            "content": source.content,
        }
        for source in sources
    }


def _load_output(content: str) -> Optional[List[Dict[str, Any]]]:
    """Return the `output` list of a JSON answer; raises ValueError on invalid JSON"""
    parsed = json.loads(content)
    if isinstance(parsed, dict) and isinstance(parsed.get("output"), list):
        return parsed["output"]
    return None


def _output_items(output: List[Any]) -> List[Dict[str, Any]]:
    """Output entries as dicts; bare strings become text-only items"""
    items = []
    for item in output:
        if isinstance(item, dict):
            items.append(item)
        elif isinstance(item, str):
            items.append({"text": item})
        else:
            logger.warning("Skipping output item of type %s", type(item).__name__)
    return items


def _item_citations(item: Dict[str, Any]) -> List[Dict[str, Any]]:
    citations = item.get("citations") or []
    if not isinstance(citations, list):
        citations = [citations]
    return [c for c in citations if isinstance(c, dict)]


def _normalize_message(message: Any) -> Dict[str, Any]:
    if isinstance(message, dict):
        return message
    if isinstance(message, str):
        return {"type": "human", "content": message}
    return {"type": "human", "content": UNPARSEABLE_MESSAGE}


def _with_passthrough(message: Dict[str, Any], content: Any, message_type: str) -> Dict[str, Any]:
    result = {"type": message_type, "content": content}
    for field in _PASSTHROUGH_FIELDS:
        if field in message:
            result[field] = message[field]
    return result


# =============================================================================
# NOTEBOOK
# =============================================================================

def transform_notebook_output(output: List[Dict[str, Any]], source_map: SourceMap) -> Dict[str, Any]:
    """
    Turn the workflow's `output` list into segments + citations.

    Each output item may carry explicit `citations` and may also have
    citations leaked into its text. Both are merged and share one citation
    number per segment.
    """
    segments: List[Dict[str, Any]] = []
    citations: List[Dict[str, Any]] = []
    counter = 1

    for item in _output_items(output):
        cleaned, extracted, _ = clean_and_extract_citations(str(item.get("text") or ""), source_map, counter)

        merged = [
            ParsedCitation(
                chunk_index=c.get("chunk_index"),
                chunk_source_id=c.get("chunk_source_id"),
                chunk_lines_from=c.get("chunk_lines_from") or 0,
                chunk_lines_to=c.get("chunk_lines_to") or 0,
            )
            for c in _item_citations(item)
        ]
        merged.extend(
            ParsedCitation(
                chunk_index=c["chunk_index"],
                chunk_source_id=c["source_id"],
                chunk_lines_from=c["chunk_lines_from"],
                chunk_lines_to=c["chunk_lines_to"],
            )
            for c in extracted
        )

        segment = {"text": cleaned}
        if merged:
            segment["citation_id"] = counter
            citations.extend(build_citation(counter, parsed, source_map) for parsed in merged)
            counter += 1
        segments.append(segment)

    return {"segments": segments, "citations": citations}


def transform_notebook_message(row: Dict[str, Any], source_map: SourceMap) -> Dict[str, Any]:
    """Transform a `n8n_chat_histories` row for the notebook chat"""
    message = _normalize_message(row.get("message"))
    message_type = message.get("type") or "human"
    content = message.get("content")

    if message_type == "ai" and isinstance(content, str):
        try:
            output = _load_output(content)
        except ValueError:
            output = None
            cleaned, extracted, _ = clean_and_extract_citations(content, source_map, 1)
            if extracted:
                structured = {
                    "segments": [{"text": cleaned, "citation_id": 1}],
                    "citations": extracted,
                }
                return {
                    "id": row.get("id"),
                    "session_id": row.get("session_id"),
                    "message": _with_passthrough(message, structured, "ai"),
                }

        if output is not None:
            return {
                "id": row.get("id"),
                "session_id": row.get("session_id"),
                "message": _with_passthrough(message, transform_notebook_output(output, source_map), "ai"),
            }

    return {
        "id": row.get("id"),
        "session_id": row.get("session_id"),
        "message": _with_passthrough(message, content or EMPTY_MESSAGE, message_type),
    }


# =============================================================================
# LEGAL
# =============================================================================

def transform_legal_output(output: List[Dict[str, Any]]) -> Dict[str, Any]:
    segments: List[Dict[str, Any]] = []
    citations: List[Dict[str, Any]] = []
    counter = 1

    for item in _output_items(output):
        item_citations = _item_citations(item)
        segment = {"text": str(item.get("text") or "")}
        if item_citations:
            segment["citation_id"] = counter
            for citation in item_citations:
                citations.append({
                    "citation_id": counter,
                    "source_type": citation.get("source_type"),
                    "source_id": citation.get("source_id"),
                    "source_title": citation.get("source_title"),
                    "article": citation.get("article"),
                    "paragraph": citation.get("paragraph"),
                    "excerpt": citation.get("excerpt"),
                })
            counter += 1
        segments.append(segment)

    return {"segments": segments, "citations": citations}


def transform_legal_message(row: Dict[str, Any]) -> Dict[str, Any]:
    """Transform a `legal_chat_histories` row for the legal chat"""
    message = _normalize_message(row.get("message"))
    result = {
        "id": row.get("id"),
        "session_id": row.get("session_id"),
        "user_id": row.get("user_id"),
        "message": message,
        "sources_used": row.get("sources_used"),
        "created_at": row.get("created_at"),
    }

    content = message.get("content")
    if message.get("type") == "ai" and isinstance(content, str):
        try:
            output = _load_output(content)
        except ValueError:
            logger.debug("Legal AI response is not JSON, treating as plain text")
            output = None
        if output is not None:
            result["message"] = {"type": "ai", "content": transform_legal_output(output)}

    return result


def row_to_dict(row: Any) -> Dict[str, Any]:
    """Flatten a chat history ORM row"""
    created_at = getattr(row, "created_at", None)
    return {
        "id": row.id,
        "session_id": row.session_id,
        "user_id": getattr(row, "user_id", None),
        "message": row.message,
        "sources_used": getattr(row, "sources_used", None),
        "created_at": created_at.isoformat() if created_at else None,
    }
