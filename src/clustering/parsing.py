"""
Tolerant parsing of clustering responses.

The oracle is non-deterministic: output may be wrapped in Markdown
fences, preceded by prose, or truncated mid-array when it runs out of
output tokens. Parsing repairs what it safely can and otherwise fails
the whole operation; a partial cluster set is never returned.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from src.llm.parsing import slice_json_block, strip_json_fences

from .errors import ClusteringError

logger = logging.getLogger(__name__)


class ClusterParseError(ClusteringError, ValueError):
    """Oracle response is not a valid clustering result."""

    pass


def _last_element_end(s: str) -> Optional[int]:
    """Index just past the last top-level object that closed inside the array."""
    depth = 0
    in_string = False
    escaped = False
    end = None

    for i, ch in enumerate(s):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch in "[{":
            depth += 1
        elif ch in "]}":
            depth -= 1
            if depth == 1 and ch == "}":
                end = i + 1
            elif depth <= 0:
                break

    return end


def salvage_truncated_array(json_text: str) -> str:
    """
    Close a JSON array that was cut off mid-stream.

    Strategy, in order:
    1. Close right after the last complete top-level object.
    2. Truncated inside the first object's topics list: close the list
       after the last complete topic and finish the object.

    Args:
        json_text: Text starting with "["

    Returns:
        Repaired text (unchanged if no strategy applies)
    """
    s = json_text.strip()
    if not s.startswith("["):
        return s

    end = _last_element_end(s)
    if end is not None:
        return s[:end] + "]"

    last_topic = s.rfind('",')
    if last_topic != -1 and "aggregatedTopics" in s:
        return s[:last_topic] + '" ], "avgDifficulty": "intermediate" }]'

    return s


def parse_cluster_array(text: str) -> List[Dict[str, Any]]:
    """
    Parse a bulk clustering response into raw cluster dicts.

    Args:
        text: Raw oracle output

    Returns:
        List of raw cluster objects (not yet validated)

    Raises:
        ClusterParseError: No array, irreparable JSON, or wrong top-level type
    """
    json_text = strip_json_fences(text)

    try:
        parsed = json.loads(json_text)
    except json.JSONDecodeError:
        start = json_text.find("[")
        if start == -1:
            raise ClusterParseError("No JSON array found in clustering response")
        parsed = _parse_with_repair(json_text[start:])

    if not isinstance(parsed, list):
        raise ClusterParseError("Response is not an array")

    return parsed


def _parse_with_repair(json_text: str) -> Any:
    """Decode the array ignoring trailing prose, else salvage a truncated one."""
    try:
        parsed, _ = json.JSONDecoder().raw_decode(json_text)
        return parsed
    except json.JSONDecodeError:
        pass

    repaired = salvage_truncated_array(json_text)
    try:
        parsed = json.loads(repaired)
    except json.JSONDecodeError as e:
        raise ClusterParseError(f"Invalid JSON after truncation repair: {e}") from e

    logger.warning(f"Repaired truncated clustering response ({len(json_text)} -> {len(repaired)} chars)")
    return parsed


def parse_incremental_object(text: str) -> Dict[str, Any]:
    """
    Parse an incremental assignment response.

    Args:
        text: Raw oracle output

    Returns:
        Dict with list values under "assignments" and "newClusters"

    Raises:
        ClusterParseError: No object, invalid JSON, or missing/mistyped keys
    """
    try:
        parsed = json.loads(slice_json_block(strip_json_fences(text), "{", "}"))
    except (ValueError, json.JSONDecodeError) as e:
        raise ClusterParseError(f"Invalid incremental response: {e}") from e

    if not isinstance(parsed, dict):
        raise ClusterParseError("Response is not an object")

    for key in ("assignments", "newClusters"):
        if key not in parsed:
            raise ClusterParseError(f"Response missing '{key}'")
        if not isinstance(parsed[key], list):
            raise ClusterParseError(f"'{key}' is not an array")

    return parsed
