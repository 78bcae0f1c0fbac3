"""
Semantic Extractor

Turns a bookmarked URL + title into an Intermediate Representation via
the LLM fallback chain for extraction.

Usage:
    from src.ir.extractor import extract_ir
    ir = extract_ir("https://react.dev/learn", "Quick Start - React")
"""

import json
import logging
from typing import Any, Dict, Optional

from src.llm import GenerationConfig, generate_with_fallback, get_fallback_models
from src.llm.parsing import slice_json_block, strip_json_fences

from .schema import (
    CONTENT_TYPES,
    DEFAULT_CONTENT_TYPE,
    DEFAULT_DIFFICULTY,
    DIFFICULTIES,
    Concept,
    IntermediateRepresentation,
)

logger = logging.getLogger(__name__)

EXTRACTION_CONFIG = GenerationConfig(temperature=0.3, max_output_tokens=4096)


class ExtractionError(Exception):
    """Raised when the oracle output cannot be turned into an IR."""

    pass


def build_extraction_prompt(url: str, title: Optional[str]) -> str:
    """
    Build the IR extraction prompt.

    Args:
        url: Source URL
        title: Bookmark title (may be None)

    Returns:
        Prompt text
    """
    return f"""You are an expert content analyzer. Extract a structured Intermediate Representation (IR) from the following URL.

URL: {url}
Title: {title or 'Unknown'}

Based on the URL and title (and your knowledge of common content at such URLs), generate a JSON object with:

{{
  "summary": "2-3 sentence high-level summary of the content",
  "keyTopics": ["topic1", "topic2", "topic3"],
  "concepts": [
    {{
      "name": "Concept Name",
      "description": "Brief description",
      "importance": "high" | "medium" | "low",
      "relatedConcepts": ["related1", "related2"]
    }}
  ],
  "difficulty": "beginner" | "intermediate" | "advanced",
  "contentType": "article" | "video" | "tutorial" | "reference" | "discussion" | "other",
  "estimatedReadTime": <number in minutes>
}}

Return ONLY the JSON object, no additional text."""


def parse_extraction_response(text: str) -> Dict[str, Any]:
    """
    Parse and normalize the extraction response.

    Args:
        text: Raw oracle output

    Returns:
        Dict with summary, key_topics, concepts, difficulty, content_type,
        estimated_read_time (all defaulted)

    Raises:
        ExtractionError: If no valid JSON object is present
    """
    try:
        json_text = slice_json_block(strip_json_fences(text), "{", "}")
        parsed = json.loads(json_text)
    except (ValueError, json.JSONDecodeError) as e:
        logger.error(f"Failed to parse extraction response: {text[:500]}")
        raise ExtractionError(f"Failed to parse IR from Gemini: {e}") from e

    if not isinstance(parsed, dict):
        raise ExtractionError("Failed to parse IR from Gemini: response is not an object")

    difficulty = parsed.get("difficulty") or DEFAULT_DIFFICULTY
    if difficulty not in DIFFICULTIES:
        difficulty = DEFAULT_DIFFICULTY

    content_type = parsed.get("contentType") or DEFAULT_CONTENT_TYPE
    if content_type not in CONTENT_TYPES:
        content_type = DEFAULT_CONTENT_TYPE

    topics = parsed.get("keyTopics")
    concepts = parsed.get("concepts")

    read_time = parsed.get("estimatedReadTime")
    if not isinstance(read_time, (int, float)) or isinstance(read_time, bool) or read_time <= 0:
        read_time = None

    return {
        "summary": parsed.get("summary") or "No summary available",
        "key_topics": [str(t) for t in topics] if isinstance(topics, list) else [],
        "concepts": [Concept.from_dict(c) for c in concepts] if isinstance(concepts, list) else [],
        "difficulty": difficulty,
        "content_type": content_type,
        "estimated_read_time": int(read_time) if read_time is not None else None,
    }


def extract_ir(
    url: str,
    title: Optional[str] = None,
    bookmark_id: Optional[int] = None,
) -> IntermediateRepresentation:
    """
    Extract an IR for a bookmark.

    Args:
        url: Source URL
        title: Bookmark title
        bookmark_id: Owning bookmark id

    Returns:
        New IntermediateRepresentation (fresh id, version 1)

    Raises:
        LLMError / LLMExhaustedError: Oracle failures
        ExtractionError: Unparseable oracle output
    """
    prompt = build_extraction_prompt(url, title)
    response = generate_with_fallback(
        prompt,
        EXTRACTION_CONFIG,
        get_fallback_models("extraction"),
        label="ir-extract",
    )

    fields = parse_extraction_response(response.text)
    ir = IntermediateRepresentation.new(url, title, bookmark_id=bookmark_id, **fields)

    logger.info(
        f"Extracted IR {ir.id} for {url}: {len(ir.key_topics)} topics, "
        f"{len(ir.concepts)} concepts, {ir.difficulty} [model={response.model}]"
    )
    return ir
