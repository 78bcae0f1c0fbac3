"""
Helpers for pulling JSON out of free-form LLM output.
"""

import re

_LEADING_FENCE_RE = re.compile(r"^```(?:json)?\s*\n?", re.IGNORECASE)


def strip_json_fences(text: str) -> str:
    """
    Strip markdown code fences from LLM output.

    Tolerates truncated output where the closing fence never arrived.

    Args:
        text: Raw model output

    Returns:
        Text with the leading ```json / ``` fence and anything after the
        last ``` removed
    """
    out = (text or "").strip()
    if out.startswith("```"):
        out = _LEADING_FENCE_RE.sub("", out, count=1)
    trailing = out.rfind("```")
    if trailing != -1:
        out = out[:trailing].strip()
    return out


def slice_json_block(text: str, open_char: str = "{", close_char: str = "}") -> str:
    """
    Cut text down to the outermost JSON object (or array).

    Args:
        text: Text possibly surrounded by prose
        open_char: "{" for objects, "[" for arrays
        close_char: Matching closing character

    Returns:
        Substring from the first open_char to the last close_char

    Raises:
        ValueError: If no such block exists
    """
    start = text.find(open_char)
    end = text.rfind(close_char)
    if start == -1 or end == -1 or end < start:
        raise ValueError(f"No JSON {'object' if open_char == '{' else 'array'} found in response")
    return text[start:end + 1]
