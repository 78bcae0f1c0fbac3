"""
Schema definitions for Intermediate Representations (IR)

An IR is the immutable, versioned semantic summary of one bookmarked
source, produced once by the semantic extractor.

Firestore collection: intermediate_representations
  {
    "version": int,
    "bookmark_id": int | None,
    "source_url": str,
    "source_title": str | None,
    "created_at": str,            # ISO 8601
    "summary": str,               # 2-3 sentences
    "key_topics": list[str],      # may arrive as a JSON string
    "concepts": list[dict],       # may arrive as a JSON string
    "difficulty": str,
    "content_type": str,
    "estimated_read_time": int | None
  }
"""

import json
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

IR_SCHEMA_VERSION = 1

Difficulty = Literal["beginner", "intermediate", "advanced"]
ContentType = Literal["article", "video", "tutorial", "reference", "discussion", "other"]
Importance = Literal["high", "medium", "low"]

DIFFICULTIES = ("beginner", "intermediate", "advanced")
CONTENT_TYPES = ("article", "video", "tutorial", "reference", "discussion", "other")
IMPORTANCE_LEVELS = ("high", "medium", "low")

DEFAULT_DIFFICULTY = "intermediate"
DEFAULT_CONTENT_TYPE = "other"
DEFAULT_IMPORTANCE = "medium"


def _utc_now_iso() -> str:
    """Return current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_json_field(value: Any) -> List[Any]:
    """
    Decode a list field that may be stored as a JSON string.

    Never raises: anything that is not a list (or a JSON string encoding
    a list) becomes an empty list.

    Args:
        value: List, JSON-encoded string, or anything else

    Returns:
        Decoded list
    """
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except (ValueError, TypeError):
            return []
        return parsed if isinstance(parsed, list) else []
    return []


@dataclass
class Concept:
    """A named concept inside an IR."""

    name: str
    description: str = ""
    importance: Importance = DEFAULT_IMPORTANCE
    related_concepts: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> "Concept":
        """Build a Concept leniently from LLM output or storage (camelCase or snake_case)."""
        if not isinstance(data, dict):
            return cls(name=str(data) if data else "Unknown")

        importance = data.get("importance") or DEFAULT_IMPORTANCE
        if importance not in IMPORTANCE_LEVELS:
            importance = DEFAULT_IMPORTANCE

        related = data.get("related_concepts", data.get("relatedConcepts"))

        return cls(
            name=data.get("name") or "Unknown",
            description=data.get("description") or "",
            importance=importance,
            related_concepts=related if isinstance(related, list) else [],
        )


@dataclass
class IntermediateRepresentation:
    """
    Immutable semantic summary of one source.

    Attributes:
        id: Opaque unique token (uuid4)
        version: IR schema revision
        source_url: Bookmarked URL
        source_title: Bookmark title, if known
        summary: 2-3 sentence summary
        key_topics: Ordered topic labels
        concepts: Ordered structured concepts
        difficulty: beginner | intermediate | advanced
        content_type: article | video | tutorial | reference | discussion | other
        estimated_read_time: Minutes, if known
        bookmark_id: Owning bookmark, if known
        created_at: ISO 8601 creation timestamp
    """

    id: str
    source_url: str
    summary: str
    source_title: Optional[str] = None
    key_topics: List[str] = field(default_factory=list)
    concepts: List[Concept] = field(default_factory=list)
    difficulty: Difficulty = DEFAULT_DIFFICULTY
    content_type: ContentType = DEFAULT_CONTENT_TYPE
    estimated_read_time: Optional[int] = None
    bookmark_id: Optional[int] = None
    version: int = IR_SCHEMA_VERSION
    created_at: str = field(default_factory=_utc_now_iso)

    @classmethod
    def new(cls, source_url: str, source_title: Optional[str] = None, **fields) -> "IntermediateRepresentation":
        """Create a fresh IR with a generated id."""
        return cls(id=str(uuid.uuid4()), source_url=source_url, source_title=source_title, **fields)

    @property
    def concept_names(self) -> List[str]:
        return [c.name for c in self.concepts]

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to dictionary for Firestore storage.

        Returns:
            Dictionary with all fields except id (used as document id)
        """
        data = asdict(self)
        data.pop("id")
        return data

    def to_api_dict(self) -> Dict[str, Any]:
        """Camel-case representation returned by the HTTP layer."""
        return {
            "id": self.id,
            "version": self.version,
            "bookmarkId": self.bookmark_id,
            "sourceUrl": self.source_url,
            "sourceTitle": self.source_title,
            "createdAt": self.created_at,
            "summary": self.summary,
            "keyTopics": list(self.key_topics),
            "concepts": [
                {
                    "name": c.name,
                    "description": c.description,
                    "importance": c.importance,
                    "relatedConcepts": list(c.related_concepts),
                }
                for c in self.concepts
            ],
            "difficulty": self.difficulty,
            "contentType": self.content_type,
            "estimatedReadTime": self.estimated_read_time,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], ir_id: Optional[str] = None) -> "IntermediateRepresentation":
        """
        Create IR from a stored record.

        JSON-encoded list fields are decoded leniently; out-of-range enum
        values fall back to defaults.

        Args:
            data: Stored record (Firestore document dict)
            ir_id: Document id (falls back to data["id"])

        Returns:
            IntermediateRepresentation instance
        """
        difficulty = data.get("difficulty") or DEFAULT_DIFFICULTY
        if difficulty not in DIFFICULTIES:
            difficulty = DEFAULT_DIFFICULTY

        content_type = data.get("content_type") or DEFAULT_CONTENT_TYPE
        if content_type not in CONTENT_TYPES:
            content_type = DEFAULT_CONTENT_TYPE

        return cls(
            id=ir_id or data.get("id", ""),
            version=data.get("version", IR_SCHEMA_VERSION),
            bookmark_id=data.get("bookmark_id"),
            source_url=data.get("source_url", ""),
            source_title=data.get("source_title"),
            created_at=data.get("created_at") or _utc_now_iso(),
            summary=data.get("summary", ""),
            key_topics=[str(t) for t in parse_json_field(data.get("key_topics"))],
            concepts=[Concept.from_dict(c) for c in parse_json_field(data.get("concepts"))],
            difficulty=difficulty,
            content_type=content_type,
            estimated_read_time=data.get("estimated_read_time"),
        )
