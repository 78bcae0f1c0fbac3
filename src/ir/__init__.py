"""
Intermediate Representation (IR) Module

Immutable semantic summaries of bookmarked sources:
- Schema (IR, Concept) with lenient decoding of stored records
- Semantic extractor (URL + title -> IR via Gemini)
- Firestore-backed IR store
"""

__version__ = "1.0.0"
