"""
IR Extraction Cloud Function

HTTP entry point extract_ir_http:
- POST {bookmarkId, url, title?}: extract and store an IR (idempotent per bookmark)
- GET ?bookmarkId=<id>: fetch the stored IR

Environment Variables:
    GCP_PROJECT: Google Cloud project ID
    IR_COLLECTION: IR collection (default: intermediate_representations)
"""

import logging

import functions_framework
from flask import Request

from src.llm import LLMExhaustedError

from .extractor import ExtractionError, extract_ir
from .store import IRStore

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def _get_ir_store() -> IRStore:
    return IRStore()


def _parse_bookmark_id(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@functions_framework.http
def extract_ir_http(request: Request):
    """
    Extract or fetch the IR of a bookmark.

    Expected JSON body (POST):
    {
        "bookmarkId": 42,
        "url": "https://react.dev/learn",
        "title": "Quick Start - React"  // optional
    }

    Returns:
        Tuple of (response_dict, status_code)
    """
    store = _get_ir_store()

    if request.method == "GET":
        bookmark_id = _parse_bookmark_id(request.args.get("bookmarkId"))
        if bookmark_id is None:
            return {"error": "bookmarkId is required"}, 400
        ir = store.get_ir_by_bookmark_id(bookmark_id)
        if ir is None:
            return {"error": "IR not found"}, 404
        return {"ir": ir.to_api_dict()}, 200

    if request.method != "POST":
        return {"error": f"Method {request.method} not allowed"}, 405

    request_json = request.get_json(silent=True) or {}
    bookmark_id = _parse_bookmark_id(request_json.get("bookmarkId"))
    url = request_json.get("url")
    title = request_json.get("title")

    if bookmark_id is None or not url:
        return {"error": "bookmarkId and url are required"}, 400

    try:
        existing = store.get_ir_by_bookmark_id(bookmark_id)
        if existing is not None:
            logger.info(f"IR already exists for bookmark {bookmark_id}: {existing.id}")
            return {"ir": existing.to_api_dict(), "created": False}, 200

        ir = extract_ir(url, title, bookmark_id=bookmark_id)
        store.insert_ir(ir)
        return {"ir": ir.to_api_dict(), "created": True}, 201

    except LLMExhaustedError as e:
        logger.error(f"Extraction models exhausted for bookmark {bookmark_id}: {e}")
        return {"error": "All extraction models are rate limited or failed. Try again later."}, 429
    except ExtractionError as e:
        logger.error(f"Could not parse extraction for bookmark {bookmark_id}: {e}")
        return {"error": f"Failed to extract IR: {e}"}, 502
    except Exception as e:
        logger.exception(f"IR extraction failed for bookmark {bookmark_id}: {e}")
        return {"error": f"Failed to extract IR: {e}"}, 500
