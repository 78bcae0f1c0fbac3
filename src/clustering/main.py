"""
Clustering Cloud Functions

HTTP entry points:
- generate_clusters_http: run a bulk or incremental refresh
- clusters_http: list, fetch or delete clusters

Environment Variables:
    GCP_PROJECT: Google Cloud project ID
    CLUSTERS_COLLECTION: Cluster collection (default: clusters)
    IR_COLLECTION: IR collection (default: intermediate_representations)
"""

import logging

import functions_framework
from flask import Request

from src.ir.store import IRStore
from src.llm import LLMExhaustedError

from .errors import NoIRsError
from .refresh import ClusterRefresher, RefreshInProgressError
from .store import ClusterStore

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def _get_cluster_store() -> ClusterStore:
    return ClusterStore()


def _get_refresher() -> ClusterRefresher:
    return ClusterRefresher(IRStore(), _get_cluster_store())


@functions_framework.http
def generate_clusters_http(request: Request):
    """
    Refresh clusters.

    Expected JSON body (optional):
    {
        "regenerate": false  // true forces a full bulk regeneration
    }

    Returns:
        Tuple of (response_dict, status_code)
    """
    request_json = request.get_json(silent=True) or {}
    regenerate = bool(request_json.get("regenerate", False))
    logger.info(f"Cluster refresh requested (regenerate={regenerate})")

    try:
        result = _get_refresher().refresh(regenerate=regenerate)
    except NoIRsError as e:
        return {"error": str(e)}, 400
    except RefreshInProgressError as e:
        logger.warning(str(e))
        return {"error": str(e)}, 409
    except LLMExhaustedError as e:
        logger.error(f"Clustering models exhausted: {e}")
        return {"error": "All clustering models are rate limited or failed. Try again later."}, 429
    except Exception as e:
        logger.exception(f"Cluster refresh failed: {e}")
        return {"error": f"Failed to generate clusters: {e}"}, 500

    return {"status": "success", **result.to_dict()}, 200


@functions_framework.http
def clusters_http(request: Request):
    """
    Read or delete clusters.

    GET              -> all visible clusters
    GET ?id=<id>     -> single cluster (404 when missing)
    DELETE ?id=<id>  -> delete cluster

    Returns:
        Tuple of (response_dict, status_code)
    """
    cluster_id = request.args.get("id")
    store = _get_cluster_store()

    try:
        if request.method == "GET":
            if cluster_id:
                cluster = store.get_cluster(cluster_id)
                if cluster is None:
                    return {"error": "Cluster not found"}, 404
                return {"cluster": cluster.to_api_dict()}, 200

            clusters = store.list_visible_clusters()
            return {"clusters": [c.to_api_dict() for c in clusters]}, 200

        if request.method == "DELETE":
            if not cluster_id:
                return {"error": "Cluster id is required"}, 400
            if not store.delete_cluster(cluster_id):
                return {"error": "Cluster not found"}, 404
            return {"success": True}, 200

    except Exception as e:
        logger.exception(f"Cluster request failed: {e}")
        return {"error": str(e)}, 500

    return {"error": f"Method {request.method} not allowed"}, 405
