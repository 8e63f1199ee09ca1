# docanalysis/observability/posthog_client.py

"""
PostHog product analytics.

Architecture contract:
- Does NOT replace logging
- Uses request_id as distinct_id
- Disabled without POSTHOG_API_KEY
- Tracking never raises into the request path
"""

import logging
from typing import Any, Dict, Optional

from posthog import Posthog

from docanalysis.config import Settings

logger = logging.getLogger(__name__)


class PostHogClient:
    """
    Safe PostHog wrapper.

    Guarantees:
    - Never crashes the API
    - Non-blocking tracking (PostHog batches in a background thread)
    """

    def __init__(self, settings: Settings, client: Optional[Posthog] = None):

        self._client: Optional[Posthog] = client
        self._enabled = client is not None

        if client is not None:
            return

        if not settings.posthog_api_key:
            logger.info("PostHog disabled: POSTHOG_API_KEY not set")
            return

        self._client = Posthog(
            project_api_key=settings.posthog_api_key,
            host=settings.posthog_host,
            timeout=5,
            flush_interval=1,
        )

        self._enabled = True

        logger.info(
            "PostHog client initialized",
            extra={"host": settings.posthog_host},
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    # ==========================================================
    # INTERNAL SAFE TRACK
    # ==========================================================

    def _track(
        self,
        distinct_id: str,
        event: str,
        properties: Optional[Dict[str, Any]] = None,
    ):

        if not self._enabled or not self._client:
            return

        try:

            self._client.capture(
                distinct_id=distinct_id,
                event=event,
                properties=properties or {},
            )

        except Exception as e:

            logger.warning(
                "PostHog tracking failed",
                extra={"event": event, "error": str(e)},
            )

    # ==========================================================
    # EVENTS
    # ==========================================================

    def track_document_indexed(
        self,
        distinct_id: str,
        document_id: str,
        project_id: str,
        status: str,
        chunks: int,
        latency: float,
    ):

        self._track(
            distinct_id,
            "document_indexed" if status != "failed" else "document_indexing_failed",
            {
                "document_id": document_id,
                "project_id": project_id,
                "status": status,
                "chunks": chunks,
                "latency_seconds": round(latency, 3),
            },
        )

    def track_search(
        self,
        distinct_id: str,
        project_id: str,
        query: str,
        results: int,
        top_score: Optional[float],
    ):

        self._track(
            distinct_id,
            "search_performed",
            {
                "project_id": project_id,
                "query_length": len(query),
                "results": results,
                "top_score": top_score,
            },
        )

    def track_report_generated(
        self,
        distinct_id: str,
        project_id: str,
        report_type: str,
        generation_source: str,
        latency: float,
    ):

        self._track(
            distinct_id,
            "report_generated",
            {
                "project_id": project_id,
                "report_type": report_type,
                "generation_source": generation_source,
                "latency_seconds": round(latency, 3),
            },
        )

    def track_error(
        self,
        distinct_id: str,
        error_type: str,
        error_message: str,
        endpoint: str,
    ):

        self._track(
            distinct_id,
            "system_error",
            {
                "error_type": error_type,
                "error_message": error_message,
                "endpoint": endpoint,
            },
        )

    def shutdown(self):

        if self._enabled and self._client:
            self._client.shutdown()
