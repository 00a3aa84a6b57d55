# summary_chat/observability/posthog_client.py

"""
Analytics sink.

Architecture contract:
- Fire-and-forget: record() never blocks and never raises
- Disabled (with a warning) when POSTHOG_API_KEY is not set
- Events are keyed by the owning user id
"""

import os
import logging
from typing import Any, Dict, Optional

from posthog import Posthog


logger = logging.getLogger(__name__)


# Event types emitted by the pipeline
EVENT_TYPES = frozenset({
    "summarize_success",
    "pdf_upload",
    "linkurl_analysis",
    "llm_token_usage",
    "thread_created",
    "vector_storage",
    "content_processing",
    "error_occurred",
})


class AnalyticsSink:
    """
    Base sink. Subclasses implement _capture; record() guards it.
    """

    def record(
        self,
        event_type: str,
        user_id: Optional[str] = None,
        thread_id: Optional[int] = None,
        message_id: Optional[int] = None,
        properties: Optional[Dict[str, Any]] = None,
    ) -> bool:

        if event_type not in EVENT_TYPES:
            logger.warning("Unknown analytics event", extra={"event": event_type})

        payload = dict(properties or {})

        if thread_id is not None:
            payload["threadId"] = thread_id

        if message_id is not None:
            payload["messageId"] = message_id

        try:

            self._capture(str(user_id) if user_id is not None else "anonymous", event_type, payload)

            return True

        except Exception as e:

            logger.warning(
                "Analytics tracking failed",
                extra={"event": event_type, "error": str(e)},
            )

            return False

    def _capture(self, distinct_id: str, event: str, properties: Dict[str, Any]):
        raise NotImplementedError

    def shutdown(self):
        pass


class PostHogAnalytics(AnalyticsSink):
    """
    PostHog-backed sink. The PostHog client queues events and flushes
    them from its own worker thread.
    """

    def __init__(self, api_key: Optional[str] = None, host: Optional[str] = None):

        self._client: Optional[Posthog] = None

        api_key = api_key or os.getenv("POSTHOG_API_KEY")
        host = host or os.getenv("POSTHOG_HOST", "https://app.posthog.com")

        if not api_key:
            logger.warning(
                "PostHog disabled: POSTHOG_API_KEY not set"
            )
            return

        try:

            self._client = Posthog(
                project_api_key=api_key,
                host=host,
                timeout=5,
                flush_interval=1,
            )

            logger.info(
                "PostHog client initialized",
                extra={"host": host}
            )

        except Exception as e:

            logger.error(
                "PostHog initialization failed",
                extra={"error": str(e)}
            )

            self._client = None

    @property
    def enabled(self) -> bool:
        return self._client is not None

    def _capture(self, distinct_id: str, event: str, properties: Dict[str, Any]):

        if self._client is None:
            return

        self._client.capture(
            distinct_id=distinct_id,
            event=event,
            properties=properties,
        )

    def shutdown(self):

        if self._client is None:
            return

        try:
            self._client.shutdown()
        except Exception as e:
            logger.warning("PostHog shutdown failed", extra={"error": str(e)})
