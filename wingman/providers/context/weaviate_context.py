"""Weaviate context provider using GraphQL ``nearText`` semantic search.

Credentials come from WEAVIATE_URL / WEAVIATE_API_KEY; collection and content
field can be overridden with WEAVIATE_COLLECTION / WEAVIATE_CONTENT_FIELD.
"""

from __future__ import annotations

import json
import logging
import os

import httpx

from wingman.providers.base import BaseContext
from wingman.schema import ContextLookup, ContextResult, Passage
from wingman.utils.http import make_client

logger = logging.getLogger(__name__)

MAX_RESULTS = 5


class WeaviateContext(BaseContext):
    """Semantic search against a Weaviate collection."""

    name = "weaviate"

    @property
    def url(self) -> str:
        return (os.getenv("WEAVIATE_URL") or self.config.get("url", "")).rstrip("/")

    @property
    def collection(self) -> str:
        return os.getenv("WEAVIATE_COLLECTION") or self.config.get("collection", "ProcurementContext")

    @property
    def content_field(self) -> str:
        return os.getenv("WEAVIATE_CONTENT_FIELD") or self.config.get("content_field", "summary")

    def build_query(self, text: str) -> str:
        """GraphQL Get query; the concept string is JSON-escaped."""
        label_field = self.config.get("label_field") or ""
        extra_fields = list(self.config.get("extra_fields") or {})
        fields = [self.content_field, label_field, *extra_fields]
        selected = " ".join(dict.fromkeys(f for f in fields if f))
        limit = min(int(self.config.get("limit", MAX_RESULTS)), MAX_RESULTS)
        return (
            "{ Get { "
            f"{self.collection}(nearText: {{concepts: [{json.dumps(text)}]}}, limit: {limit}) "
            f"{{ {selected} _additional {{ distance }} }}"
            " } }"
        )

    async def fetch_context(self, query: str) -> ContextLookup:
        url = self.url
        api_key = os.getenv("WEAVIATE_API_KEY", "")
        if not url or not api_key:
            logger.warning("[WeaviateContext] Credentials not configured, skipping context retrieval")
            return ContextLookup.degraded("Weaviate credentials not configured")

        try:
            async with make_client(self.http, self._transport) as client:
                response = await client.post(
                    f"{url}/v1/graphql",
                    json={"query": self.build_query(query)},
                    headers={
                        "Authorization": f"Bearer {api_key}",
                        "Content-Type": "application/json",
                        "X-Weaviate-Cluster-Url": url,
                    },
                )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"[WeaviateContext] Error fetching context: {e}")
            return ContextLookup.degraded(f"Weaviate query failed: {e}")

        errors = data.get("errors") if isinstance(data, dict) else None
        if errors:
            logger.error(f"[WeaviateContext] GraphQL errors: {errors}")
            return ContextLookup.degraded(f"Weaviate GraphQL errors: {errors}")

        try:
            objects = data["data"]["Get"][self.collection] or []
        except (KeyError, TypeError):
            objects = []
        if not isinstance(objects, list):
            logger.error(f"[WeaviateContext] Unexpected payload for {self.collection}: {type(objects).__name__}")
            return ContextLookup.degraded("Weaviate returned an unexpected payload")

        passages = [p for p in (self._to_passage(o) for o in objects[:MAX_RESULTS]) if p]
        if passages:
            logger.info(f"[WeaviateContext] Found {len(passages)} relevant context items")
        else:
            logger.info("[WeaviateContext] No context found")
        return ContextLookup.ok(ContextResult(passages=passages))

    def _to_passage(self, obj: dict) -> Passage | None:
        if not isinstance(obj, dict):
            return None
        label_field = self.config.get("label_field") or ""
        lines = []
        for field, label in (self.config.get("extra_fields") or {}).items():
            value = obj.get(field)
            if value not in (None, ""):
                lines.append(f"{label}: {value}")
        content = obj.get(self.content_field)
        if content:
            lines.append(f"Details: {content}")
        if not lines:
            return None

        distance = (obj.get("_additional") or {}).get("distance")
        score = None
        if isinstance(distance, (int, float)):
            score = min(1.0, max(0.0, 1.0 - float(distance)))

        label = obj.get(label_field) if label_field else None
        return Passage(
            body_text="\n".join(lines),
            source_label=str(label) if label else None,
            relevance_score=score,
        )
