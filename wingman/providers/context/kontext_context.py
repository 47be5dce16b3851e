"""Kontext vault context provider.

API:
  - POST {api_url}/v1/vault/query  {userId, query, includeAnswer, topK}
      → {"answer": {"text": "..."}, "hits": [{"attributes": {...}, "score": 0.81}, ...]}
  - GET  {api_url}/v1/vault/files?userId=...  → {"files": [...]}
Credentials come from KONTEXT_API_KEY; KONTEXT_API_URL / KONTEXT_USER_ID override config.
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


class KontextContext(BaseContext):
    """Vault query with optional synthesized answer."""

    name = "kontext"

    @property
    def api_url(self) -> str:
        return (os.getenv("KONTEXT_API_URL") or self.config.get("api_url", "https://api.kontext.dev")).rstrip("/")

    @property
    def user_id(self) -> str:
        return os.getenv("KONTEXT_USER_ID") or self.config.get("user_id", "")

    def _headers(self, api_key: str) -> dict:
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    async def fetch_context(self, query: str) -> ContextLookup:
        api_key = os.getenv("KONTEXT_API_KEY", "")
        user_id = self.user_id
        if not api_key or not user_id:
            logger.warning("[KontextContext] Credentials not configured, skipping context retrieval")
            return ContextLookup.degraded("Kontext credentials not configured")

        payload = {
            "userId": user_id,
            "query": query,
            "includeAnswer": True,
            "topK": min(int(self.config.get("top_k", MAX_RESULTS)), MAX_RESULTS),
        }
        try:
            async with make_client(self.http, self._transport) as client:
                response = await client.post(
                    f"{self.api_url}/v1/vault/query",
                    json=payload,
                    headers=self._headers(api_key),
                )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"[KontextContext] Vault query failed: {e}")
            return ContextLookup.degraded(f"Kontext query failed: {e}")

        if not isinstance(data, dict):
            return ContextLookup.degraded("Kontext returned a non-object payload")

        answer = data.get("answer")
        if isinstance(answer, dict):
            answer = answer.get("text")
        answer_text = answer.strip() if isinstance(answer, str) and answer.strip() else None

        hits = data.get("hits") or []
        ranked = sorted(
            (h for h in hits if isinstance(h, dict)),
            key=lambda h: h.get("score") if isinstance(h.get("score"), (int, float)) else 0.0,
            reverse=True,
        )
        passages = [self._to_passage(h) for h in ranked[:MAX_RESULTS]]
        logger.info(
            f"[KontextContext] answer={'yes' if answer_text else 'no'}, hits={len(hits)}, kept={len(passages)}"
        )
        return ContextLookup.ok(ContextResult(answer_text=answer_text, passages=passages))

    async def list_files(self) -> list[dict]:
        """Files stored in the user's vault. Empty on any failure."""
        api_key = os.getenv("KONTEXT_API_KEY", "")
        if not api_key or not self.user_id:
            return []
        try:
            async with make_client(self.http, self._transport) as client:
                response = await client.get(
                    f"{self.api_url}/v1/vault/files",
                    params={"userId": self.user_id},
                    headers=self._headers(api_key),
                )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"[KontextContext] Could not list vault files: {e}")
            return []
        files = data.get("files", []) if isinstance(data, dict) else data
        return [f for f in files if isinstance(f, dict)] if isinstance(files, list) else []

    @staticmethod
    def _to_passage(hit: dict) -> Passage:
        attributes = hit.get("attributes") or {}
        body = attributes.get("text") or attributes.get("snippet") or json.dumps(attributes, ensure_ascii=False)
        label = attributes.get("fileName") or attributes.get("title")
        score = hit.get("score")
        if isinstance(score, (int, float)):
            score = min(1.0, max(0.0, float(score)))
        else:
            score = None
        return Passage(body_text=str(body), source_label=label, relevance_score=score)
