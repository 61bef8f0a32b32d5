"""
Claude client for the operations complaint summary.
Wraps anthropic.Anthropic; the last summary is reused for 60 s while the complaint set is unchanged.
"""
from __future__ import annotations

import hashlib
import json
import logging
import time
from collections import Counter
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

MODEL = "claude-sonnet-4-6"
SUMMARY_CACHE_TTL_SECONDS = 60


def hash_complaints(complaints: list[dict[str, Any]]) -> str:
    slim = [{"id": c.get("id"), "category": c.get("category"), "notes": c.get("notes")} for c in complaints]
    return hashlib.sha1(json.dumps(slim, sort_keys=True).encode("utf-8")).hexdigest()


def heuristic_summary(complaints: list[dict[str, Any]]) -> str:
    """Counts per category, used when Claude is unavailable."""
    if not complaints:
        return "No complaints to summarize."
    counts = Counter((c.get("category") or "other").strip() or "other" for c in complaints)
    lines = [f"- {category}: {n}" for category, n in counts.most_common()]
    return f"{len(complaints)} complaints by category:\n" + "\n".join(lines)


class ClaudeClient:
    def __init__(self, api_key: str):
        import anthropic
        self._client = anthropic.Anthropic(api_key=api_key)
        self._cached: dict[str, Any] | None = None
        self._cached_key: str | None = None
        self._cached_at = 0.0

    def _ask(self, system: str, user: str, max_tokens: int = 512) -> str:
        """Make a single Claude call and return the text response."""
        msg = self._client.messages.create(
            model=MODEL,
            max_tokens=max_tokens,
            system=system,
            messages=[{"role": "user", "content": user}],
        )
        return msg.content[0].text if msg.content else ""

    def summarize_complaints(self, complaints: list[dict[str, Any]]) -> dict[str, Any]:
        """
        Concise, actionable summary of rider complaints.
        Returns: { summary_markdown, generated_at_iso, model, ai_generated }
        """
        key = hash_complaints(complaints)
        if (
            self._cached is not None
            and self._cached_key == key
            and time.monotonic() - self._cached_at < SUMMARY_CACHE_TTL_SECONDS
        ):
            return self._cached

        system = (
            "You are an operations analyst for a campus shuttle service. Summarize transit "
            "complaints in 150-250 words: group by category (e.g. GPS issues, overcrowding, "
            "off-route, maintenance) with counts, name the top recurring issues, and suggest "
            "2-4 next actions. Use short bullets. Respond with only the summary text."
        )
        user = f"Complaints (JSON):\n{json.dumps(complaints)}"
        try:
            text = self._ask(system, user, max_tokens=1024).strip()
            if not text:
                raise ValueError("Empty Claude response")
            ai_generated = True
        except Exception as e:
            logger.warning("claude_complaints_summary_error error=%s", str(e))
            text = heuristic_summary(complaints)
            ai_generated = False

        result = {
            "summary_markdown": text,
            "generated_at_iso": datetime.now(timezone.utc).isoformat(),
            "model": MODEL if ai_generated else None,
            "ai_generated": ai_generated,
        }
        if ai_generated:
            self._cached, self._cached_key, self._cached_at = result, key, time.monotonic()
        return result
