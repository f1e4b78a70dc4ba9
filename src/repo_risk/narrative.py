"""Narrative service clients — optional prose for analysis results.

The engine never depends on these answers: every call goes through
:func:`best_effort`, which bounds it with a timeout and turns any failure
into ``None``.
"""

import asyncio
import json
import os
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Awaitable
from typing import Any, Optional, TypeVar

import httpx

from repo_risk.config import AnalysisSettings
from repo_risk.errors import EnrichmentTimeout
from repo_risk.logging import get_logger

logger = get_logger("narrative")

T = TypeVar("T")


async def best_effort(call: Awaitable[T], timeout: float, what: str) -> Optional[T]:
    """Await *call* for at most *timeout* seconds; never raise."""
    try:
        return await asyncio.wait_for(call, timeout)
    except asyncio.TimeoutError:
        logger.warning(EnrichmentTimeout(f"{what} timed out after {timeout:g}s").tagged())
    except Exception as e:  # narrative output is optional by contract
        logger.warning(f"[enrichment] {what} failed: {e}")
    return None


def strip_fences(raw: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    text = raw.strip()
    if text.startswith("```"):
        lines = text.splitlines()
        text = "\n".join(lines[1:])
        if text.endswith("```"):
            text = text[:-3]
    return text.strip()


def parse_string_list(raw: str) -> list[str]:
    """Parse a JSON array of strings; anything else yields an empty list."""
    try:
        data = json.loads(strip_fences(raw))
    except json.JSONDecodeError:
        return []
    if not isinstance(data, list):
        return []
    return [str(item).strip() for item in data if str(item).strip()]


class NarrativeService(ABC):
    """Black-box prose generator fed with structured statistics."""

    @abstractmethod
    async def project_summary(self, stats: dict[str, Any]) -> Optional[str]: ...

    @abstractmethod
    async def contribution_summary(self, stats: dict[str, Any]) -> Optional[str]: ...

    @abstractmethod
    async def label_knowledge_areas(self, stats: dict[str, Any]) -> list[str]: ...

    @abstractmethod
    async def recommendations(self, stats: dict[str, Any]) -> list[str]: ...

    async def close(self) -> None:
        """Release resources."""


# ── HTTP backend ──────────────────────────────────────────────────────────

class HttpNarrativeService(NarrativeService):
    """Talks to a narrative endpoint that accepts JSON statistics.

    Endpoints answer ``{"text": "..."}`` for summaries and
    ``{"items": [...]}`` for lists.
    """

    def __init__(self, base_url: str, timeout: float = 15.0, token: Optional[str] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.token = token
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def headers(self) -> dict[str, str]:
        h = {"Accept": "application/json"}
        if self.token:
            h["Authorization"] = f"Bearer {self.token}"
        return h

    async def _client_instance(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self.headers,
                timeout=self.timeout,
            )
        return self._client

    async def _post(self, path: str, stats: dict[str, Any]) -> dict[str, Any]:
        client = await self._client_instance()
        resp = await client.post(path, json=stats)
        resp.raise_for_status()
        data = resp.json()
        return data if isinstance(data, dict) else {}

    async def project_summary(self, stats: dict[str, Any]) -> Optional[str]:
        data = await self._post("/summaries/project", stats)
        return data.get("text") or None

    async def contribution_summary(self, stats: dict[str, Any]) -> Optional[str]:
        data = await self._post("/summaries/contributor", stats)
        return data.get("text") or None

    async def label_knowledge_areas(self, stats: dict[str, Any]) -> list[str]:
        data = await self._post("/labels/knowledge-areas", stats)
        return [str(i) for i in data.get("items", []) if str(i).strip()]

    async def recommendations(self, stats: dict[str, Any]) -> list[str]:
        data = await self._post("/recommendations", stats)
        return [str(i) for i in data.get("items", []) if str(i).strip()]

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None


# ── Copilot backend ───────────────────────────────────────────────────────

class CopilotNarrativeService(NarrativeService):
    """Narrative prose from a Copilot SDK session (pure text, no tool use)."""

    SYSTEM_MESSAGE = (
        "You are a code ownership analyst. "
        "You ONLY analyze statistics provided to you in the prompt. "
        "You NEVER use tools, browse the filesystem, run commands, or "
        "access external resources. You respond ONLY with the requested "
        "format (JSON or plain text). Be concise and precise."
    )

    def __init__(self, model: str = "gpt-4.1") -> None:
        self.model = model
        self._client: object | None = None
        self._session: object | None = None

    async def _ensure_session(self) -> None:
        """Lazily start the CopilotClient and create a session."""
        if self._session is not None:
            return
        from copilot import CopilotClient  # type: ignore[import-untyped]

        # Keep CLI state files out of the analysed repository
        self._client = CopilotClient({"cwd": tempfile.mkdtemp(prefix="repo-risk-copilot-")})
        await self._client.start()  # type: ignore[attr-defined]

        async def deny_all_tools(input: dict, invocation: object) -> dict:
            return {"permissionDecision": "deny"}

        self._session = await self._client.create_session(  # type: ignore[attr-defined]
            {
                "model": self.model,
                "infinite_sessions": {"enabled": False},
                "system_message": {"content": self.SYSTEM_MESSAGE},
                "hooks": {"on_pre_tool_use": deny_all_tools},
            }
        )

    async def _ask(self, prompt: str) -> str:
        """Send a prompt and collect the full response."""
        await self._ensure_session()
        session = self._session
        done = asyncio.Event()
        parts: list[str] = []

        def _on_event(event: object) -> None:
            etype = getattr(getattr(event, "type", None), "value", "")
            data = getattr(event, "data", None)
            if etype == "assistant.message" and data:
                content = getattr(data, "content", "") or ""
                if content:
                    parts.append(content)
                done.set()
            elif etype == "session.idle":
                done.set()

        unsubscribe = session.on(_on_event)  # type: ignore[attr-defined]
        try:
            await session.send({"prompt": prompt})  # type: ignore[attr-defined]
            await done.wait()
        finally:
            if callable(unsubscribe):
                unsubscribe()
        return "".join(parts).strip()

    async def project_summary(self, stats: dict[str, Any]) -> Optional[str]:
        text = await self._ask(
            "In 2-3 sentences, summarize the ownership landscape of this repository.\n\n"
            f"Statistics:\n{json.dumps(stats, default=str)}"
        )
        return text or None

    async def contribution_summary(self, stats: dict[str, Any]) -> Optional[str]:
        text = await self._ask(
            "In 1-2 sentences, describe this contributor's role and impact.\n\n"
            f"Statistics:\n{json.dumps(stats, default=str)}"
        )
        return text or None

    async def label_knowledge_areas(self, stats: dict[str, Any]) -> list[str]:
        raw = await self._ask(
            "Give short human-readable labels (e.g. 'Authentication', 'CI pipeline') for the "
            "directories this contributor owns. Return ONLY a JSON array of strings.\n\n"
            f"Statistics:\n{json.dumps(stats, default=str)}"
        )
        return parse_string_list(raw)

    async def recommendations(self, stats: dict[str, Any]) -> list[str]:
        raw = await self._ask(
            "Suggest up to 3 additional concrete actions to reduce knowledge concentration. "
            "Return ONLY a JSON array of strings.\n\n"
            f"Statistics:\n{json.dumps(stats, default=str)}"
        )
        return parse_string_list(raw)

    async def close(self) -> None:
        if self._session:
            try:
                await self._session.destroy()  # type: ignore[attr-defined]
            except Exception as e:
                logger.debug(f"Copilot session teardown failed: {e}")
        if self._client:
            try:
                await self._client.stop()  # type: ignore[attr-defined]
            except Exception as e:
                logger.debug(f"Copilot client teardown failed: {e}")
        self._session = None
        self._client = None


def build_narrative_service(settings: AnalysisSettings) -> Optional[NarrativeService]:
    """Instantiate the configured backend, or None when narrative is disabled."""
    if settings.narrative_backend == "http" and settings.narrative_url:
        return HttpNarrativeService(
            settings.narrative_url,
            timeout=settings.narrative_timeout,
            token=os.environ.get("REPO_RISK_NARRATIVE_TOKEN"),
        )
    if settings.narrative_backend == "copilot":
        return CopilotNarrativeService(model=settings.narrative_model)
    return None
