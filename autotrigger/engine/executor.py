"""Trigger executor — sends a short prompt to each selected model."""

from __future__ import annotations

import time
import uuid
from datetime import datetime
from typing import Protocol

import httpx
from loguru import logger

from autotrigger.core.config.schema import TriggerConfig
from autotrigger.core.schedule.types import ModelInfo, TriggerRecord, TriggerType
from autotrigger.engine.credentials import CredentialService


class TriggerExecutor(Protocol):
    async def trigger(self, models: list[str], trigger_type: TriggerType) -> TriggerRecord: ...

    async def fetch_available_models(self) -> list[ModelInfo]: ...


def _extract_reply(data: dict) -> str:
    """First candidate text from a generateContent response."""
    candidates = (data.get("response") or {}).get("candidates") or data.get("candidates") or []
    try:
        text = candidates[0]["content"]["parts"][0]["text"]
    except (IndexError, KeyError, TypeError):
        return "(no reply)"
    return str(text).strip() or "(no reply)"


class HttpTriggerExecutor:
    """Executor that talks to the generateContent endpoint over httpx.

    Failures never propagate; they come back as a failed TriggerRecord.
    """

    def __init__(
        self,
        config: TriggerConfig,
        credentials: CredentialService,
        client: httpx.AsyncClient | None = None,
    ):
        self.config = config
        self.credentials = credentials
        self._client = client

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.api_base.rstrip("/"),
                timeout=self.config.request_timeout_s,
                headers={"User-Agent": self.config.user_agent},
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch_available_models(self) -> list[ModelInfo]:
        return list(self.config.models)

    async def trigger(self, models: list[str], trigger_type: TriggerType) -> TriggerRecord:
        start = time.time()
        prompt = f"[{', '.join(models)}] {self.config.prompt}"
        logger.info(f"Starting trigger ({trigger_type.value}) for models: {', '.join(models)}")

        try:
            token = await self.credentials.get_access_token()
            if not token:
                raise RuntimeError("No valid access token. Please authorize first.")

            replies = []
            for model in models:
                reply = await self._send(token, model)
                replies.append(f"{model}: {reply}")

            record = TriggerRecord(
                timestamp=datetime.now(),
                success=True,
                trigger_type=trigger_type,
                prompt=prompt,
                message="\n".join(replies),
                duration_ms=int((time.time() - start) * 1000),
            )
            logger.info(f"Trigger succeeded in {record.duration_ms}ms")
            return record
        except Exception as e:
            logger.error(f"Trigger failed: {e}")
            return TriggerRecord(
                timestamp=datetime.now(),
                success=False,
                trigger_type=trigger_type,
                prompt=prompt,
                message=str(e),
                duration_ms=int((time.time() - start) * 1000),
            )

    async def _send(self, token: str, model: str) -> str:
        body = {
            "project": self.config.project_id,
            "requestId": f"req_{uuid.uuid4().hex[:12]}",
            "model": model,
            "userAgent": "antigravity",
            "request": {
                "contents": [{"role": "user", "parts": [{"text": self.config.prompt}]}],
                "session_id": f"sess_{uuid.uuid4().hex[:12]}",
            },
        }
        resp = await self._http().post(
            "/v1internal:generateContent",
            json=body,
            headers={"Authorization": f"Bearer {token}"},
        )
        if resp.status_code >= 400:
            raise RuntimeError(f"API request failed: {resp.status_code} - {resp.text[:100]}")
        try:
            data = resp.json()
        except ValueError:
            return "(non-JSON response)"
        logger.debug(f"generateContent response for {model}: {str(data)[:500]}")
        return _extract_reply(data if isinstance(data, dict) else {})
