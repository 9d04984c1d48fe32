"""Orchestrates palette generation and history reads."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Set

from fastapi import BackgroundTasks
from starlette.concurrency import run_in_threadpool

from history.store import HistoryStore
from palette.errors import MissingInput, ModelInvocationError, PaletteError, ServerError
from palette.normalizer import normalize_completion
from palette.types import HistoryRecord, Palette

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = """You are Prism AI, a synesthesia engine. You convert text into color palettes.
Rules:
1. Analyze the input for mood, emotion, and imagery.
2. Generate exactly 5 hex codes.
3. Output ONLY raw JSON. No markdown, no backticks, no conversation.

JSON Schema:
{
  "name": "Creative Name",
  "colors": ["#hex1", "#hex2", "#hex3", "#hex4", "#hex5"],
  "description": "One short sentence explaining the vibe."
}"""


def _report_persist_outcome(task: "asyncio.Future[str]") -> None:
    if task.cancelled():
        logger.error("Palette save was cancelled before completing")
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Palette generated but not saved: %s", exc, exc_info=exc)


async def _drain(task: "asyncio.Future[str]") -> None:
    await asyncio.wait([task])


class PaletteCoordinator:
    """Runs one generate request end-to-end and serves history reads.

    ``model`` is any object with ``run(messages) -> payload``; ``store`` is a
    :class:`HistoryStore`.
    """

    def __init__(
        self,
        model: Any,
        store: HistoryStore,
        *,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        persist_wait: Optional[float] = 5.0,
    ) -> None:
        self.model = model
        self.store = store
        self.system_prompt = system_prompt
        self.persist_wait = persist_wait
        # The event loop only holds weak references to tasks.
        self._pending: Set["asyncio.Future[str]"] = set()

    def build_messages(self, text: str) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": text},
        ]

    async def generate(
        self,
        text: Any,
        user_id: Optional[str] = None,
        background: Optional[BackgroundTasks] = None,
    ) -> Palette:
        if not isinstance(text, str) or not text.strip():
            raise MissingInput()

        try:
            messages = self.build_messages(text)
            try:
                completion = await run_in_threadpool(self.model.run, messages)
            except PaletteError:
                raise
            except Exception as e:
                logger.exception("Model invocation failed: %s", e)
                raise ModelInvocationError(details=str(e)) from e

            palette = normalize_completion(completion)
            record: HistoryRecord = {
                **palette,
                "original_text": text,
                "timestamp": int(time.time() * 1000),
            }
            await self._persist(user_id, record, background)
            return palette
        except PaletteError:
            raise
        except Exception as e:
            logger.exception("Palette generation failed: %s", e)
            raise ServerError(details=str(e)) from e

    async def history(self, user_id: Optional[str] = None) -> Dict[str, HistoryRecord]:
        shard = self.store.shard(user_id)
        try:
            return await run_in_threadpool(shard.list)
        except PaletteError:
            raise
        except Exception as e:
            logger.exception("History read failed: %s", e)
            raise ServerError(details=str(e)) from e

    async def _persist(
        self,
        user_id: Optional[str],
        record: HistoryRecord,
        background: Optional[BackgroundTasks],
    ) -> None:
        """Save ``record`` without letting a failure reach the caller.

        The append runs as its own task. It is registered with ``background``
        so the request stays alive until it finishes, and awaited here for up
        to ``persist_wait`` seconds.
        """
        shard = self.store.shard(user_id)
        task = asyncio.ensure_future(run_in_threadpool(shard.append, record))
        task.add_done_callback(_report_persist_outcome)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        if background is not None:
            background.add_task(_drain, task)

        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=self.persist_wait)
        except asyncio.TimeoutError:
            logger.warning(
                "Palette save still running after %.1fs; finishing in background",
                self.persist_wait,
            )
        except Exception as e:
            # Reported by _report_persist_outcome.
            logger.debug("Palette save failed, continuing with response: %s", e)
