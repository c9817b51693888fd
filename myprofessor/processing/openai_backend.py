"""Transcription and summarisation through the OpenAI API."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from ..errors import RemoteServiceError
from ..services.ingestion import Summarizer, TranscriptionEngine


LOGGER = logging.getLogger(__name__)


SUMMARY_SYSTEM_PROMPT = (
    "You are a teaching assistant. Summarise this lecture as clear bullet points. "
    "Separate Definitions, Concepts and Examples."
)

COURSE_SYSTEM_PROMPT = (
    "You are a teaching assistant. Rewrite this lecture transcript as a structured "
    "course with headings, explanations and a short recap at the end."
)


def _build_client(api_key: str, timeout: float) -> Any:
    if not api_key:
        raise RemoteServiceError("OPENAI_API_KEY is not configured")
    try:
        from openai import OpenAI
    except ImportError as exc:  # pragma: no cover - exercised in runtime, not tests
        raise RemoteServiceError("openai is not installed") from exc
    return OpenAI(api_key=api_key, timeout=timeout)


class OpenAITranscription(TranscriptionEngine):
    """Transcription engine backed by the hosted Whisper model."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "whisper-1",
        timeout: float = 600.0,
        client: Optional[Any] = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._timeout = timeout
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = _build_client(self._api_key, self._timeout)
        return self._client

    def transcribe(self, audio_path: Path) -> str:
        client = self._get_client()
        LOGGER.debug("Requesting transcription of %s with model=%s", audio_path, self._model)
        try:
            with Path(audio_path).open("rb") as handle:
                response = client.audio.transcriptions.create(model=self._model, file=handle)
        except OSError as error:
            raise RemoteServiceError(f"open audio file: {error}") from error
        except Exception as error:  # noqa: BLE001 - SDK errors vary by transport
            raise RemoteServiceError(f"transcription failed: {error}") from error

        text = getattr(response, "text", "") or ""
        LOGGER.info("Transcription of %s returned %s characters", Path(audio_path).name, len(text))
        return text.strip()


class OpenAISummarizer(Summarizer):
    """Summaries and course drafts from a chat completion model."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "gpt-4o-mini",
        timeout: float = 600.0,
        client: Optional[Any] = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._timeout = timeout
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = _build_client(self._api_key, self._timeout)
        return self._client

    def _complete(self, system_prompt: str, user_content: str) -> str:
        if not user_content.strip():
            raise RemoteServiceError("nothing to send: transcription is empty")
        client = self._get_client()
        try:
            response = client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_content},
                ],
            )
        except Exception as error:  # noqa: BLE001 - SDK errors vary by transport
            raise RemoteServiceError(f"completion failed: {error}") from error

        choices = getattr(response, "choices", None) or []
        if not choices:
            raise RemoteServiceError("completion returned no choices")
        content = choices[0].message.content or ""
        return content.strip()

    def summarize(self, transcription: str) -> str:
        return self._complete(SUMMARY_SYSTEM_PROMPT, transcription)

    def generate_course(self, transcription: str, instructions: str = "") -> str:
        prompt = COURSE_SYSTEM_PROMPT
        if instructions.strip():
            prompt = f"{prompt}\nAdditional instructions: {instructions.strip()}"
        return self._complete(prompt, transcription)


__all__ = ["OpenAISummarizer", "OpenAITranscription"]
