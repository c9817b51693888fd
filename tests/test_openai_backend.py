from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from myprofessor.errors import RemoteServiceError
from myprofessor.processing.openai_backend import OpenAISummarizer, OpenAITranscription


class FakeTranscriptions:
    def __init__(self, text: str = " hello class ") -> None:
        self.text = text
        self.requests = []

    def create(self, *, model, file):
        self.requests.append((model, file.read()))
        return SimpleNamespace(text=self.text)


class FakeCompletions:
    def __init__(self, content: str = "- point", error: Exception = None) -> None:
        self.content = content
        self.error = error
        self.requests = []

    def create(self, *, model, messages):
        self.requests.append((model, messages))
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _client(transcriptions=None, completions=None):
    return SimpleNamespace(
        audio=SimpleNamespace(transcriptions=transcriptions or FakeTranscriptions()),
        chat=SimpleNamespace(completions=completions or FakeCompletions()),
    )


def test_transcription_sends_audio_and_strips_text(tmp_path: Path) -> None:
    audio = tmp_path / "a_compressed.mp3"
    audio.write_bytes(b"mp3-bytes")
    transcriptions = FakeTranscriptions()
    engine = OpenAITranscription("key", model="whisper-1", client=_client(transcriptions))

    assert engine.transcribe(audio) == "hello class"
    assert transcriptions.requests == [("whisper-1", b"mp3-bytes")]


def test_transcription_of_missing_file_is_remote_error(tmp_path: Path) -> None:
    engine = OpenAITranscription("key", client=_client())

    with pytest.raises(RemoteServiceError):
        engine.transcribe(tmp_path / "missing.mp3")


def test_missing_api_key_is_reported() -> None:
    with pytest.raises(RemoteServiceError) as excinfo:
        OpenAISummarizer("").summarize("text")

    assert "OPENAI_API_KEY" in str(excinfo.value)


def test_summarizer_uses_system_prompt_and_model() -> None:
    completions = FakeCompletions(content="  - entropy grows  ")
    summarizer = OpenAISummarizer("key", model="gpt-test", client=_client(completions=completions))

    assert summarizer.summarize("Lecture text") == "- entropy grows"
    model, messages = completions.requests[0]
    assert model == "gpt-test"
    assert messages[0]["role"] == "system"
    assert messages[1] == {"role": "user", "content": "Lecture text"}


def test_course_instructions_are_appended() -> None:
    completions = FakeCompletions(content="# Course")
    summarizer = OpenAISummarizer("key", client=_client(completions=completions))

    summarizer.generate_course("Lecture text", "  use examples ")

    system_prompt = completions.requests[0][1][0]["content"]
    assert system_prompt.endswith("Additional instructions: use examples")


def test_sdk_errors_and_empty_input_become_remote_errors() -> None:
    failing = OpenAISummarizer(
        "key", client=_client(completions=FakeCompletions(error=ValueError("rate limited")))
    )
    with pytest.raises(RemoteServiceError) as excinfo:
        failing.summarize("text")
    assert "rate limited" in str(excinfo.value)

    with pytest.raises(RemoteServiceError):
        OpenAISummarizer("key", client=_client()).summarize("   ")
