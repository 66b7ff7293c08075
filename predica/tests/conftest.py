import json
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

PROJECT_ROOT = Path(__file__).resolve().parents[2]  # repo root
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from predica.backend.app import create_app, get_llm_client  # noqa: E402
from predica.memory import db as db_module  # noqa: E402

TEST_PROMPTS = {
    "titulo": "Evalúa este título: [transcripción]",
    "introduccion": "Evalúa la introducción.",
}


class FakeLLM:
    """Stand-in for ``openai.AsyncOpenAI`` recording every call.

    Chat completions echo the prompt back so tests can see what was sent.
    ``transcripts`` is consumed one item per transcription call; an exception
    instance in the list is raised instead of returned.
    """

    def __init__(self, transcripts=None, chat_error=None, speech_error=None):
        self.transcripts = list(transcripts or [])
        self.chat_error = chat_error
        self.speech_error = speech_error
        self.prompts = []
        self.transcription_calls = 0
        self.speech_calls = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._chat))
        self.audio = SimpleNamespace(
            transcriptions=SimpleNamespace(create=self._transcribe),
            speech=SimpleNamespace(create=self._speech),
        )

    async def _chat(self, model, messages):
        prompt = messages[0]["content"]
        self.prompts.append(prompt)
        if self.chat_error is not None:
            raise self.chat_error
        message = SimpleNamespace(content=f"Evaluación de: {prompt}")
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    async def _transcribe(self, file, model):
        self.transcription_calls += 1
        file.read()
        outcome = self.transcripts.pop(0) if self.transcripts else "texto transcrito"
        if isinstance(outcome, Exception):
            raise outcome
        return SimpleNamespace(text=outcome)

    async def _speech(self, model, voice, input):
        self.speech_calls.append((model, voice, input))
        if self.speech_error is not None:
            raise self.speech_error
        return SimpleNamespace(content=b"ID3-fake-mp3")


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def memory_db(tmp_path):
    """Point the message store at a fresh SQLite file."""
    db_module.configure_engine(f"sqlite:///{tmp_path / 'mensajes.db'}")
    db_module.init_db()
    yield db_module
    db_module.configure_engine()


@pytest.fixture
def prompts_file(tmp_path):
    path = tmp_path / "prompts.json"
    path.write_text(json.dumps({"promptsCalibracion": TEST_PROMPTS}, ensure_ascii=False), encoding="utf-8")
    return path


@pytest.fixture
def app_paths(tmp_path, prompts_file):
    public_dir = tmp_path / "public"
    public_dir.mkdir()
    (public_dir / "index.html").write_text("<h1>Predica</h1>", encoding="utf-8")
    return {
        "prompts_file": prompts_file,
        "questions_file": tmp_path / "preguntas.json",
        "upload_dir": tmp_path / "uploads",
        "public_dir": public_dir,
        "database_url": f"sqlite:///{tmp_path / 'app.db'}",
    }


@pytest.fixture
def app(app_paths, fake_llm):
    application = create_app(**app_paths, transcription_backoff=0)
    application.dependency_overrides[get_llm_client] = lambda: fake_llm
    return application


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
    db_module.configure_engine()
