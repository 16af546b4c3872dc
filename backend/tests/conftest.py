# backend/tests/conftest.py
import io
import json
import os
import tempfile
from types import SimpleNamespace

# must happen before anything imports config
_tmp = tempfile.mkdtemp(prefix="canvas-consensus-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_tmp, 'test.db')}"
os.environ["GROQ_API_KEY"] = ""

import pytest
from docx import Document as DocxDocument

from analysis_client import AnalysisClient
from session_service import SessionService
from store import EntityStore, InMemoryRepository

CANVAS_LINES = [
    "Naam: Jan Jansen",
    "Vraag A: Huidige situatie",
    "We werken in losse teams zonder gedeeld klantbeeld",
    "Vraag B: Gewenste situatie",
    "Een gedeeld klantbeeld voor alle teams",
    "Vraag C: Beweging",
    "Van productdenken naar klantdenken",
    "Vraag D: Belanghebbenden",
    "Klanten, medewerkers en partners",
    "Doel 1: Wat is je belangrijkste doel?",
    "Klanttevredenheid verhogen",
    "Doel 2:",
    "Doorlooptijd halveren",
    "Doel 3:",
    "Medewerkers betrekken",
    "Scope: Wat valt buiten het programma?",
    "Nieuwe IT-systemen; Reorganisatie",
]


class FakeLLM:
    """Stands in for the Groq client: replies are chosen by system prompt."""

    def __init__(self, replies=None):
        self.replies = dict(replies or {})
        self.calls = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, model, messages, **kwargs):
        system = messages[0]["content"]
        self.calls.append(system)
        reply = self.replies.get(system, "")
        if isinstance(reply, Exception):
            raise reply
        if not isinstance(reply, str):
            reply = json.dumps(reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=reply))])


def build_canvas(lines=CANVAS_LINES) -> bytes:
    doc = DocxDocument()
    for line in lines:
        doc.add_paragraph(line)
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


@pytest.fixture
def canvas_bytes():
    return build_canvas()


@pytest.fixture
def make_canvas():
    return build_canvas


@pytest.fixture
def store():
    return EntityStore(InMemoryRepository())


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def service(store, llm):
    return SessionService(store, AnalysisClient(llm))


@pytest.fixture
def make_llm():
    return FakeLLM
