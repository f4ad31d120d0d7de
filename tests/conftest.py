"""
Pytest configuration and shared fixtures for the revision pipeline tests.
"""
import json
import re
import sys
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Generator, List, Tuple
from unittest.mock import AsyncMock

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from ai_providers.base import AIProviderType, AIResponse
from core.context import ContextBuilder, VersionIndexCache
from core.operations import OperationRunner
from core.pipeline import PipelineOrchestrator
from core.storage import LocalObjectStore, RevisionRepository
from core.versioning import VersionStore


SAMPLE_CHAPTER = (
    "# Introduction\n\n"
    "Our client relationships matter. We serve every client with care.\n\n"
    "The team meets weekly to review progress.\n\n"
    "# Pricing\n\n"
    "Each client pays a monthly fee of 10 euros."
)

_NUMBERED_RE = re.compile(r"^\[(\d+)\] (.*)$", re.MULTILINE)


def numbered_paragraphs(prompt: str) -> List[Tuple[int, str]]:
    """The [i] paragraphs a generator put into its prompt"""
    return [(int(i), text) for i, text in _NUMBERED_RE.findall(prompt)]


# ============================================================================
# Fake provider
# ============================================================================

class ScriptedProviderManager:
    """
    Stands in for AIProviderManager. Each call's reply is produced by
    responder(prompt); returning an Exception raises it instead.
    """

    def __init__(self, responder: Callable[[str], object]):
        self.responder = responder
        self.prompts: List[str] = []
        self.complete = AsyncMock(side_effect=self._complete)

    async def _complete(self, messages, system_prompt=None, provider=None, model=None, **kwargs):
        prompt = messages[-1].content
        self.prompts.append(prompt)
        reply = self.responder(prompt)
        if isinstance(reply, Exception):
            raise reply
        return AIResponse(
            content=reply if isinstance(reply, str) else json.dumps(reply),
            model="gpt-4o-mini",
            provider=AIProviderType.OPENAI,
            usage={"input_tokens": 1000, "output_tokens": 500},
        )


def adjust_responder(prompt: str):
    """Replace 'client' with 'customer' in every paragraph that has it"""
    return {
        "adjustments": [
            {
                "paragraphIndex": i,
                "originalText": text,
                "adjustedText": text.replace("client", "customer"),
                "reason": "Terminology",
                "instructionReference": "client -> customer",
            }
            for i, text in numbered_paragraphs(prompt)
            if "client" in text
        ]
    }


def translate_responder(prompt: str):
    """Tag every paragraph as translated"""
    return {
        "translations": [
            {"index": i, "translatedText": f"{text} [fr]"}
            for i, text in numbered_paragraphs(prompt)
        ]
    }


def operation_responder(prompt: str):
    """Route by prompt shape so one manager can serve a whole pipeline"""
    if prompt.startswith("Translate each numbered paragraph"):
        return translate_responder(prompt)
    if "INSTRUCTIONS:" in prompt:
        return adjust_responder(prompt)
    return {"improvements": [], "suggestions": [], "updates": []}


# ============================================================================
# Fixtures: Storage
# ============================================================================

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def repository(temp_dir: Path) -> RevisionRepository:
    return RevisionRepository(str(temp_dir / "revisions.db"))


@pytest.fixture
def object_store(temp_dir: Path) -> LocalObjectStore:
    return LocalObjectStore(str(temp_dir / "objects"))


@pytest.fixture
def version_store(repository, object_store) -> VersionStore:
    return VersionStore(repository, object_store)


@pytest.fixture
def document_id(repository) -> str:
    return repository.create_document("Handbook")


@pytest.fixture
def chapter(version_store, document_id) -> Tuple[str, str]:
    """(chapter_id, root_version_id) for SAMPLE_CHAPTER"""
    return version_store.upload_chapter(document_id, "Introduction", SAMPLE_CHAPTER.encode("utf-8"), "intro.md")


# ============================================================================
# Fixtures: Engine
# ============================================================================

@pytest.fixture
def provider_manager() -> ScriptedProviderManager:
    return ScriptedProviderManager(operation_responder)


@pytest.fixture
def context_builder(repository) -> ContextBuilder:
    return ContextBuilder(repository, VersionIndexCache(max_versions=8))


@pytest.fixture
def runner(repository, version_store, provider_manager, context_builder) -> OperationRunner:
    return OperationRunner(
        repository,
        version_store,
        provider_manager,
        context_builder=context_builder,
        subjob_timeout=2,
        subjob_poll_interval=0.01,
    )


@pytest.fixture
def orchestrator(repository, version_store, runner, object_store) -> PipelineOrchestrator:
    return PipelineOrchestrator(
        repository,
        version_store,
        runner,
        object_store,
        pause_poll_interval=0.05,
    )


# ============================================================================
# Session-level Setup
# ============================================================================

def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers."""
    for item in items:
        # Auto-add 'unit' marker to test files in tests/unit/
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        # Auto-add 'integration' marker to test files in tests/integration/
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
