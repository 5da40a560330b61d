from __future__ import annotations

import re
from collections.abc import AsyncIterator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import anyio
import pytest
from dotenv import load_dotenv

from novel_search.embedding.base import EmbeddingProvider, normalize
from novel_search.sources.base import (
    Chapter,
    ChapterRepository,
    Knowledge,
    KnowledgeRepository,
    Plot,
)
from novel_search.vector.sqlite_store import SQLiteVectorStore

_TOKEN_RE = re.compile(r"\w+")

ANIMAL_CONCEPTS: dict[str, set[str]] = {
    "cat": {"cat", "cats", "feline", "kitten", "kittens"},
    "dog": {"dog", "dogs", "canine", "puppy", "puppies"},
    "dragon": {"dragon", "dragons", "wyrm", "scales"},
    "sea": {"sea", "ocean", "ship", "sailor", "waves"},
}


def pytest_configure() -> None:
    """Load .env for integration tests without overriding existing env vars."""
    repo_root = Path(__file__).resolve().parents[1]
    load_dotenv(repo_root / ".env", override=False)


class KeywordEmbeddingProvider(EmbeddingProvider):
    """Embeds text by counting concept keywords.

    One dimension per concept plus a residual dimension for every other
    token, so texts about the same concept land close together.
    """

    def __init__(
        self,
        concepts: dict[str, set[str]] | None = None,
        residual_weight: float = 0.3,
        delay: float = 0.0,
        batch_size: int = 32,
    ) -> None:
        self._concepts = list((concepts or ANIMAL_CONCEPTS).items())
        super().__init__(dimension=len(self._concepts) + 1, batch_size=batch_size)
        self._residual_weight = residual_weight
        self._delay = delay
        self.load_calls = 0
        self.embedded: list[str] = []
        self.fail_on: set[str] = set()

    @property
    def name(self) -> str:
        return "keyword-test"

    async def _load(self) -> None:
        self.load_calls += 1

    async def _embed_texts(self, texts: list[str]) -> list[list[float]]:
        if self._delay:
            await anyio.sleep(self._delay)
        vectors = []
        for text in texts:
            if any(marker in text for marker in self.fail_on):
                raise RuntimeError(f"backend rejected {text!r}")
            self.embedded.append(text)
            vectors.append(self._vectorize(text))
        return vectors

    def _vectorize(self, text: str) -> list[float]:
        vector = [0.0] * self.dimension
        for token in _TOKEN_RE.findall(text.lower()):
            for index, (_, keywords) in enumerate(self._concepts):
                if token in keywords:
                    vector[index] += 1.0
                    break
            else:
                vector[-1] += self._residual_weight
        if not any(vector):
            vector[-1] = 1.0
        return normalize(vector)


class InMemoryKnowledgeRepository(KnowledgeRepository):
    def __init__(self) -> None:
        self.items: dict[str, Knowledge] = {}

    def add(
        self, knowledge_id: str, project_id: int, content: str, title: str | None = None
    ) -> Knowledge:
        item = Knowledge(
            id=knowledge_id,
            project_id=project_id,
            type="note",
            content=content,
            title=title,
        )
        self.items[knowledge_id] = item
        return item

    async def get_by_id(self, knowledge_id: str) -> Knowledge | None:
        return self.items.get(knowledge_id)

    async def list_by_project(self, project_id: int) -> list[Knowledge]:
        return [item for item in self.items.values() if item.project_id == project_id]


class InMemoryChapterRepository(ChapterRepository):
    def __init__(self) -> None:
        self.plots: dict[str, Plot] = {}
        self.chapters: dict[str, Chapter] = {}
        self.contents: dict[str, str] = {}

    def add_plot(self, plot_id: str, project_id: int, title: str) -> Plot:
        plot = Plot(id=plot_id, project_id=project_id, title=title, order=len(self.plots))
        self.plots[plot_id] = plot
        return plot

    def add_chapter(self, chapter_id: str, plot_id: str, title: str, content: str) -> Chapter:
        chapter = Chapter(
            id=chapter_id,
            plot_id=plot_id,
            title=title,
            order=len(self.chapters),
            word_count=len(content.split()),
        )
        self.chapters[chapter_id] = chapter
        self.contents[chapter_id] = content
        return chapter

    async def get_chapter(
        self, chapter_id: str, include_content: bool = False
    ) -> Chapter | None:
        chapter = self.chapters.get(chapter_id)
        if chapter is None:
            return None
        content = self.contents.get(chapter_id) if include_content else None
        return Chapter(
            id=chapter.id,
            plot_id=chapter.plot_id,
            title=chapter.title,
            content=content,
            order=chapter.order,
            word_count=chapter.word_count,
            status=chapter.status,
        )

    async def get_plot(self, plot_id: str) -> Plot | None:
        return self.plots.get(plot_id)

    async def get_chapters_by_plot(
        self, plot_id: str, include_content: bool = False
    ) -> list[Chapter]:
        chapters = []
        for chapter in self.chapters.values():
            if chapter.plot_id == plot_id:
                loaded = await self.get_chapter(chapter.id, include_content)
                assert loaded is not None
                chapters.append(loaded)
        return chapters

    async def get_plots_by_project(self, project_id: int) -> list[Plot]:
        return [plot for plot in self.plots.values() if plot.project_id == project_id]


class TickingClock:
    """Returns a strictly increasing timestamp on every call."""

    def __init__(self) -> None:
        self._now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self._now += timedelta(seconds=1)
        return self._now


@pytest.fixture
def keyword_provider() -> KeywordEmbeddingProvider:
    return KeywordEmbeddingProvider()


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
async def memory_store(clock: TickingClock) -> AsyncIterator[SQLiteVectorStore]:
    store = SQLiteVectorStore(clock=clock)
    yield store
    await store.close()


@pytest.fixture
def knowledge_repo() -> InMemoryKnowledgeRepository:
    return InMemoryKnowledgeRepository()


@pytest.fixture
def chapter_repo() -> InMemoryChapterRepository:
    return InMemoryChapterRepository()


@pytest.fixture
def slow_provider() -> KeywordEmbeddingProvider:
    """A provider slow enough for concurrent callers to overlap."""
    return KeywordEmbeddingProvider(delay=0.05)
