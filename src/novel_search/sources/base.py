"""Read-only interfaces to the writing app's source records."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class Knowledge:
    """A knowledge note attached to a project."""

    id: str
    project_id: int
    type: str
    content: str
    title: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class Plot:
    """A plot line grouping ordered chapters."""

    id: str
    project_id: int
    title: str
    summary: str | None = None
    order: int = 0


@dataclass(slots=True)
class Chapter:
    """A chapter of a plot. content is None unless explicitly loaded."""

    id: str
    plot_id: str
    title: str
    content: str | None = None
    summary: str | None = None
    order: int = 0
    word_count: int = 0
    status: str = "draft"


class KnowledgeRepository(ABC):
    """Read access to knowledge notes."""

    @abstractmethod
    async def get_by_id(self, knowledge_id: str) -> Knowledge | None:
        ...

    @abstractmethod
    async def list_by_project(self, project_id: int) -> list[Knowledge]:
        ...


class ChapterRepository(ABC):
    """Read access to plots and their chapters."""

    @abstractmethod
    async def get_chapter(
        self, chapter_id: str, include_content: bool = False
    ) -> Chapter | None:
        ...

    @abstractmethod
    async def get_plot(self, plot_id: str) -> Plot | None:
        ...

    @abstractmethod
    async def get_chapters_by_plot(
        self, plot_id: str, include_content: bool = False
    ) -> list[Chapter]:
        ...

    @abstractmethod
    async def get_plots_by_project(self, project_id: int) -> list[Plot]:
        ...
