"""
Domain Layer - Interfaces (Abstract Contracts)
-----------------------------------------------
The application layer depends on these shapes, never on the concrete
GitLab client or PostgreSQL storage. Tests swap in fakes that satisfy
the same contracts.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Iterable

from .entities import (
    Language,
    NewProject,
    Project,
    ProjectPage,
    ProjectRecord,
    RepositoryStatistics,
)


class IProjectFetcher(ABC):
    """Contract for anything that can list a group's projects page by page."""

    @abstractmethod
    async def fetch_page(self, group_id: str, cursor: str | None = None) -> ProjectPage:
        """
        Fetch one page of the group's project listing.

        cursor=None requests the first page; afterwards pass the
        end_cursor of the previous page. Raises RemoteError on failure.
        """
        ...


class IProjectStorage(ABC):
    """
    Contract for the local mirror. Owns every write to projects,
    languages, project languages and the derived search index.
    All upserts are idempotent under repeated identical input.
    """

    @abstractmethod
    def apply_page(self, records: Iterable[ProjectRecord]) -> int:
        """Upsert every record of one page inside one transaction. Returns projects written."""
        ...

    @abstractmethod
    def upsert_project(self, project: NewProject) -> Project:
        ...

    @abstractmethod
    def upsert_language(self, name: str) -> Language:
        ...

    @abstractmethod
    def upsert_project_language(self, project_id: int, language_id: int, percentage: float) -> None:
        ...

    @abstractmethod
    def search(self, query: str, include_archived: bool = False, limit: int = 10) -> list[Project]:
        """Relevance-ranked full-text search, best match first."""
        ...

    @abstractmethod
    def find_all(self) -> list[Project]:
        ...

    @abstractmethod
    def find_by_id(self, project_id: int) -> Project | None:
        ...

    @abstractmethod
    def find_by_external_id(self, external_id: int, source: str) -> Project | None:
        ...

    @abstractmethod
    def find_by_path(self, path: str) -> Project | None:
        """Lookup by full path ("namespace/name")."""
        ...

    @abstractmethod
    def count(self) -> int:
        ...

    @abstractmethod
    def create_run(self, group_id: str) -> int:
        """Create a sync_runs audit row. Returns the run id."""
        ...

    @abstractmethod
    def finish_run(
        self,
        run_id: int,
        pages: int,
        projects: int,
        status: str,
        error: str | None = None,
    ) -> None:
        ...


class IStatisticsReader(ABC):
    """Read-only summary metrics over the current store state."""

    @abstractmethod
    def collect(self) -> RepositoryStatistics:
        ...

    @abstractmethod
    def language_usage(self) -> list[tuple[str, float]]:
        """(language, percent of all language share) over non-archived projects, largest first."""
        ...
