from __future__ import annotations
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class NewProject:
    """
    The values a sync pass proposes for one mirrored project.

    Identity is the natural key (external_id, source). The local surrogate
    id does not exist yet; the store assigns it on first insert and the
    upsert hands it back as a Project.
    """
    external_id:  int
    source:       str
    name:         str
    namespace:    str
    description:  str | None
    created_at:   datetime
    updated_at:   datetime
    pushed_at:    datetime
    web_url:      str
    ssh_url:      str
    private:      bool
    forks_count:  int
    archived:     bool
    size:         int
    commit_count: int


@dataclass(frozen=True)
class Project:
    """A mirrored project as stored locally, local id included."""
    id:           int
    external_id:  int
    source:       str
    name:         str
    namespace:    str
    description:  str | None
    created_at:   datetime
    updated_at:   datetime
    pushed_at:    datetime
    web_url:      str
    ssh_url:      str
    private:      bool
    forks_count:  int
    archived:     bool
    size:         int
    commit_count: int

    @property
    def path(self) -> str:
        return f"{self.namespace}/{self.name}" if self.namespace else self.name

    def as_dict(self) -> dict[str, Any]:
        return {
            "id":           self.id,
            "external_id":  self.external_id,
            "source":       self.source,
            "name":         self.name,
            "namespace":    self.namespace,
            "path":         self.path,
            "description":  self.description,
            "created_at":   self.created_at.isoformat(),
            "updated_at":   self.updated_at.isoformat(),
            "pushed_at":    self.pushed_at.isoformat(),
            "web_url":      self.web_url,
            "ssh_url":      self.ssh_url,
            "private":      self.private,
            "forks_count":  self.forks_count,
            "archived":     self.archived,
            "size":         self.size,
            "commit_count": self.commit_count,
        }


@dataclass(frozen=True)
class Language:
    id:   int
    name: str


@dataclass(frozen=True)
class LanguageShare:
    """One (language name, share) pair reported by the remote for a project."""
    name:       str
    percentage: float


@dataclass(frozen=True)
class ProjectRecord:
    """
    One remote node after mapping: the project plus its language set.
    The unit the store applies for a single project inside a page transaction.
    """
    project:   NewProject
    languages: tuple[LanguageShare, ...] = ()


@dataclass(frozen=True)
class PageInfo:
    end_cursor:    str | None
    has_next_page: bool


@dataclass(frozen=True)
class ProjectPage:
    """
    One page of the remote listing.

    Nodes stay as raw dicts here: mapping is per record so that one
    malformed node can be dropped without losing the rest of the page.
    """
    nodes:     list[dict]
    page_info: PageInfo
    count:     int | None = None


@dataclass(frozen=True)
class RepositoryStatistics:
    """Summary metrics over the current store state."""
    total_projects:        int
    largest_project:       str | None
    most_active_project:   str | None
    newest_project:        str | None
    most_used_language:    str | None
    private_project_count: int
    public_project_count:  int

    def as_dict(self) -> dict[str, Any]:
        return {
            "total_projects":        self.total_projects,
            "largest_project":       self.largest_project,
            "most_active_project":   self.most_active_project,
            "newest_project":        self.newest_project,
            "most_used_language":    self.most_used_language,
            "private_project_count": self.private_project_count,
            "public_project_count":  self.public_project_count,
        }


@dataclass
class SyncResult:
    """
    Outcome of one sync run.

    Mutable on purpose: the orchestrator advances the counters page by
    page, and a failed run still carries everything committed before it.
    """
    group_id:          str
    status:            str = "running"
    pages_committed:   int = 0
    total_pages:       int | None = None
    projects_upserted: int = 0
    records_skipped:   int = 0
    elapsed_secs:      float = 0.0
    error_message:     str | None = None
    run_id:            int | None = None
    skipped_ids:       list[str] = field(default_factory=list)

    @staticmethod
    def estimate_total_pages(count: int | None, page_size: int) -> int | None:
        if count is None or page_size <= 0:
            return None
        return max(1, math.ceil(count / page_size))

    def summary(self) -> str:
        total = self.total_pages if self.total_pages is not None else "unknown total"
        return f"processed {self.pages_committed} of {total} pages"
