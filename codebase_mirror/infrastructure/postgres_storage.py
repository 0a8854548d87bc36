from __future__ import annotations
import logging
import threading
from contextlib import contextmanager
from typing import Iterable, Iterator

import psycopg2
from psycopg2.extras import RealDictCursor
from psycopg2.pool import ThreadedConnectionPool

from codebase_mirror.domain.entities import Language, NewProject, Project, ProjectRecord
from codebase_mirror.domain.errors import StoreError
from codebase_mirror.domain.interfaces import IProjectStorage
from .schema import SCHEMA_SQL
from .search_index import TEXT_SEARCH_CONFIG, SearchIndexMaintainer

log = logging.getLogger(__name__)

DEFAULT_POOL_SIZE = 5

PROJECT_COLUMNS = (
    "id, external_id, source, name, namespace, description, created_at, updated_at, "
    "pushed_at, web_url, ssh_url, private, forks_count, archived, size, commit_count"
)

# Full path as the remote shows it. Kept in step with Project.path and
# with idx_projects_path in the schema.
PROJECT_PATH_SQL = "(CASE WHEN namespace = '' THEN name ELSE namespace || '/' || name END)"

_UPSERT_PROJECT_SQL = f"""
INSERT INTO projects
    (external_id, source, name, namespace, description, created_at, updated_at,
     pushed_at, ssh_url, web_url, private, forks_count, archived, size, commit_count)
VALUES
    (%(external_id)s, %(source)s, %(name)s, %(namespace)s, %(description)s,
     %(created_at)s, %(updated_at)s, %(pushed_at)s, %(ssh_url)s, %(web_url)s,
     %(private)s, %(forks_count)s, %(archived)s, %(size)s, %(commit_count)s)
ON CONFLICT (external_id, source) DO UPDATE SET
    name         = EXCLUDED.name,
    namespace    = EXCLUDED.namespace,
    description  = EXCLUDED.description,
    created_at   = EXCLUDED.created_at,
    updated_at   = EXCLUDED.updated_at,
    pushed_at    = EXCLUDED.pushed_at,
    ssh_url      = EXCLUDED.ssh_url,
    web_url      = EXCLUDED.web_url,
    private      = EXCLUDED.private,
    forks_count  = EXCLUDED.forks_count,
    archived     = EXCLUDED.archived,
    size         = EXCLUDED.size,
    commit_count = EXCLUDED.commit_count
RETURNING {PROJECT_COLUMNS}
"""

_SEARCH_SQL = f"""
SELECT {", ".join("p." + c.strip() for c in PROJECT_COLUMNS.split(","))}
FROM project_search_index si
JOIN projects p ON p.id = si.project_id
CROSS JOIN websearch_to_tsquery('{TEXT_SEARCH_CONFIG}', %(query)s) AS q
WHERE si.document @@ q
  AND (%(include_archived)s OR NOT p.archived)
ORDER BY ts_rank_cd(si.document, q) DESC, p.id ASC
LIMIT %(limit)s
"""


def _to_project(row: dict) -> Project:
    return Project(**row)


class StoreTransaction:
    """
    Write operations bound to one open transaction.

    Every write that can change a project's searchable text reindexes
    that project before returning, inside the same transaction, unless
    the caller passes reindex=False and reindexes once itself.
    """

    def __init__(self, cur, index: SearchIndexMaintainer) -> None:
        self._cur   = cur
        self._index = index

    @property
    def cursor(self):
        return self._cur

    def upsert_project(self, project: NewProject, reindex: bool = True) -> Project:
        """
        Insert, or on (external_id, source) conflict overwrite every
        mutable field. The local id survives the overwrite.
        """
        self._cur.execute(
            _UPSERT_PROJECT_SQL,
            {
                "external_id":  project.external_id,
                "source":       project.source,
                "name":         project.name,
                "namespace":    project.namespace,
                "description":  project.description,
                "created_at":   project.created_at,
                "updated_at":   project.updated_at,
                "pushed_at":    project.pushed_at,
                "ssh_url":      project.ssh_url,
                "web_url":      project.web_url,
                "private":      project.private,
                "forks_count":  project.forks_count,
                "archived":     project.archived,
                "size":         project.size,
                "commit_count": project.commit_count,
            },
        )
        stored = _to_project(self._cur.fetchone())
        if reindex:
            self._index.reindex_project(self._cur, stored.id)
        return stored

    def upsert_language(self, name: str) -> Language:
        """
        Insert-or-fetch by unique name. Both statements run in this
        transaction, so there is no window between a skipped insert and
        the lookup.
        """
        self._cur.execute(
            """
            INSERT INTO languages (name)
            VALUES (%s)
            ON CONFLICT (name) DO NOTHING
            RETURNING id, name
            """,
            (name,),
        )
        row = self._cur.fetchone()
        if row is None:
            self._cur.execute("SELECT id, name FROM languages WHERE name = %s", (name,))
            row = self._cur.fetchone()
        return Language(id=row["id"], name=row["name"])

    def upsert_project_language(
        self,
        project_id: int,
        language_id: int,
        percentage: float,
        reindex: bool = True,
    ) -> None:
        self._cur.execute(
            """
            INSERT INTO project_languages (project_id, language_id, percentage)
            VALUES (%s, %s, %s)
            ON CONFLICT (project_id, language_id) DO UPDATE SET
                percentage = EXCLUDED.percentage
            """,
            (project_id, language_id, percentage),
        )
        if reindex:
            self._index.reindex_project(self._cur, project_id)

    def delete_project_language(self, project_id: int, language_id: int) -> bool:
        self._cur.execute(
            "DELETE FROM project_languages WHERE project_id = %s AND language_id = %s",
            (project_id, language_id),
        )
        deleted = self._cur.rowcount > 0
        self._index.reindex_project(self._cur, project_id)
        return deleted

    def apply_records(self, records: Iterable[ProjectRecord]) -> int:
        """
        Write a page of mapped records and reindex each project once,
        after its language rows are in place.

        Language rows are resolved first, in sorted order, so concurrent
        page transactions always lock language names in the same order
        and cannot deadlock against each other.
        """
        records = list(records)
        names = sorted({share.name for record in records for share in record.languages})
        languages = {name: self.upsert_language(name) for name in names}

        for record in records:
            project = self.upsert_project(record.project, reindex=False)
            for share in record.languages:
                self.upsert_project_language(
                    project.id, languages[share.name].id, share.percentage, reindex=False,
                )
            self._index.reindex_project(self._cur, project.id)
        return len(records)


class PostgresProjectStorage(IProjectStorage):
    """
    Concrete IProjectStorage on PostgreSQL.

    Receives an already-built connection pool (injected). Each public
    method checks out one connection, runs in one transaction, and gives
    the connection back. Storage calls block; the orchestrator runs them
    in worker threads, which is why the pool is the threaded kind and a
    semaphore makes callers queue for a free connection instead of
    failing with "pool exhausted".
    """

    def __init__(self, pool: ThreadedConnectionPool, pool_size: int = DEFAULT_POOL_SIZE) -> None:
        self._pool  = pool
        self._slots = threading.BoundedSemaphore(pool_size)
        self._index = SearchIndexMaintainer()

    @classmethod
    def connect(cls, database_url: str, pool_size: int = DEFAULT_POOL_SIZE) -> "PostgresProjectStorage":
        try:
            pool = ThreadedConnectionPool(1, pool_size, dsn=database_url)
        except psycopg2.Error as exc:
            raise StoreError(f"could not connect to database: {exc}") from exc
        return cls(pool, pool_size=pool_size)

    def close(self) -> None:
        self._pool.closeall()

    @contextmanager
    def transaction(self) -> Iterator[StoreTransaction]:
        """
        One transaction on one pooled connection. Commits on clean exit,
        rolls back on any exception. psycopg2 errors leave as StoreError.
        """
        with self._slots:
            try:
                conn = self._pool.getconn()
            except psycopg2.Error as exc:
                raise StoreError(f"could not obtain a connection: {exc}") from exc
            try:
                with conn:
                    with conn.cursor(cursor_factory=RealDictCursor) as cur:
                        yield StoreTransaction(cur, self._index)
            except psycopg2.Error as exc:
                raise StoreError(str(exc).strip()) from exc
            finally:
                self._pool.putconn(conn)

    def ensure_schema(self) -> None:
        with self.transaction() as tx:
            tx.cursor.execute(SCHEMA_SQL)
        log.debug("Schema ensured")

    # Writes

    def apply_page(self, records: Iterable[ProjectRecord]) -> int:
        """Apply one page of mapped records in ONE transaction."""
        with self.transaction() as tx:
            written = tx.apply_records(records)

        log.debug("Applied page | %d projects", written)
        return written

    def upsert_project(self, project: NewProject) -> Project:
        with self.transaction() as tx:
            return tx.upsert_project(project)

    def upsert_language(self, name: str) -> Language:
        with self.transaction() as tx:
            return tx.upsert_language(name)

    def upsert_project_language(self, project_id: int, language_id: int, percentage: float) -> None:
        with self.transaction() as tx:
            tx.upsert_project_language(project_id, language_id, percentage)

    def delete_project_language(self, project_id: int, language_id: int) -> bool:
        with self.transaction() as tx:
            return tx.delete_project_language(project_id, language_id)

    def rebuild_search_index(self) -> int:
        with self.transaction() as tx:
            return self._index.rebuild_all(tx.cursor)

    # Reads

    def search(self, query: str, include_archived: bool = False, limit: int = 10) -> list[Project]:
        if limit < 0:
            raise ValueError("limit must be >= 0")
        if limit == 0 or not query or not query.strip():
            return []

        with self.transaction() as tx:
            tx.cursor.execute(
                _SEARCH_SQL,
                {"query": query, "include_archived": include_archived, "limit": limit},
            )
            return [_to_project(row) for row in tx.cursor.fetchall()]

    def find_all(self) -> list[Project]:
        with self.transaction() as tx:
            tx.cursor.execute(f"SELECT {PROJECT_COLUMNS} FROM projects ORDER BY id")
            return [_to_project(row) for row in tx.cursor.fetchall()]

    def find_by_id(self, project_id: int) -> Project | None:
        with self.transaction() as tx:
            tx.cursor.execute(f"SELECT {PROJECT_COLUMNS} FROM projects WHERE id = %s", (project_id,))
            row = tx.cursor.fetchone()
        return _to_project(row) if row else None

    def find_by_external_id(self, external_id: int, source: str) -> Project | None:
        with self.transaction() as tx:
            tx.cursor.execute(
                f"SELECT {PROJECT_COLUMNS} FROM projects WHERE external_id = %s AND source = %s",
                (external_id, source),
            )
            row = tx.cursor.fetchone()
        return _to_project(row) if row else None

    def find_by_path(self, path: str) -> Project | None:
        """Exact lookup by full path, e.g. "acme/platform/api-gateway"."""
        with self.transaction() as tx:
            tx.cursor.execute(
                f"SELECT {PROJECT_COLUMNS} FROM projects WHERE {PROJECT_PATH_SQL} = %s ORDER BY id LIMIT 1",
                (path,),
            )
            row = tx.cursor.fetchone()
        return _to_project(row) if row else None

    def count(self) -> int:
        with self.transaction() as tx:
            tx.cursor.execute("SELECT COUNT(*) AS n FROM projects")
            return tx.cursor.fetchone()["n"]

    def languages_for(self, project_id: int) -> dict[str, float]:
        with self.transaction() as tx:
            tx.cursor.execute(
                """
                SELECT l.name, pl.percentage
                FROM project_languages pl
                JOIN languages l ON l.id = pl.language_id
                WHERE pl.project_id = %s
                ORDER BY l.name
                """,
                (project_id,),
            )
            return {row["name"]: row["percentage"] for row in tx.cursor.fetchall()}

    # Run audit

    def create_run(self, group_id: str) -> int:
        with self.transaction() as tx:
            tx.cursor.execute(
                """
                INSERT INTO sync_runs (group_id, started_at, status)
                VALUES (%s, NOW(), 'running')
                RETURNING id
                """,
                (group_id,),
            )
            run_id = tx.cursor.fetchone()["id"]
        log.debug("Created sync run #%d", run_id)
        return run_id

    def finish_run(
        self,
        run_id: int,
        pages: int,
        projects: int,
        status: str,
        error: str | None = None,
    ) -> None:
        with self.transaction() as tx:
            tx.cursor.execute(
                """
                UPDATE sync_runs
                SET finished_at       = NOW(),
                    pages_committed   = %s,
                    projects_upserted = %s,
                    status            = %s,
                    error_msg         = %s
                WHERE id = %s
                """,
                (pages, projects, status, error, run_id),
            )
        log.debug("Finished sync run #%d | status=%s | pages=%d", run_id, status, pages)
