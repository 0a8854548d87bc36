from __future__ import annotations
import logging

from codebase_mirror.domain.entities import RepositoryStatistics
from codebase_mirror.domain.interfaces import IStatisticsReader
from .postgres_storage import PROJECT_PATH_SQL, PostgresProjectStorage

log = logging.getLogger(__name__)

# One round trip. Everything except the visibility counts ignores
# archived projects. Projects are reported by full path because names
# repeat across namespaces.
STATISTICS_SQL = f"""
SELECT
    (SELECT COUNT(*) FROM projects WHERE NOT archived) AS total_projects,
    (SELECT {PROJECT_PATH_SQL} FROM projects WHERE NOT archived
        ORDER BY size DESC, id ASC LIMIT 1) AS largest_project,
    (SELECT {PROJECT_PATH_SQL} FROM projects WHERE NOT archived
        ORDER BY commit_count DESC, id ASC LIMIT 1) AS most_active_project,
    (SELECT {PROJECT_PATH_SQL} FROM projects WHERE NOT archived
        ORDER BY created_at DESC, id ASC LIMIT 1) AS newest_project,
    (SELECT l.name
        FROM project_languages pl
        JOIN languages l ON l.id = pl.language_id
        JOIN projects p ON p.id = pl.project_id
        WHERE NOT p.archived
        GROUP BY l.id, l.name
        ORDER BY SUM(pl.percentage) DESC, l.name ASC
        LIMIT 1) AS most_used_language,
    (SELECT COUNT(*) FROM projects WHERE private) AS private_project_count,
    (SELECT COUNT(*) FROM projects WHERE NOT private) AS public_project_count
"""

# Each language's slice of the summed shares, as a percentage of the whole
LANGUAGE_USAGE_SQL = """
SELECT
    l.name,
    COALESCE(SUM(pl.percentage) * 100.0 / NULLIF(SUM(SUM(pl.percentage)) OVER (), 0), 0) AS usage
FROM project_languages pl
JOIN languages l ON l.id = pl.language_id
JOIN projects p ON p.id = pl.project_id
WHERE NOT p.archived
GROUP BY l.id, l.name
ORDER BY usage DESC, l.name ASC
"""


class PostgresStatisticsReader(IStatisticsReader):
    """Summary metrics, recomputed from the store on every call. No caching."""

    def __init__(self, storage: PostgresProjectStorage) -> None:
        self._storage = storage

    def collect(self) -> RepositoryStatistics:
        with self._storage.transaction() as tx:
            tx.cursor.execute(STATISTICS_SQL)
            row = tx.cursor.fetchone()

        return RepositoryStatistics(
            total_projects        = row["total_projects"],
            largest_project       = row["largest_project"],
            most_active_project   = row["most_active_project"],
            newest_project        = row["newest_project"],
            most_used_language    = row["most_used_language"],
            private_project_count = row["private_project_count"],
            public_project_count  = row["public_project_count"],
        )

    def language_usage(self) -> list[tuple[str, float]]:
        with self._storage.transaction() as tx:
            tx.cursor.execute(LANGUAGE_USAGE_SQL)
            rows = tx.cursor.fetchall()
        log.debug("Language usage over %d languages", len(rows))
        return [(row["name"], float(row["usage"])) for row in rows]
