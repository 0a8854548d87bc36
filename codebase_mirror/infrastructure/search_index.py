"""
Search index maintenance.

project_search_index holds one row per project: the concatenated text of
name, namespace, description and the project's language names, plus a
weighted tsvector built from it. It is derived data and can always be
rebuilt from projects + languages + project_languages.

The storage write path calls reindex_project() inside the same
transaction as the triggering write, so a committed page is always
searchable and a rolled back page leaves no index rows behind.
"""

from __future__ import annotations
import logging
from typing import Iterable

log = logging.getLogger(__name__)

TEXT_SEARCH_CONFIG = "simple"

# name A, languages B, namespace C, description D
_UPSERT_INDEX_SQL = f"""
INSERT INTO project_search_index (project_id, content, document)
VALUES (
    %(project_id)s,
    %(content)s,
    setweight(to_tsvector('{TEXT_SEARCH_CONFIG}', %(name)s), 'A') ||
    setweight(to_tsvector('{TEXT_SEARCH_CONFIG}', %(languages)s), 'B') ||
    setweight(to_tsvector('{TEXT_SEARCH_CONFIG}', %(namespace)s), 'C') ||
    setweight(to_tsvector('{TEXT_SEARCH_CONFIG}', %(description)s), 'D')
)
ON CONFLICT (project_id) DO UPDATE SET
    content  = EXCLUDED.content,
    document = EXCLUDED.document
"""

_LANGUAGE_NAMES_SQL = """
SELECT l.name
FROM project_languages pl
JOIN languages l ON l.id = pl.language_id
WHERE pl.project_id = %s
ORDER BY l.name
"""


def compose_document(
    name: str,
    namespace: str | None,
    description: str | None,
    languages: Iterable[str] = (),
) -> str:
    """Plain-text index content: the text fields, then the space-joined language names."""
    parts = [name, namespace, description, " ".join(languages)]
    return " ".join(part.strip() for part in parts if part and part.strip())


def _tokenizable(text: str | None) -> str:
    # The default parser reads "group/sub/project" as one file-path token
    return (text or "").replace("/", " ")


class SearchIndexMaintainer:
    """Keeps project_search_index consistent with the base tables, one project at a time."""

    def reindex_project(self, cur, project_id: int) -> None:
        cur.execute(
            "SELECT name, namespace, description FROM projects WHERE id = %s",
            (project_id,),
        )
        row = cur.fetchone()
        if row is None:
            cur.execute("DELETE FROM project_search_index WHERE project_id = %s", (project_id,))
            return

        name, namespace, description = row["name"], row["namespace"], row["description"]

        cur.execute(_LANGUAGE_NAMES_SQL, (project_id,))
        languages = [r["name"] for r in cur.fetchall()]

        cur.execute(
            _UPSERT_INDEX_SQL,
            {
                "project_id":  project_id,
                "content":     compose_document(name, namespace, description, languages),
                "name":        _tokenizable(name),
                "languages":   " ".join(languages),
                "namespace":   _tokenizable(namespace),
                "description": description or "",
            },
        )

    def rebuild_all(self, cur) -> int:
        """Reconstruct every index row from the base tables. Returns rows written."""
        cur.execute("DELETE FROM project_search_index")
        cur.execute("SELECT id FROM projects ORDER BY id")
        project_ids = [r["id"] for r in cur.fetchall()]
        for project_id in project_ids:
            self.reindex_project(cur, project_id)
        log.info("Rebuilt search index for %d projects", len(project_ids))
        return len(project_ids)
