"""
Idempotent schema bootstrap. Every statement is IF NOT EXISTS, so running
it against an initialised database is a no-op.
"""

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS projects (
    id            BIGSERIAL PRIMARY KEY,
    external_id   BIGINT      NOT NULL,
    source        TEXT        NOT NULL,
    name          TEXT        NOT NULL,
    namespace     TEXT        NOT NULL,
    description   TEXT,
    created_at    TIMESTAMPTZ NOT NULL,
    updated_at    TIMESTAMPTZ NOT NULL,
    pushed_at     TIMESTAMPTZ NOT NULL,
    ssh_url       TEXT        NOT NULL,
    web_url       TEXT        NOT NULL,
    private       BOOLEAN     NOT NULL DEFAULT FALSE,
    forks_count   INTEGER     NOT NULL CHECK (forks_count >= 0),
    archived      BOOLEAN     NOT NULL DEFAULT FALSE,
    size          BIGINT      NOT NULL,
    commit_count  BIGINT      NOT NULL CHECK (commit_count >= 0),
    CONSTRAINT uq_projects_external_source UNIQUE (external_id, source)
);

CREATE INDEX IF NOT EXISTS idx_projects_path
    ON projects ((CASE WHEN namespace = '' THEN name ELSE namespace || '/' || name END));

CREATE TABLE IF NOT EXISTS languages (
    id    BIGSERIAL PRIMARY KEY,
    name  TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS project_languages (
    project_id   BIGINT           NOT NULL REFERENCES projects (id) ON DELETE CASCADE,
    language_id  BIGINT           NOT NULL REFERENCES languages (id) ON DELETE CASCADE,
    percentage   DOUBLE PRECISION NOT NULL,
    PRIMARY KEY (project_id, language_id)
);

CREATE INDEX IF NOT EXISTS idx_project_languages_language
    ON project_languages (language_id);

CREATE TABLE IF NOT EXISTS project_search_index (
    project_id  BIGINT   PRIMARY KEY REFERENCES projects (id) ON DELETE CASCADE,
    content     TEXT     NOT NULL,
    document    TSVECTOR NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_project_search_index_document
    ON project_search_index USING GIN (document);

CREATE TABLE IF NOT EXISTS sync_runs (
    id                 BIGSERIAL PRIMARY KEY,
    group_id           TEXT        NOT NULL,
    started_at         TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    finished_at        TIMESTAMPTZ,
    status             TEXT        NOT NULL DEFAULT 'running',
    pages_committed    INTEGER     NOT NULL DEFAULT 0,
    projects_upserted  INTEGER     NOT NULL DEFAULT 0,
    error_msg          TEXT
);
"""
