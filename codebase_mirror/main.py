"""
main.py - Dependency Wiring (Composition Root)
------------------------------------------------
The one place that knows which concrete class implements each interface.
It reads configuration, builds the objects, injects them, runs the
requested command and reports the result. No business logic lives here.

Dependency graph:
                         main.py  (wires everything)
                            |
              +-------------+--------------+
              v                            v
    SyncApplicationService       PostgresProjectStorage <- PostgresStatisticsReader
              |                            ^
              v                            |
       SyncOrchestrator -------------------+
              |
              v
        GitLabClient --> TokenBucketRateLimiter
              |
              v
      httpx.AsyncClient

Rendering is deliberately minimal: results are printed as JSON so other
tools can consume them.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

import httpx

from codebase_mirror.application.rate_limiter import TokenBucketRateLimiter
from codebase_mirror.application.sync_orchestrator import SyncOrchestrator
from codebase_mirror.application.sync_service import SyncApplicationService
from codebase_mirror.config import MirrorConfig
from codebase_mirror.domain.entities import SyncResult
from codebase_mirror.domain.errors import ConfigurationError, StoreError
from codebase_mirror.infrastructure.gitlab_client import GitLabClient
from codebase_mirror.infrastructure.postgres_statistics import PostgresStatisticsReader
from codebase_mirror.infrastructure.postgres_storage import PostgresProjectStorage

log = logging.getLogger("codebase_mirror")

DEFAULT_SEARCH_LIMIT = 10


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        datefmt="%H:%M:%S",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def run_gitlab_update(
    config: MirrorConfig,
    storage: PostgresProjectStorage,
    token: str,
    group_id: str,
    workers: int,
) -> SyncResult:
    rate_limiter = TokenBucketRateLimiter(rate_per_minute=config.requests_per_minute)

    async with httpx.AsyncClient() as client:
        gitlab_client = GitLabClient(
            token        = token,
            client       = client,        # injected, closed by this function
            rate_limiter = rate_limiter,  # shared by every fetch
            graphql_url  = config.graphql_url,
        )
        orchestrator = SyncOrchestrator(
            fetcher     = gitlab_client,
            storage     = storage,
            max_workers = workers,
            page_size   = gitlab_client.page_size,
        )
        service = SyncApplicationService(orchestrator=orchestrator, storage=storage)
        return await service.execute(group_id)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="codebase-mirror",
        description="Mirror remote project metadata into PostgreSQL and query it",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    update = commands.add_parser("update", help="Synchronise projects from a remote service")
    services = update.add_subparsers(dest="service", required=True)
    gitlab = services.add_parser("gitlab", help="Synchronise a GitLab group")
    gitlab.add_argument("-g", "--group-id", required=True, help="GitLab group full path")
    gitlab.add_argument("--auth", default=None, help="GitLab token (default: $GITLAB_TOKEN)")
    gitlab.add_argument("--workers", type=int, default=None, help="Concurrent page applications")

    search = commands.add_parser("search", help="Full-text search over mirrored projects")
    search.add_argument("-q", "--query", required=True, help="Search query")
    search.add_argument("--include-archived", action="store_true", help="Include archived projects")
    search.add_argument(
        "-n", "--limit",
        type    = int,
        default = DEFAULT_SEARCH_LIMIT,
        help    = f"Maximum number of results (default: {DEFAULT_SEARCH_LIMIT})",
    )

    commands.add_parser("stats", help="Summary statistics over mirrored projects")
    commands.add_parser("list", help="List every mirrored project")
    commands.add_parser("languages", help="Share of each language across active projects")

    show = commands.add_parser("show", help="Show one project by full path")
    show.add_argument("-p", "--path", required=True, help="Full path, e.g. acme/platform/api")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = MirrorConfig.from_env()
    except ConfigurationError as exc:
        configure_logging("INFO")
        log.error("%s", exc)
        return 1
    configure_logging(config.log_level)

    try:
        storage = PostgresProjectStorage.connect(config.database_url, pool_size=config.pool_size)
    except StoreError as exc:
        log.error("%s", exc)
        return 1

    try:
        storage.ensure_schema()

        if args.command == "update":
            token   = config.require_token(args.auth)
            workers = args.workers if args.workers is not None else config.max_workers
            if workers < 1:
                raise ConfigurationError("--workers must be >= 1")
            result = asyncio.run(run_gitlab_update(config, storage, token, args.group_id, workers))
            print(json.dumps({
                "status":            result.status,
                "summary":           result.summary(),
                "projects_upserted": result.projects_upserted,
                "records_skipped":   result.records_skipped,
                "error":             result.error_message,
            }))
            return 0 if result.status == "success" else 1

        if args.command == "search":
            if args.limit < 0:
                raise ConfigurationError("--limit must be >= 0")
            for project in storage.search(args.query, args.include_archived, args.limit):
                print(json.dumps(project.as_dict()))
            return 0

        if args.command == "stats":
            print(json.dumps(PostgresStatisticsReader(storage).collect().as_dict()))
            return 0

        if args.command == "list":
            for project in storage.find_all():
                print(json.dumps(project.as_dict()))
            return 0

        if args.command == "languages":
            for name, usage in PostgresStatisticsReader(storage).language_usage():
                print(json.dumps({"language": name, "usage": round(usage, 2)}))
            return 0

        if args.command == "show":
            project = storage.find_by_path(args.path)
            if project is None:
                log.error("No project at path %s", args.path)
                return 1
            print(json.dumps(project.as_dict()))
            return 0

    except (ConfigurationError, StoreError) as exc:
        log.error("%s", exc)
        return 1
    finally:
        storage.close()

    return 1


if __name__ == "__main__":
    sys.exit(main())
