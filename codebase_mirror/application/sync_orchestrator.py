from __future__ import annotations
import asyncio
import enum
import logging
import time
from typing import Callable

from codebase_mirror.domain.entities import ProjectPage, ProjectRecord, SyncResult
from codebase_mirror.domain.errors import MappingError, RemoteError, StoreError
from codebase_mirror.domain.interfaces import IProjectFetcher, IProjectStorage
from .record_mapper import to_record

log = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE   = 100
DEFAULT_MAX_WORKERS = 1


class SyncState(enum.Enum):
    START         = "start"
    FETCHING_PAGE = "fetching_page"
    APPLYING_PAGE = "applying_page"
    DONE          = "done"
    FAILED        = "failed"


class SyncOrchestrator:
    """
    Walks the remote cursor-paginated listing and applies every page to
    the store.

    All dependencies are injected:
      - IProjectFetcher  -> how to talk to the remote (injected)
      - IProjectStorage  -> where pages are applied (injected)
      - mapper           -> raw node -> ProjectRecord (defaults to to_record)

    Pages are chained by cursor, so fetching is inherently sequential.
    With max_workers > 1 the next fetch overlaps with the application of
    earlier pages, up to max_workers page transactions in flight. Pages
    may commit in any order: every upsert is idempotent and keyed, so the
    end state is the same.

    A malformed record is logged and skipped. A RemoteError or StoreError
    ends the run; pages already committed stay committed and the result
    says how many there were. Nothing is retried here.
    """

    def __init__(
        self,
        fetcher: IProjectFetcher,
        storage: IProjectStorage,
        mapper: Callable[[dict], ProjectRecord] = to_record,
        max_workers: int = DEFAULT_MAX_WORKERS,
        page_size: int = DEFAULT_PAGE_SIZE,
        on_page: Callable[[SyncResult], None] | None = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._fetcher     = fetcher
        self._storage     = storage
        self._mapper      = mapper
        self._max_workers = max_workers
        self._page_size   = page_size
        self._on_page     = on_page
        self._state       = SyncState.START

    @property
    def state(self) -> SyncState:
        return self._state

    def _map_page(self, page: ProjectPage, page_number: int, result: SyncResult) -> list[ProjectRecord]:
        records: list[ProjectRecord] = []
        for node in page.nodes:
            try:
                records.append(self._mapper(node))
            except MappingError as exc:
                result.records_skipped += 1
                result.skipped_ids.append(exc.record_id or "<unknown>")
                log.warning("Page %d | skipping malformed project %s: %s", page_number, exc.record_id, exc)
        return records

    async def _apply(
        self,
        page_number: int,
        records: list[ProjectRecord],
        result: SyncResult,
        slots: asyncio.Semaphore,
        failures: list[StoreError],
    ) -> None:
        try:
            written = await asyncio.to_thread(self._storage.apply_page, records)
        except StoreError as exc:
            failures.append(exc)
            log.error("Page %d failed to commit: %s", page_number, exc)
            return
        finally:
            slots.release()

        result.pages_committed   += 1
        result.projects_upserted += written
        log.info(
            "Page %d/%s committed | +%d projects | total %d",
            page_number,
            result.total_pages if result.total_pages is not None else "?",
            written,
            result.projects_upserted,
        )
        if self._on_page is not None:
            self._on_page(result)

    async def run(self, group_id: str) -> SyncResult:
        result   = SyncResult(group_id=group_id)
        started  = time.monotonic()
        slots    = asyncio.Semaphore(self._max_workers)
        failures: list[StoreError] = []
        pending: set[asyncio.Task] = set()
        cursor: str | None = None
        page_number = 0

        self._state = SyncState.START
        log.info("Starting sync | group=%s | workers=%d", group_id, self._max_workers)

        try:
            while True:
                if failures:
                    raise failures[0]

                self._state = SyncState.FETCHING_PAGE
                page = await self._fetcher.fetch_page(group_id, cursor)
                page_number += 1
                if page_number == 1:
                    result.total_pages = SyncResult.estimate_total_pages(page.count, self._page_size)

                records = self._map_page(page, page_number, result)

                await slots.acquire()
                task = asyncio.create_task(self._apply(page_number, records, result, slots, failures))
                pending.add(task)
                task.add_done_callback(pending.discard)

                if self._max_workers == 1:
                    self._state = SyncState.APPLYING_PAGE
                    await task

                if not page.page_info.has_next_page:
                    break
                if not page.page_info.end_cursor:
                    raise RemoteError(f"page {page_number} reports more pages but no end cursor")
                cursor = page.page_info.end_cursor

            if pending:
                self._state = SyncState.APPLYING_PAGE
                await asyncio.gather(*list(pending))
            if failures:
                raise failures[0]

            self._state   = SyncState.DONE
            result.status = "success"

        except (RemoteError, StoreError) as exc:
            self._state = SyncState.FAILED
            if pending:
                await asyncio.gather(*list(pending), return_exceptions=True)
            result.status        = "failed"
            result.error_message = str(exc)
            log.error("Sync failed | %s | %s", result.summary(), exc, exc_info=True)

        except asyncio.CancelledError:
            self._state = SyncState.FAILED
            for task in list(pending):
                task.cancel()
            log.warning("Sync cancelled | %s", result.summary())
            raise

        finally:
            result.elapsed_secs = time.monotonic() - started

        if result.status == "success":
            log.info(
                "Sync complete | %s | %d projects | %d skipped | %.1fs",
                result.summary(), result.projects_upserted, result.records_skipped, result.elapsed_secs,
            )
        return result
