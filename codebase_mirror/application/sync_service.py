from __future__ import annotations
import asyncio
import logging

from codebase_mirror.domain.entities import SyncResult
from codebase_mirror.domain.errors import StoreError
from codebase_mirror.domain.interfaces import IProjectStorage
from .sync_orchestrator import SyncOrchestrator

log = logging.getLogger(__name__)


class SyncApplicationService:
    """
    The top-level use case: mirror one remote group into the store.

    Knows the sequence (open an audit row, run the orchestrator, close the
    audit row) but none of the details. Never raises for remote or store
    failures; the returned SyncResult carries status and error instead.
    Re-running after a failure is safe because every page upsert is
    idempotent.
    """

    def __init__(self, orchestrator: SyncOrchestrator, storage: IProjectStorage) -> None:
        self._orchestrator = orchestrator
        self._storage      = storage

    async def execute(self, group_id: str) -> SyncResult:
        try:
            run_id = await asyncio.to_thread(self._storage.create_run, group_id)
        except StoreError as exc:
            log.error("Could not record sync run for %s: %s", group_id, exc)
            return SyncResult(group_id=group_id, status="failed", error_message=str(exc))

        log.info("SyncApplicationService | run #%d | group: %s", run_id, group_id)

        result = await self._orchestrator.run(group_id)
        result.run_id = run_id

        try:
            await asyncio.to_thread(
                self._storage.finish_run,
                run_id,
                result.pages_committed,
                result.projects_upserted,
                result.status,
                result.error_message,
            )
        except StoreError as exc:
            log.error("Could not close sync run #%d: %s", run_id, exc)

        if result.status == "success":
            log.info("Run #%d succeeded | %s", run_id, result.summary())
        else:
            log.error(
                "Run #%d failed | %s | re-running is safe | error: %s",
                run_id, result.summary(), result.error_message,
            )
        return result
