from codebase_mirror.application.sync_orchestrator import SyncOrchestrator
from codebase_mirror.application.sync_service import SyncApplicationService
from codebase_mirror.domain.errors import StoreError
from conftest import FakeFetcher, InMemoryStorage, failing_remote, make_node, make_page


def build_service(pages, storage):
    orchestrator = SyncOrchestrator(FakeFetcher(pages), storage)
    return SyncApplicationService(orchestrator=orchestrator, storage=storage)


async def test_successful_run_is_recorded():
    storage = InMemoryStorage()
    pages = [make_page([make_node(1), make_node(2)], "c1", True, count=3), make_page([make_node(3)], None, False)]

    result = await build_service(pages, storage).execute("acme")

    assert result.status == "success"
    assert result.run_id == 1
    assert storage.runs[1] == {
        "group_id": "acme",
        "status":   "success",
        "pages":    2,
        "projects": 3,
        "error":    None,
    }


async def test_failed_run_is_recorded_with_progress():
    storage = InMemoryStorage()
    pages = [make_page([make_node(1)], "c1", True, count=300), failing_remote(503)]

    result = await build_service(pages, storage).execute("acme")

    assert result.status == "failed"
    assert result.summary() == "processed 1 of 3 pages"
    assert storage.runs[1]["status"] == "failed"
    assert storage.runs[1]["pages"] == 1
    assert "503" in storage.runs[1]["error"]


async def test_unavailable_store_returns_failed_result():
    class BrokenStorage(InMemoryStorage):
        def create_run(self, group_id):
            raise StoreError("could not connect")

    storage = BrokenStorage()
    result = await build_service([make_page([], None, False)], storage).execute("acme")

    assert result.status == "failed"
    assert result.error_message == "could not connect"
    assert result.run_id is None
