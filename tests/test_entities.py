from codebase_mirror.application.record_mapper import to_project
from codebase_mirror.domain.entities import Project, SyncResult
from conftest import make_node


def stored(node) -> Project:
    return Project(id=1, **to_project(node).__dict__)


def test_path_joins_namespace_and_name():
    project = stored(make_node(1, name="api"))

    assert project.path == "acme/platform/api"
    assert project.as_dict()["path"] == "acme/platform/api"


def test_path_without_namespace_is_the_name():
    assert stored(make_node(1, name="solo", namespace={"fullPath": ""}, fullPath="solo")).path == "solo"


def test_page_estimate_rounds_up():
    assert SyncResult.estimate_total_pages(237, 100) == 3
    assert SyncResult.estimate_total_pages(0, 100) == 1
    assert SyncResult.estimate_total_pages(None, 100) is None
