import pytest

from codebase_mirror.main import DEFAULT_SEARCH_LIMIT, build_parser, main


def test_update_gitlab_arguments():
    args = build_parser().parse_args(["update", "gitlab", "-g", "acme/platform", "--workers", "3"])

    assert args.command == "update"
    assert args.service == "gitlab"
    assert args.group_id == "acme/platform"
    assert args.workers == 3
    assert args.auth is None


def test_search_arguments_default_limit():
    args = build_parser().parse_args(["search", "-q", "payment gateway"])

    assert args.query == "payment gateway"
    assert args.limit == DEFAULT_SEARCH_LIMIT
    assert args.include_archived is False


def test_update_requires_group_id():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["update", "gitlab"])


def test_missing_configuration_exits_with_error(monkeypatch, caplog):
    monkeypatch.delenv("DATABASE_URL", raising=False)

    assert main(["stats"]) == 1
    assert "DATABASE_URL" in caplog.text


def test_show_and_languages_commands():
    parser = build_parser()

    assert parser.parse_args(["show", "-p", "acme/platform/api"]).path == "acme/platform/api"
    assert parser.parse_args(["languages"]).command == "languages"
