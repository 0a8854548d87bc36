import pytest

from codebase_mirror.domain.errors import IdentityFormatError, MappingError
from codebase_mirror.domain.identity import ExternalIdentity, parse_external_identity


def test_parses_five_segment_global_id():
    assert parse_external_identity("gid://gitlab/Project/278964") == ExternalIdentity(
        source="gitlab", external_id=278964
    )


def test_source_comes_from_third_segment():
    identity = parse_external_identity("gid://gitlab.example.org/Project/7")
    assert identity.source == "gitlab.example.org"
    assert identity.external_id == 7


@pytest.mark.parametrize(
    "gid",
    [
        "gid://gitlab/278964",                # 4 segments
        "gid://gitlab/Project/278964/extra",  # 6 segments
        "278964",
        "",
    ],
)
def test_rejects_wrong_segment_count(gid):
    with pytest.raises(IdentityFormatError, match="segments"):
        parse_external_identity(gid)


def test_rejects_non_integer_id():
    with pytest.raises(IdentityFormatError, match="non-integer"):
        parse_external_identity("gid://gitlab/Project/abc")


def test_rejects_non_string():
    with pytest.raises(IdentityFormatError):
        parse_external_identity(None)


def test_identity_errors_are_mapping_errors():
    # The orchestrator recovers MappingError per record; bad ids must be covered
    with pytest.raises(MappingError) as info:
        parse_external_identity("gid://gitlab/278964")
    assert info.value.record_id == "gid://gitlab/278964"


@pytest.mark.parametrize(
    "segment",
    ["4_2", "+5", " -7", "-7", "7 ", "٣"],
)
def test_rejects_anything_but_plain_ascii_digits(segment):
    with pytest.raises(IdentityFormatError, match="non-integer"):
        parse_external_identity(f"gid://gitlab/Project/{segment}")
