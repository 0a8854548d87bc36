"""
Remote identity parsing.

The remote hands out composite global identifiers such as
``gid://gitlab/Project/278964``. Split on "/" that is exactly five
segments: ``["gid:", "", "gitlab", "Project", "278964"]``. Segment 2
names the remote instance (our ``source``) and segment 4 is the integer
id the remote assigned (our ``external_id``).

All knowledge of that layout lives here, so a format change fails in
one place with an IdentityFormatError instead of deep in mapping code.
"""

from __future__ import annotations
from dataclasses import dataclass

from .errors import IdentityFormatError

SEGMENT_COUNT  = 5
SOURCE_INDEX   = 2
EXTERNAL_INDEX = 4


@dataclass(frozen=True)
class ExternalIdentity:
    source:      str
    external_id: int


def parse_external_identity(gid: str) -> ExternalIdentity:
    if not isinstance(gid, str):
        raise IdentityFormatError(f"identifier must be a string, got {type(gid).__name__}", record_id=None)

    parts = gid.split("/")
    if len(parts) != SEGMENT_COUNT:
        raise IdentityFormatError(
            f"expected {SEGMENT_COUNT} segments in {gid!r}, got {len(parts)}",
            record_id=gid,
        )

    source = parts[SOURCE_INDEX]
    if not source:
        raise IdentityFormatError(f"empty source segment in {gid!r}", record_id=gid)

    # int() alone would also take "4_2", "+5" and " -7"
    segment = parts[EXTERNAL_INDEX]
    if not (segment.isascii() and segment.isdigit()):
        raise IdentityFormatError(
            f"non-integer id segment {segment!r} in {gid!r}",
            record_id=gid,
        )

    return ExternalIdentity(source=source, external_id=int(segment))
