"""
Record mapper (anti-corruption layer).

Translates one raw GraphQL project node into our domain objects.

    Remote sends:                     We store as:
      "id" gid://gitlab/Project/42  ->  source="gitlab", external_id=42
      "lastActivityAt"              ->  pushed_at
      "sshUrlToRepo"                ->  ssh_url
      "visibility" public/private/internal -> private flag
      "statistics.repositorySize"   ->  size (truncated to int)

If the remote renames a field, fix it HERE only.
"""

from __future__ import annotations
import math
from datetime import datetime

from codebase_mirror.domain.entities import LanguageShare, NewProject, ProjectRecord
from codebase_mirror.domain.errors import MappingError
from codebase_mirror.domain.identity import parse_external_identity

PRIVATE_BY_VISIBILITY = {
    "public":   False,
    "private":  True,
    "internal": True,
}


def _parse_datetime(value: str | None, field_name: str, record_id: str | None) -> datetime:
    if not value:
        raise MappingError(f"missing timestamp {field_name}", record_id=record_id)
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError) as exc:
        raise MappingError(f"bad timestamp {field_name}={value!r}: {exc}", record_id=record_id) from exc
    if parsed.tzinfo is None:
        raise MappingError(f"timestamp {field_name}={value!r} has no timezone", record_id=record_id)
    return parsed


def _truncate(value, field_name: str, record_id: str | None) -> int:
    """Statistics may arrive as floats; always truncate toward zero."""
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MappingError(f"{field_name} is not numeric: {value!r}", record_id=record_id)
    # JSON decoding accepts NaN and Infinity
    if not math.isfinite(value):
        raise MappingError(f"{field_name} is not finite: {value!r}", record_id=record_id)
    truncated = int(value)
    if truncated < 0:
        raise MappingError(f"{field_name} is negative: {value!r}", record_id=record_id)
    return truncated


def _namespace(node: dict) -> str:
    namespace = node.get("namespace")
    if namespace and namespace.get("fullPath") is not None:
        return namespace["fullPath"]
    full_path = node["fullPath"]
    return full_path.rsplit("/", 1)[0] if "/" in full_path else ""


def to_project(node: dict) -> NewProject:
    if not isinstance(node, dict):
        raise MappingError(f"node is not an object: {node!r}")
    record_id = node.get("id")

    identity = parse_external_identity(node.get("id"))

    visibility = node.get("visibility")
    if visibility not in PRIVATE_BY_VISIBILITY:
        raise MappingError(f"unknown visibility {visibility!r}", record_id=record_id)

    statistics = node.get("statistics") or {}

    try:
        forks_count = node.get("forksCount") or 0
        if isinstance(forks_count, bool) or not isinstance(forks_count, int) or forks_count < 0:
            raise MappingError(f"bad forksCount {forks_count!r}", record_id=record_id)

        return NewProject(
            external_id  = identity.external_id,
            source       = identity.source,
            name         = node["name"],
            namespace    = _namespace(node),
            description  = node.get("description") or None,
            created_at   = _parse_datetime(node.get("createdAt"), "createdAt", record_id),
            updated_at   = _parse_datetime(node.get("updatedAt"), "updatedAt", record_id),
            pushed_at    = _parse_datetime(node.get("lastActivityAt"), "lastActivityAt", record_id),
            web_url      = node["webUrl"],
            ssh_url      = node["sshUrlToRepo"],
            private      = PRIVATE_BY_VISIBILITY[visibility],
            forks_count  = forks_count,
            archived     = bool(node.get("archived", False)),
            size         = _truncate(statistics.get("repositorySize"), "repositorySize", record_id),
            commit_count = _truncate(statistics.get("commitCount"), "commitCount", record_id),
        )
    except (KeyError, TypeError, AttributeError) as exc:
        raise MappingError(f"malformed node: {exc!r}", record_id=record_id) from exc


def to_language_shares(node: dict) -> tuple[LanguageShare, ...]:
    shares = []
    for entry in node.get("languages") or ():
        try:
            name = entry["name"]
            percentage = float(entry["share"])
        except (KeyError, TypeError, ValueError) as exc:
            raise MappingError(f"malformed language entry {entry!r}", record_id=node.get("id")) from exc
        if not name:
            raise MappingError("language entry without a name", record_id=node.get("id"))
        if not math.isfinite(percentage):
            raise MappingError(f"share of {name} is not finite", record_id=node.get("id"))
        shares.append(LanguageShare(name=name, percentage=percentage))
    return tuple(shares)


def to_record(node: dict) -> ProjectRecord:
    return ProjectRecord(project=to_project(node), languages=to_language_shares(node))
