"""Reading and rewriting the image tags inside docker image archives.

Supports the v1, v1.1 and v1.2 docker image archive layouts, where the
``repositories`` entry maps repository -> tag -> reference and the optional
``manifest.json`` entry lists ``repository:tag`` strings per image.
"""

from __future__ import annotations

import io
import json
import tarfile
from collections.abc import Callable
from os import PathLike
from typing import IO, Any

_REPOSITORIES = "repositories"
_MANIFEST = "manifest.json"

ArchiveRepositories = dict[str, dict[str, str]]


def _encode(value: Any) -> bytes:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def _parse_repositories(data: bytes) -> ArchiveRepositories:
    """Parse a ``repositories`` file into repository -> tag -> reference."""
    parsed = json.loads(data)
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ValueError("repositories must be a JSON object")
    result: ArchiveRepositories = {}
    for repository, tags in parsed.items():
        if tags is None:
            result[repository] = {}
            continue
        if not isinstance(tags, dict) or not all(
            isinstance(ref, str) for ref in tags.values()
        ):
            raise ValueError(f"invalid tags for repository {repository!r}")
        result[repository] = dict(tags)
    return result


def get_archive_tags(path: str | PathLike[str]) -> list[str]:
    """Return the ``repository:tag`` image tags recorded in the archive at path."""
    with tarfile.open(path, mode="r|") as archive:
        for member in archive:
            if member.name == _REPOSITORIES:
                extracted = archive.extractfile(member)
                data = extracted.read() if extracted is not None else b""
                break
        else:
            raise ValueError("could not find image metadata")
    repo_tags = _parse_repositories(data)
    return [f"{repo}:{tag}" for repo, tags in repo_tags.items() for tag in tags]


def _edit_repositories_file(raw: bytes, edit: Callable[[str], str]) -> bytes:
    tags = _parse_repositories(raw)
    fixed = {edit(repository): refs for repository, refs in tags.items()}
    return json.dumps(
        fixed, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def _edit_manifest_repositories(raw: bytes, edit: Callable[[str], str]) -> bytes:
    entries = json.loads(raw)
    if entries is None:
        return _encode(None)
    if not isinstance(entries, list):
        raise ValueError("manifest must be a JSON array")
    result = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise ValueError(f"invalid manifest entry: {entry!r}")
        fixed = []
        for tag in entry.get("RepoTags") or []:
            parts = tag.split(":")
            if len(parts) > 2:
                raise ValueError(f"invalid repotag: {entry!r}")
            parts[0] = edit(parts[0])
            fixed.append(":".join(parts))
        result.append(
            {
                "Config": entry.get("Config") or "",
                "RepoTags": fixed,
                "Layers": entry.get("Layers"),
            }
        )
    return _encode(result)


def edit_archive_repositories(
    reader: IO[bytes], writer: IO[bytes], edit_repositories: Callable[[str], str]
) -> None:
    """Copy an image archive from reader to writer, renaming its repositories.

    edit_repositories receives each image repository (the part before the
    ``:tag``) and returns it unchanged or edited.
    """
    source = tarfile.open(fileobj=reader, mode="r|")
    target = tarfile.open(fileobj=writer, mode="w|")
    for member in source:
        extracted = source.extractfile(member) if member.isfile() else None
        data = extracted.read() if extracted is not None else b""

        if member.name == _REPOSITORIES:
            data = _edit_repositories_file(data, edit_repositories)
            member.size = len(data)
        elif member.name == _MANIFEST:
            data = _edit_manifest_repositories(data, edit_repositories)
            member.size = len(data)

        target.addfile(member, io.BytesIO(data) if data else None)
    target.close()
    source.close()