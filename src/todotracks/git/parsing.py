"""Parsers for the textual output of git commands.

Each parser accepts the raw (already decoded) output of one command and either
returns structured values or raises ``MalformedOutputError``. Parsers never
run commands themselves, so they work the same for every backend.
"""

import re
from dataclasses import dataclass

from todotracks.exceptions import MalformedOutputError
from todotracks.models import Alias, MarkerLine

HASH_PATTERN = re.compile(r"^[0-9a-fA-F]{40}$")


def is_revision_hash(value: str) -> bool:
    """Return True if ``value`` is a full 40 character hex object id."""
    return bool(HASH_PATTERN.match(value))


@dataclass(frozen=True)
class TreeEntry:
    """One ``git ls-tree -r`` entry."""

    mode: str
    object_type: str
    object_id: str
    path: str


_C_ESCAPES = {
    "a": 0x07,
    "b": 0x08,
    "t": 0x09,
    "n": 0x0A,
    "v": 0x0B,
    "f": 0x0C,
    "r": 0x0D,
    '"': 0x22,
    "\\": 0x5C,
}


def unquote_path(raw: str) -> str:
    """Undo git's C-style quoting of a path.

    Git quotes paths holding control characters, ``"``, ``\\`` or non-ASCII
    bytes, writing the bytes as octal escapes. Unquoted paths pass through.
    """
    if len(raw) < 2 or not (raw.startswith('"') and raw.endswith('"')):
        return raw
    body = raw[1:-1]
    out = bytearray()
    i = 0
    while i < len(body):
        char = body[i]
        if char != "\\":
            out += char.encode("utf-8")
            i += 1
            continue
        escape = body[i + 1 : i + 2]
        octal = body[i + 1 : i + 4]
        if escape in _C_ESCAPES:
            out.append(_C_ESCAPES[escape])
            i += 2
        elif len(octal) == 3 and all(c in "01234567" for c in octal):
            out.append(int(octal, 8))
            i += 4
        else:
            raise MalformedOutputError(f"Bad escape in quoted path: {raw!r}")
    return out.decode("utf-8", errors="replace")


def split_lines(raw: str) -> list[str]:
    """Split blob content into lines the way line numbers are counted."""
    return raw.split("\n")


def parse_branches(raw: str) -> list[Alias]:
    """Parse ``git branch -av --abbrev=40`` output into aliases.

    A line names a branch only if its second field is a full revision hash;
    symbolic refs such as ``remotes/origin/HEAD -> origin/main`` are skipped.
    """
    aliases: list[Alias] = []
    for line in raw.split("\n"):
        fields = line.strip("* ").split()
        if len(fields) >= 2 and is_revision_hash(fields[1]):
            aliases.append(Alias(branch=fields[0], revision=fields[1]))
    return aliases


def parse_tree(raw: str) -> list[TreeEntry]:
    """Parse ``git ls-tree -r -z`` output.

    Records are NUL terminated and paths are not quoted, so the path is
    everything after the first tab, byte for byte.
    """
    entries: list[TreeEntry] = []
    for line in raw.split("\0"):
        if not line:
            continue
        meta, sep, path = line.partition("\t")
        fields = meta.split()
        if not sep or len(fields) != 3:
            raise MalformedOutputError(f"Unexpected ls-tree line: {line!r}")
        mode, object_type, object_id = fields
        entries.append(
            TreeEntry(mode=mode, object_type=object_type, object_id=object_id, path=path)
        )
    return entries


def parse_blame(file_name: str, raw: str) -> list[MarkerLine]:
    """Parse ``git blame --line-porcelain`` output into attributed lines.

    Every section starts with ``<revision> <original line> ...``, carries
    metadata lines (a ``filename`` line overrides ``file_name``), and ends with
    the source line prefixed by a tab. All sections are returned in order.
    """
    result: list[MarkerLine] = []
    header: list[str] = []
    for line in raw.split("\n"):
        if line.startswith("\t"):
            result.append(_blame_section(file_name, header, line[1:]))
            header = []
        elif line or header:
            header.append(line)
    if any(header):
        raise MalformedOutputError(f"Blame output ended mid-section: {header!r}")
    return result


def _blame_section(file_name: str, header: list[str], contents: str) -> MarkerLine:
    if not header:
        raise MalformedOutputError("Blame section is missing its header line")
    first = header[0].split(" ")
    if len(first) < 2 or not is_revision_hash(first[0]):
        raise MalformedOutputError(f"Unexpected blame header: {header[0]!r}")
    try:
        line_number = int(first[1])
    except ValueError as e:
        raise MalformedOutputError(f"Unexpected blame header: {header[0]!r}") from e
    for meta in header[1:]:
        if meta.startswith("filename "):
            file_name = unquote_path(meta.split(" ", 1)[1])
    return MarkerLine(
        revision=first[0],
        file_name=file_name,
        line_number=line_number,
        contents=contents,
    )


def parse_commit_list(raw: str) -> list[str]:
    """Parse ``git log --pretty=oneline --no-abbrev-commit`` into revisions."""
    revisions: list[str] = []
    for line in raw.split("\n"):
        if len(line) > 40:
            revision = line.split(" ", 1)[0]
            if not is_revision_hash(revision):
                raise MalformedOutputError(f"Unexpected log line: {line!r}")
            revisions.append(revision)
    return revisions


def parse_patch_changes(raw: str) -> tuple[list[str], list[str]]:
    """Return the (removed, added) lines of a unified diff.

    Only lines inside ``@@`` hunks count, so ``---``/``+++`` file headers are
    never mistaken for changes.
    """
    removed: list[str] = []
    added: list[str] = []
    in_hunk = False
    for line in raw.split("\n"):
        if line.startswith("diff "):
            in_hunk = False
        elif line.startswith("@@"):
            in_hunk = True
        elif in_hunk and line.startswith("-"):
            removed.append(line[1:])
        elif in_hunk and line.startswith("+"):
            added.append(line[1:])
    return removed, added


def parse_timestamp(raw: str) -> int:
    """Parse a ``%ct`` commit timestamp."""
    try:
        return int(raw.strip())
    except ValueError as e:
        raise MalformedOutputError(f"Unexpected commit timestamp: {raw!r}") from e


def parse_remote_urls(raw: str) -> list[str]:
    """Parse ``git remote -v`` output into remote URLs, in listed order."""
    urls: list[str] = []
    for line in raw.split("\n"):
        _, sep, rest = line.partition("\t")
        if sep and rest:
            url = rest.split(" ", 1)[0]
            if url not in urls:
                urls.append(url)
    return urls
