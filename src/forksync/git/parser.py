"""Parse git merge and status output into raw conflicts.

Git reports conflicts in two places. ``git status --porcelain -z``
is authoritative for *which* paths are unmerged; the human-readable
``git merge`` output is the only place that says *why* (content,
modify/delete, rename/rename, binary). We take the path set from
status and refine each path's kind from the merge output.
"""

from __future__ import annotations

import re

from forksync.core.models import ConflictKind, RawConflict

# Unmerged XY status codes (git-status(1), "Short Format")
_UNMERGED_CODES = {
    "UU": ConflictKind.CONTENT,
    "AA": ConflictKind.CONTENT,
    "DD": ConflictKind.RENAME,
    "AU": ConflictKind.RENAME,
    "UA": ConflictKind.RENAME,
    "UD": ConflictKind.DELETE,
    "DU": ConflictKind.DELETE,
}

# CONFLICT (<type>) labels printed by git merge
_CONFLICT_TYPES = {
    "content": ConflictKind.CONTENT,
    "add/add": ConflictKind.CONTENT,
    "modify/delete": ConflictKind.DELETE,
    "rename/delete": ConflictKind.DELETE,
    "rename/rename": ConflictKind.RENAME,
    "rename/add": ConflictKind.RENAME,
    "file location": ConflictKind.RENAME,
    "directory rename split": ConflictKind.RENAME,
    "distinct types": ConflictKind.CONTENT,
    "file/directory": ConflictKind.CONTENT,
    "directory/file": ConflictKind.CONTENT,
    "submodule": ConflictKind.BINARY,
}

# When several hints name one path, the most damaging kind wins
_KIND_PRIORITY = {
    ConflictKind.CONTENT: 0,
    ConflictKind.RENAME: 1,
    ConflictKind.DELETE: 2,
    ConflictKind.BINARY: 3,
}

_CONFLICT_LINE = re.compile(r"^CONFLICT \(([^)]+)\):\s*(.*)$")
_BINARY_LINE = re.compile(
    r"^warning: Cannot merge binary files: (.+?) \([^()]* vs\. [^()]*\)\s*$"
)
_FAILURE_LINE = re.compile(r"^(fatal|error): (.+)$")


def parse_status(output: str) -> dict[str, ConflictKind]:
    """Unmerged paths from ``git status --porcelain -z``.

    Args:
        output: NUL-separated porcelain v1 output

    Returns:
        Mapping of path to the kind implied by its XY code
    """
    unmerged: dict[str, ConflictKind] = {}
    fields = output.split("\0")
    i = 0
    while i < len(fields):
        entry = fields[i]
        i += 1
        if len(entry) < 4:
            continue
        code, path = entry[:2], entry[3:]
        if code in _UNMERGED_CODES:
            unmerged[path] = _UNMERGED_CODES[code]
        elif "R" in code or "C" in code:
            # Renames and copies carry the original path in the
            # next field
            i += 1
    return unmerged


def _mentions(line: str, path: str) -> bool:
    pattern = r"(?<![\w./-])" + re.escape(path) + r"(?![\w/-])"
    return re.search(pattern, line) is not None


def _stronger(current: ConflictKind | None, new: ConflictKind):
    if current is None or _KIND_PRIORITY[new] > _KIND_PRIORITY[current]:
        return new
    return current


def parse_merge_output(
    output: str, paths: list[str]
) -> dict[str, ConflictKind]:
    """Kinds that ``git merge`` output assigns to the given paths.

    Args:
        output: Combined stdout/stderr of ``git merge``
        paths: Unmerged paths to look for

    Returns:
        Mapping of path to kind for every path the output mentions
    """
    hints: dict[str, ConflictKind] = {}
    for line in output.splitlines():
        line = line.strip()

        binary = _BINARY_LINE.match(line)
        if binary:
            path = binary.group(1)
            hints[path] = _stronger(hints.get(path), ConflictKind.BINARY)
            continue

        match = _CONFLICT_LINE.match(line)
        if not match:
            continue
        label, detail = match.group(1).lower(), match.group(2)
        kind = _CONFLICT_TYPES.get(label)
        if kind is None:
            kind = (
                ConflictKind.RENAME if "rename" in label
                else ConflictKind.CONTENT
            )

        if detail.startswith("Merge conflict in "):
            path = detail[len("Merge conflict in "):].strip()
            hints[path] = _stronger(hints.get(path), kind)
            continue

        for path in paths:
            if _mentions(detail, path):
                hints[path] = _stronger(hints.get(path), kind)
    return hints


def parse_conflicts(status_output: str, merge_output: str) -> list[RawConflict]:
    """Combine status and merge output into one conflict per path.

    Returns:
        RawConflict list sorted by path
    """
    unmerged = parse_status(status_output)
    hints = parse_merge_output(merge_output, list(unmerged))
    conflicts = []
    for path in sorted(unmerged):
        kind = unmerged[path]
        if path in hints:
            kind = _stronger(kind, hints[path])
        conflicts.append(RawConflict(path=path, kind=kind))
    return conflicts


def parse_failure(output: str) -> str:
    """Best one-line explanation of a merge git refused to attempt."""
    reasons = [
        m.group(2).strip()
        for m in map(_FAILURE_LINE.match, output.splitlines())
        if m
    ]
    if reasons:
        return reasons[-1]
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    return lines[-1] if lines else "merge failed without output"


def parse_null_list(output: str) -> list[str]:
    """Split ``-z`` output into paths, dropping empty entries."""
    return [entry for entry in output.split("\0") if entry]


def parse_name_status(output: str) -> list[tuple[str, str]]:
    """Parse ``git diff --name-status -z`` into (status, path) pairs.

    Renames and copies yield a pair for both the old and new path
    so callers see every path the change touched.
    """
    fields = output.split("\0")
    changes: list[tuple[str, str]] = []
    i = 0
    while i < len(fields):
        status = fields[i]
        i += 1
        if not status:
            continue
        letter = status[0]
        if letter in ("R", "C"):
            for path in fields[i:i + 2]:
                if path:
                    changes.append((letter, path))
            i += 2
        else:
            if i >= len(fields):
                break
            changes.append((letter, fields[i]))
            i += 1
    return changes
