"""Workspace root resolver.

All path derivation starts here, never from ``Path.cwd()`` alone, so that
``auditrack findings`` behaves the same from ``data/`` or ``seeds/``.

The root is the first directory, walking up from *start*, that holds either a
``.auditrack`` directory (a deployed workspace) or a ``pyproject.toml`` (a
source checkout).
"""

from __future__ import annotations

from pathlib import Path

from auditrack.core.errors import RepoRootNotFound

_MARKERS: tuple[str, ...] = (".auditrack", "pyproject.toml")


def find_repo_root(start: Path | None = None) -> Path:
    """Return the absolute, resolved workspace root.

    Raises
    ------
    RepoRootNotFound
        If no marker is found in *start* or any of its parents.
    """
    origin = (start or Path.cwd()).resolve()
    for candidate in [origin, *origin.parents]:
        if any((candidate / marker).exists() for marker in _MARKERS):
            return candidate
    raise RepoRootNotFound(start_path=str(origin))
