"""
Project-root and `.env` helpers.

`OPENAI_API_KEY` and the `WHERELSE_*` variables usually live in a repo-local `.env`, and
the file cache directory (`.cache/wherelse`) is relative. Both must resolve the same way
whether the CLI runs from the repo, uvicorn runs from `src/`, or tests run from `tests/`.

- `get_project_root()`: `WHERELSE_PROJECT_ROOT`, else the nearest parent holding `.env`,
  `.git` or `pyproject.toml`, else the current directory.
- `load_dotenv_if_present()`: load `<root>/.env` once, never overriding the process env.
- `resolve_project_path()`: anchor relative paths at the project root.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

_ROOT_MARKERS = (".env", ".git", "pyproject.toml")


def _find_root_from(start: Path) -> Path | None:
    for candidate in (start, *start.parents):
        if any((candidate / marker).exists() for marker in _ROOT_MARKERS):
            return candidate
    return None


@lru_cache
def get_project_root() -> Path:
    """Return the project root directory (cached for the process)."""
    override = os.getenv("WHERELSE_PROJECT_ROOT")
    if override:
        return Path(override).expanduser().resolve()
    # From the working directory first, then from the installed package location.
    return (
        _find_root_from(Path.cwd().resolve())
        or _find_root_from(Path(__file__).resolve().parent)
        or Path.cwd().resolve()
    )


@lru_cache
def load_dotenv_if_present() -> Path | None:
    """Load `.env` (or `WHERELSE_ENV_FILE`) once; return the file loaded, if any."""
    from dotenv import load_dotenv

    explicit = os.getenv("WHERELSE_ENV_FILE")
    env_path = Path(explicit).expanduser().resolve() if explicit else get_project_root() / ".env"
    if not env_path.is_file():
        return None
    load_dotenv(dotenv_path=env_path, override=False)
    return env_path


def resolve_project_path(path: str | Path) -> Path:
    """Resolve a possibly-relative path against the project root."""
    p = Path(path).expanduser()
    return p if p.is_absolute() else (get_project_root() / p).resolve()
