"""Environment loading utilities (simple .env parser).

Usage:
    from utils.env import load_dotenv_safe
    load_dotenv_safe()

Won't overwrite existing environment variables. Unreadable files are skipped.
"""

from __future__ import annotations

import os
from collections.abc import Iterable, MutableMapping
from pathlib import Path

DEFAULT_ENV_FILENAMES: Iterable[str] = ('.env', '.env.local')


def parse_env_line(line: str) -> tuple[str, str] | None:
    line = line.strip()
    if not line or line.startswith('#') or '=' not in line:
        return None
    k, v = line.split('=', 1)
    k = k.strip()
    if k.startswith('export '):
        k = k[len('export '):].strip()
    raw = v.strip()
    if raw.startswith(('"', "'")) and len(raw) > 1:
        q = raw[0]
        closing = raw.find(q, 1)
        if closing != -1:
            raw = raw[1:closing]
    elif '#' in raw:
        raw = raw.split('#', 1)[0].rstrip()
    return (k, raw) if k else None


def load_dotenv_safe(
    filenames: Iterable[str] = DEFAULT_ENV_FILENAMES,
    base: Path | None = None,
    environ: MutableMapping[str, str] | None = None,
) -> list[Path]:
    """Load KEY=VALUE files from ``base`` into ``environ``; returns the files read."""
    base = base or Path.cwd()
    environ = os.environ if environ is None else environ
    loaded: list[Path] = []
    for name in filenames:
        path = base / name
        if not path.is_file():
            continue
        try:
            text = path.read_text(encoding='utf-8')
        except OSError:
            continue
        for line in text.splitlines():
            parsed = parse_env_line(line)
            if parsed is None:
                continue
            k, v = parsed
            if k not in environ:
                environ[k] = v
        loaded.append(path)
    return loaded
