"""
Persistence of saved variables as a YAML mapping of name to definition text.

Definitions are stored as source text and re-parsed when loaded, so the file
stays readable and editable by hand.
"""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional

import yaml


def loads_vars(text: Optional[str]) -> dict[str, str]:
    if not text or not text.strip():
        return {}
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ValueError(f'saved variables are not valid YAML: {e}') from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError('saved variables must be a mapping of name to definition')
    out = {}
    for key, value in data.items():
        if not isinstance(key, str) or not isinstance(value, (str, int, bool)):
            raise ValueError(f'invalid saved variable entry: {key!r}')
        # YAML may type bare scalars ("5", "true"); keep the source text
        if isinstance(value, bool):
            value = 'true' if value else 'false'
        out[key] = str(value)
    return out


def dumps_vars(pairs: Iterable[tuple[str, str]]) -> str:
    built = {key: text for key, text in pairs}
    return yaml.safe_dump(built, sort_keys=True, allow_unicode=True)


def load_vars(path: str | Path) -> dict[str, str]:
    """Read saved variables from `path`; a missing file means none."""
    p = Path(path)
    try:
        text = p.read_text(encoding='utf-8')
    except FileNotFoundError:
        return {}
    return loads_vars(text)


def save_vars(path: str | Path, pairs: Iterable[tuple[str, str]]) -> None:
    Path(path).write_text(dumps_vars(pairs), encoding='utf-8')
