"""Hand-curated allowlists of already reviewed findings.

The ``[allowlists]`` table maps a finding category to either a list of
`relative/path:line:column` entries or the path of a text file holding one entry
per line (blank lines and `#` comments ignored).
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Mapping

import typer

from flowshift.report import Allowlists, FindingCategory


def _read_entries(path: Path) -> list[str]:
    entries = []
    for line in path.read_text(encoding="utf-8").splitlines():
        entry = line.split("#", 1)[0].strip()
        if entry:
            entries.append(entry)
    return entries


def load_allowlists(
    section: Mapping[str, object],
    *,
    root: Path,
    print_fn: Callable[[str], None] | None = None,
) -> Allowlists:
    warn = print_fn or (lambda message: typer.echo(message, err=True))
    allowlists: dict[FindingCategory, frozenset[str]] = {}
    for key, value in section.items():
        try:
            category = FindingCategory(key)
        except ValueError:
            warn(f"Ignoring allowlist for unknown finding category {key!r}")
            continue
        if isinstance(value, str):
            entries = _read_entries(root / value)
        elif isinstance(value, list):
            entries = [str(item).strip() for item in value if str(item).strip()]
        else:
            warn(f"Ignoring malformed allowlist for {key!r}")
            continue
        allowlists[category] = allowlists.get(category, frozenset()) | frozenset(entries)
    return allowlists
