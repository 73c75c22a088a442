from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
for entry in (ROOT, ROOT / "src"):
    if str(entry) not in sys.path:
        sys.path.insert(0, str(entry))


import pytest

from flowshift.report import MigrationReporter
from flowshift.migrate.types import TypeMigrator


@pytest.fixture
def reporter() -> MigrationReporter:
    return MigrationReporter()


@pytest.fixture
def migrator(reporter: MigrationReporter) -> TypeMigrator:
    return TypeMigrator(reporter, "/repo/src/a.js")


@pytest.fixture
def fake_bridge_command() -> list[str]:
    return [sys.executable, str(Path(__file__).with_name("fake_bridge.py"))]
