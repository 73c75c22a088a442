from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import date, datetime, time
from pathlib import Path
from typing import TypeAlias
import tomllib

from flowshift.bridge import DEFAULT_BRIDGE_COMMAND, PrinterOptions
from flowshift.oracle import DEFAULT_MAX_TYPE_LENGTH
from flowshift.migrate.visitor import DEFAULT_UTILS_MODULE

DEFAULT_CONFIG_NAME = "flowshift.toml"

TomlScalar: TypeAlias = str | int | float | bool | None | date | datetime | time
TomlValue: TypeAlias = TomlScalar | list["TomlValue"] | dict[str, "TomlValue"]
TomlTable: TypeAlias = dict[str, TomlValue]


def _load_toml(path: Path) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def load_config(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    if config_path is None:
        base = root if root is not None else Path.cwd()
        config_path = base / DEFAULT_CONFIG_NAME
    return _load_toml(config_path)


def _section(data: TomlTable, name: str) -> TomlTable:
    section = data.get(name, {})
    return section if isinstance(section, dict) else {}


def _normalize_name_list(value: TomlValue) -> list[str]:
    items: list[str] = []
    if value is None:
        return items
    if isinstance(value, str):
        items = [part.strip() for part in value.split(",") if part.strip()]
    elif isinstance(value, (list, tuple, set)):
        for item in value:
            if isinstance(item, str):
                items.extend([part.strip() for part in item.split(",") if part.strip()])
    return [item for item in items if item]


def _command(value: TomlValue, default: tuple[str, ...]) -> tuple[str, ...]:
    # A command is argv: a string is split on whitespace, never on commas.
    if isinstance(value, str):
        parts = tuple(value.split())
    elif isinstance(value, list):
        parts = tuple(item for item in value if isinstance(item, str))
    else:
        parts = ()
    return parts or default


def _as_bool(value: TomlValue, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return default


def _as_positive_int(value: TomlValue, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float, str)):
        try:
            number = int(value)
        except ValueError:
            return default
        if number > 0:
            return number
    return default


def _as_positive_float(value: TomlValue, default: float) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float, str)):
        try:
            number = float(value)
        except ValueError:
            return default
        if number > 0:
            return number
    return default


def merge_payload(payload: TomlTable, defaults: TomlTable) -> TomlTable:
    merged = dict(defaults)
    for key, value in payload.items():
        if value is None:
            continue
        merged[key] = value
    return merged


def default_worker_count() -> int:
    return os.cpu_count() or 1


@dataclass(frozen=True)
class MigrateSettings:
    batch_size: int = 50
    workers: int = field(default_factory=default_worker_count)
    stall_seconds: float = 120.0
    max_file_bytes: int = 1_000_000
    extensions: tuple[str, ...] = (".js",)
    ignored_dirs: tuple[str, ...] = ()
    delete_originals: bool = True
    test_file_suffix: str = ".test.js"
    utils_module: str = DEFAULT_UTILS_MODULE
    utils_binding: str = "u"
    helpers_namespace: str = "h"


@dataclass(frozen=True)
class OracleSettings:
    enabled: bool = True
    command: tuple[str, ...] = ("flow",)
    max_type_length: int = DEFAULT_MAX_TYPE_LENGTH


@dataclass(frozen=True)
class FlowshiftConfig:
    root: Path
    migrate: MigrateSettings = field(default_factory=MigrateSettings)
    oracle: OracleSettings = field(default_factory=OracleSettings)
    bridge_command: tuple[str, ...] = DEFAULT_BRIDGE_COMMAND
    printer: PrinterOptions = field(default_factory=PrinterOptions)
    allowlists: TomlTable = field(default_factory=dict)
    config_path: Path | None = None


def migrate_settings(section: TomlTable) -> MigrateSettings:
    defaults = MigrateSettings()
    extensions = _normalize_name_list(section.get("extensions"))
    return MigrateSettings(
        batch_size=_as_positive_int(section.get("batch_size"), defaults.batch_size),
        workers=_as_positive_int(section.get("workers"), defaults.workers),
        stall_seconds=_as_positive_float(section.get("stall_seconds"), defaults.stall_seconds),
        max_file_bytes=_as_positive_int(section.get("max_file_bytes"), defaults.max_file_bytes),
        extensions=tuple(extensions) or defaults.extensions,
        ignored_dirs=tuple(_normalize_name_list(section.get("ignored_dirs"))),
        delete_originals=_as_bool(section.get("delete_originals"), defaults.delete_originals),
        test_file_suffix=str(section.get("test_file_suffix") or defaults.test_file_suffix),
        utils_module=str(section.get("utils_module") or defaults.utils_module),
        utils_binding=str(section.get("utils_binding") or defaults.utils_binding),
        helpers_namespace=str(section.get("helpers_namespace") or defaults.helpers_namespace),
    )


def oracle_settings(section: TomlTable) -> OracleSettings:
    defaults = OracleSettings()
    return OracleSettings(
        enabled=_as_bool(section.get("enabled"), defaults.enabled),
        command=_command(section.get("command"), defaults.command),
        max_type_length=_as_positive_int(section.get("max_type_length"), defaults.max_type_length),
    )


def printer_options(section: TomlTable) -> PrinterOptions:
    defaults = PrinterOptions()
    quote = section.get("quote")
    return PrinterOptions(
        quote=quote if quote in ("single", "double", "auto") else defaults.quote,
        trailing_comma=_as_bool(section.get("trailing_comma"), defaults.trailing_comma),
        object_curly_spacing=_as_bool(
            section.get("object_curly_spacing"), defaults.object_curly_spacing
        ),
    )


def resolve_config(
    root: Path,
    config_path: Path | None = None,
    *,
    migrate_overrides: TomlTable | None = None,
) -> FlowshiftConfig:
    """Typed settings for a run rooted at ``root``.

    ``migrate_overrides`` are command line values for the ``[migrate]`` section;
    ``None`` entries mean "not given" and leave the file value in place.
    """
    data = load_config(root=root, config_path=config_path)
    migrate_section = merge_payload(migrate_overrides or {}, _section(data, "migrate"))
    bridge_section = _section(data, "bridge")
    return FlowshiftConfig(
        root=root,
        migrate=migrate_settings(migrate_section),
        oracle=oracle_settings(_section(data, "oracle")),
        bridge_command=_command(bridge_section.get("command"), DEFAULT_BRIDGE_COMMAND),
        printer=printer_options(_section(data, "printer")),
        allowlists=_section(data, "allowlists"),
        config_path=config_path,
    )
