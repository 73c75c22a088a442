"""Invariant markers."""

from __future__ import annotations

from typing import NoReturn

from flowshift.exceptions import NeverThrown


def never(reason: str = "", **env: object) -> NoReturn:
    """Mark a code path as intentionally unreachable.

    The env payload is diagnostic metadata carried on the raised exception.
    """
    detail = ", ".join(f"{key}={value!r}" for key, value in env.items())
    message = reason or "never() marker reached"
    if detail:
        message = f"{message} [{detail}]"
    raise NeverThrown(message, env=env)
