"""Error taxonomy for flowshift runs."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from flowshift.model import Location


class FlowshiftError(RuntimeError):
    pass


class UnsupportedConstructError(FlowshiftError):
    """A syntactic construct the migration does not know how to rewrite.

    Raising this is fatal for the file being migrated and nothing else: the
    worker logs it, leaves the file untouched and moves on. New grammar shapes
    have to be triaged by a person rather than silently miscompiled.
    """

    def __init__(self, kind: str, location: Location | None = None, detail: str = ""):
        self.kind = kind
        self.location = location
        self.detail = detail
        message = f"Unsupported AST node: {kind!r}"
        if detail:
            message = f"{message} ({detail})"
        if location is not None:
            message = f"{message} at {location.path}:{location.start.line}:{location.start.column}"
        super().__init__(message)


class DiscoveryError(FlowshiftError):
    pass


class BridgeError(FlowshiftError):
    pass


class OracleError(FlowshiftError):
    pass


class WorkerProtocolError(FlowshiftError):
    pass


class WorkerCrashedError(FlowshiftError):
    pass


class NeverThrown(FlowshiftError):
    """Raised by ``never()`` when a path assumed unreachable is reached."""

    def __init__(self, message: str, *, env: dict[str, object] | None = None):
        super().__init__(message)
        self.env = dict(env or {})
