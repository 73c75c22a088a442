"""Parser and printer collaborators backed by a Node.js Babel/recast process.

One bridge process serves one worker for its whole lifetime. Requests are
Content-Length framed JSON, the same framing the worker protocol uses.
"""

from __future__ import annotations

import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol, Sequence

from flowshift.exceptions import BridgeError, WorkerProtocolError
from flowshift.json_types import BabelNode, JSONObject
from flowshift.protocol import read_frame, write_frame

BRIDGE_SCRIPT = Path(__file__).with_name("babel_bridge.js")
DEFAULT_BRIDGE_COMMAND: tuple[str, ...] = ("node", str(BRIDGE_SCRIPT))


@dataclass(frozen=True)
class PrinterOptions:
    quote: str = "single"
    trailing_comma: bool = True
    object_curly_spacing: bool = False

    def to_payload(self) -> JSONObject:
        return {
            "quote": self.quote,
            "trailingComma": self.trailing_comma,
            "objectCurlySpacing": self.object_curly_spacing,
        }


class SyntaxBridge(Protocol):
    def parse(self, source: str) -> BabelNode: ...

    def parse_type(self, text: str) -> BabelNode: ...

    def print(self, tree: BabelNode, source: str) -> str: ...


def type_alias_right(tree: BabelNode) -> BabelNode:
    """The right-hand side of the single `type T = ...` statement in ``tree``."""
    program = tree.get("program")
    body = program.get("body") if isinstance(program, dict) else None
    if not isinstance(body, list) or len(body) != 1:
        raise BridgeError("expected exactly one statement in type source")
    alias = body[0]
    if not isinstance(alias, dict) or alias.get("type") != "TypeAlias":
        raise BridgeError("expected a type alias statement")
    right = alias.get("right")
    if not isinstance(right, dict):
        raise BridgeError("type alias without a right-hand side")
    return right


class BabelBridge:
    def __init__(
        self,
        command: Sequence[str] = DEFAULT_BRIDGE_COMMAND,
        *,
        printer_options: PrinterOptions | None = None,
        cwd: Path | None = None,
        process_factory: Callable[..., subprocess.Popen] = subprocess.Popen,
    ) -> None:
        self.command = list(command)
        self.printer_options = printer_options or PrinterOptions()
        self.cwd = cwd
        self._process_factory = process_factory
        self._proc: subprocess.Popen | None = None
        # Worker threads share one bridge process.
        self._lock = threading.Lock()

    def _process(self) -> subprocess.Popen:
        if self._proc is None:
            try:
                self._proc = self._process_factory(
                    self.command,
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                    cwd=self.cwd,
                    bufsize=0,
                )
            except OSError as exc:
                raise BridgeError(f"could not start bridge {self.command!r}: {exc}") from exc
        return self._proc

    def request(self, payload: JSONObject) -> JSONObject:
        with self._lock:
            proc = self._process()
            assert proc.stdin is not None
            assert proc.stdout is not None
            try:
                write_frame(proc.stdin, payload)
                response = read_frame(proc.stdout)
            except (OSError, WorkerProtocolError) as exc:
                raise BridgeError(f"bridge transport failed: {exc}") from exc
        if response is None:
            raise BridgeError("bridge process exited")
        error = response.get("error")
        if error:
            raise BridgeError(str(error))
        return response

    def parse(self, source: str) -> BabelNode:
        tree = self.request({"op": "parse", "source": source}).get("tree")
        if not isinstance(tree, dict):
            raise BridgeError("bridge returned no tree")
        return tree

    def parse_type(self, text: str) -> BabelNode:
        return type_alias_right(self.parse(f"type T = {text}"))

    def print(self, tree: BabelNode, source: str) -> str:
        code = self.request(
            {
                "op": "print",
                "source": source,
                "tree": tree,
                "options": self.printer_options.to_payload(),
            }
        ).get("code")
        if not isinstance(code, str):
            raise BridgeError("bridge returned no code")
        return code

    def close(self) -> None:
        if self._proc is None:
            return
        proc, self._proc = self._proc, None
        if proc.stdin is not None:
            proc.stdin.close()
        try:
            proc.wait(timeout=5.0)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.wait(timeout=1.0)

    def __enter__(self) -> BabelBridge:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
