"""Stand-in for the Node bridge, speaking the same framed JSON protocol.

`parse` answers with a fixed file (a Flow type alias and an unannotated
function), `type T = X` sources with the alias tree for `X`, and any source
containing `syntax error` with an error. `print` answers with one line per
top-level statement kind, after a `// @flow` header.
"""

import json
import sys


def _read(stream):
    header = b""
    while b"\r\n\r\n" not in header:
        chunk = stream.read(1)
        if not chunk:
            return None
        header += chunk
    length = int(header.split(b":", 1)[1].strip())
    body = b""
    while len(body) < length:
        body += stream.read(length - len(body))
    return json.loads(body)


def _write(stream, message):
    payload = json.dumps(message).encode("utf-8")
    stream.write(b"Content-Length: %d\r\n\r\n" % len(payload) + payload)
    stream.flush()


def _loc(line):
    return {"start": {"line": line, "column": 0}, "end": {"line": line, "column": 10}}


def _file(*statements):
    return {"type": "File", "program": {"type": "Program", "body": list(statements)}}


def _parse(source):
    if source.startswith("type T = "):
        name = source[len("type T = "):]
        right = {"type": "GenericTypeAnnotation", "id": {"type": "Identifier", "name": name}}
        return _file({"type": "TypeAlias", "id": {"type": "Identifier", "name": "T"}, "right": right})
    alias = {
        "type": "TypeAlias",
        "id": {"type": "Identifier", "name": "Name"},
        "typeParameters": None,
        "right": {"type": "StringTypeAnnotation", "loc": _loc(2)},
        "loc": _loc(2),
    }
    function = {
        "type": "FunctionDeclaration",
        "id": {"type": "Identifier", "name": "greet"},
        "params": [{"type": "Identifier", "name": "who", "loc": _loc(3)}],
        "body": {"type": "BlockStatement", "body": []},
        "loc": _loc(3),
    }
    if "<div" in source:
        function["body"]["body"].append(
            {"type": "ExpressionStatement", "expression": {"type": "JSXElement", "children": []}}
        )
    return _file(alias, function)


def _print(tree):
    kinds = [statement["type"] for statement in tree["program"]["body"]]
    return "// @flow\n\n" + "\n".join(kinds) + "\n// flow-disable-next-line\n"


def main():
    stdin = sys.stdin.buffer
    stdout = sys.stdout.buffer
    while True:
        request = _read(stdin)
        if request is None:
            return
        if "syntax error" in request.get("source", ""):
            _write(stdout, {"error": "SyntaxError: Unexpected token (1:1)"})
        elif request["op"] == "parse":
            _write(stdout, {"tree": _parse(request["source"])})
        elif request["op"] == "print":
            _write(stdout, {"code": _print(request["tree"])})
        else:
            _write(stdout, {"error": "unknown op"})


if __name__ == "__main__":
    main()
