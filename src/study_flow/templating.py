"""Handlebars-style prompt templates.

Supported syntax: ``{{path}}`` and ``{{{path}}}`` substitution (never escaped),
``{{#if x}}``/``{{#unless x}}`` with optional ``{{else}}``, ``{{#each xs}}`` with
optional ``{{else}}``, ``{{! comments }}``, and the ``this``, ``../``,
``@root``, ``@index``, ``@first``, ``@last`` and ``@key`` lookups.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence, Union

from study_flow.errors import TemplateError

STANDALONE_TAG_RE = re.compile(r"^[ \t]*(\{\{(?:[#/][^}]*|else|![^}]*)\}\})[ \t]*(?:\r?\n|\Z)", re.MULTILINE)
TOKEN_RE = re.compile(r"\{\{\{\s*(?P<raw>[^}]+?)\s*\}\}\}|\{\{\s*(?P<tag>[^}]+?)\s*\}\}")
BLOCK_HELPERS = frozenset({"if", "unless", "each"})


@dataclass(frozen=True)
class _Text:
    text: str


@dataclass(frozen=True)
class _Var:
    path: str


@dataclass
class _Block:
    helper: str
    path: str
    body: list[_Node] = field(default_factory=list)
    inverse: list[_Node] = field(default_factory=list)
    in_inverse: bool = False


_Node = Union[_Text, _Var, _Block]


class PromptTemplate:
    """A compiled template. Compilation happens once; rendering is pure."""

    def __init__(self, source: str) -> None:
        self.source = source
        self._nodes: list[_Node] = _parse(source)

    def render(self, data: Mapping[str, Any]) -> str:
        out: list[str] = []
        _render_nodes(self._nodes, [data], {}, out)
        return "".join(out)

    def root_names(self) -> frozenset[str]:
        """Top-level input fields referenced outside of ``each`` scopes."""
        names: set[str] = set()
        _collect_root_names(self._nodes, names)
        return frozenset(names)

    def __repr__(self) -> str:
        return f"PromptTemplate({self.source[:40]!r})"


def _parse(source: str) -> list[_Node]:
    text = STANDALONE_TAG_RE.sub(r"\1", source)
    root: list[_Node] = []
    stack: list[_Block] = []

    def target() -> list[_Node]:
        if not stack:
            return root
        block = stack[-1]
        return block.inverse if block.in_inverse else block.body

    position = 0
    for match in TOKEN_RE.finditer(text):
        if match.start() > position:
            target().append(_Text(text[position : match.start()]))
        position = match.end()

        raw = match.group("raw")
        if raw is not None:
            target().append(_Var(raw.strip()))
            continue

        tag = match.group("tag").strip()
        if tag.startswith("!"):
            continue
        if tag.startswith("#"):
            helper, _, path = tag[1:].strip().partition(" ")
            path = path.strip()
            if helper not in BLOCK_HELPERS:
                raise TemplateError(f"Unsupported block helper {helper!r}.")
            if not path:
                raise TemplateError(f"Block {helper!r} needs a field to test.")
            block = _Block(helper=helper, path=path)
            target().append(block)
            stack.append(block)
        elif tag.startswith("/"):
            helper = tag[1:].strip()
            if not stack:
                raise TemplateError(f"Closing {{{{/{helper}}}}} without an open block.")
            if stack[-1].helper != helper:
                raise TemplateError(f"Closing {{{{/{helper}}}}} does not match {{{{#{stack[-1].helper}}}}}.")
            stack.pop()
        elif tag == "else":
            if not stack:
                raise TemplateError("{{else}} outside of a block.")
            if stack[-1].in_inverse:
                raise TemplateError("Duplicate {{else}} in block.")
            stack[-1].in_inverse = True
        else:
            target().append(_Var(tag))

    if position < len(text):
        target().append(_Text(text[position:]))
    if stack:
        raise TemplateError(f"Unclosed block {{{{#{stack[-1].helper} {stack[-1].path}}}}}.")
    return root


def _render_nodes(nodes: Sequence[_Node], scopes: list[Any], frame: Mapping[str, Any], out: list[str]) -> None:
    for node in nodes:
        if isinstance(node, _Text):
            out.append(node.text)
        elif isinstance(node, _Var):
            out.append(format_value(_lookup(node.path, scopes, frame)))
        else:
            _render_block(node, scopes, frame, out)


def _render_block(block: _Block, scopes: list[Any], frame: Mapping[str, Any], out: list[str]) -> None:
    value = _lookup(block.path, scopes, frame)
    if block.helper == "if":
        _render_nodes(block.body if is_truthy(value) else block.inverse, scopes, frame, out)
        return
    if block.helper == "unless":
        _render_nodes(block.inverse if is_truthy(value) else block.body, scopes, frame, out)
        return

    if isinstance(value, Mapping):
        items = [(key, item) for key, item in value.items()]
    elif isinstance(value, (list, tuple)):
        items = [(None, item) for item in value]
    else:
        items = []
    if not items:
        _render_nodes(block.inverse, scopes, frame, out)
        return
    last = len(items) - 1
    for index, (key, item) in enumerate(items):
        item_frame: dict[str, Any] = {"index": index, "first": index == 0, "last": index == last}
        if key is not None:
            item_frame["key"] = key
        _render_nodes(block.body, [*scopes, item], item_frame, out)


def _lookup(path: str, scopes: list[Any], frame: Mapping[str, Any]) -> Any:
    if path.startswith("@root"):
        rest = path[len("@root") :].lstrip(".")
        return _walk(scopes[0], rest)
    if path.startswith("@"):
        return frame.get(path[1:])

    depth = len(scopes) - 1
    while path.startswith("../"):
        path = path[3:]
        depth = max(depth - 1, 0)
    scope = scopes[depth]

    if path in ("this", "."):
        return scope
    if path.startswith("this."):
        path = path[len("this.") :]
    return _walk(scope, path)


def _walk(scope: Any, path: str) -> Any:
    current = scope
    if not path:
        return current
    for part in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(part)
        elif isinstance(current, (list, tuple)) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


def is_truthy(value: Any) -> bool:
    return bool(value)


def format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join(format_value(item) for item in value)
    if isinstance(value, Mapping):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def _collect_root_names(nodes: Sequence[_Node], names: set[str]) -> None:
    for node in nodes:
        if isinstance(node, _Var):
            name = _root_name(node.path)
            if name:
                names.add(name)
        elif isinstance(node, _Block):
            name = _root_name(node.path)
            if name:
                names.add(name)
            if node.helper != "each":
                _collect_root_names(node.body, names)
            _collect_root_names(node.inverse, names)


def _root_name(path: str) -> str | None:
    if path.startswith(("@", "../")) or path in ("this", "."):
        return None
    if path.startswith("this."):
        path = path[len("this.") :]
    return path.split(".", 1)[0]
