"""Minimal logic-less template engine for prompt construction.

Supported syntax:

    {{path.to.value}}                 interpolation (mappings, attributes,
                                      ``length`` of sequences)
    {{#if path}}...{{else}}...{{/if}} truthiness conditional
    {{#each path}}...{{/each}}        repetition; ``{{this}}``,
                                      ``{{this.field}}`` and ``{{@index}}``
                                      (1-based) inside the block
    {{> name}}                        partial inclusion

Values are looked up, never evaluated. Missing values render as an empty
string.
"""

import re
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

_TAG = re.compile(r"\{\{\s*(.*?)\s*\}\}", re.DOTALL)
_MAX_PARTIAL_DEPTH = 10
_MISSING = object()


class TemplateError(ValueError):
    """Raised for malformed templates or unknown partials."""


@dataclass
class _Block:
    kind: str  # "root", "if" or "each"
    path: str = ""
    body: List["_Node"] = field(default_factory=list)
    alternate: List["_Node"] = field(default_factory=list)
    in_alternate: bool = False

    def append(self, node: "_Node") -> None:
        (self.alternate if self.in_alternate else self.body).append(node)


@dataclass(frozen=True)
class _Var:
    path: str


_Node = Union[str, _Var, _Block]


def _expand_partials(template: str, partials: Mapping[str, str], depth: int = 0) -> str:
    if depth > _MAX_PARTIAL_DEPTH:
        raise TemplateError("partials nested too deeply")

    def _replace(match: "re.Match[str]") -> str:
        name = match.group(1).strip()
        if name not in partials:
            raise TemplateError(f"unknown partial '{name}'")
        return _expand_partials(partials[name], partials, depth + 1)

    return re.sub(r"\{\{>\s*([^}]+?)\s*\}\}", _replace, template)


def _is_block_tag(tag: str) -> bool:
    return tag == "else" or tag.startswith(("#", "/"))


def _standalone_span(template: str, start: int, end: int) -> Optional[Tuple[int, int]]:
    """Return the full-line span of a block tag that sits alone on its line."""
    line_start = template.rfind("\n", 0, start) + 1
    line_end = template.find("\n", end)
    line_end = len(template) if line_end == -1 else line_end + 1
    if template[line_start:start].strip() or template[end:line_end].strip():
        return None
    return line_start, line_end


def _parse(template: str) -> _Block:
    root = _Block(kind="root")
    stack = [root]
    position = 0
    for match in _TAG.finditer(template):
        tag = match.group(1)
        start, end = match.start(), match.end()
        if _is_block_tag(tag):
            span = _standalone_span(template, start, end)
            if span is not None and span[0] >= position:
                start, end = span
        if start > position:
            stack[-1].append(template[position:start])
        position = end

        if tag.startswith("#if ") or tag.startswith("#each "):
            kind, _, path = tag[1:].partition(" ")
            block = _Block(kind=kind, path=path.strip())
            stack[-1].append(block)
            stack.append(block)
        elif tag == "else":
            if stack[-1].kind != "if" or stack[-1].in_alternate:
                raise TemplateError("{{else}} outside of an {{#if}} block")
            stack[-1].in_alternate = True
        elif tag in ("/if", "/each"):
            if stack[-1].kind != tag[1:]:
                raise TemplateError(f"unexpected {{{{{tag}}}}}")
            stack.pop()
        elif tag.startswith(("#", "/")):
            raise TemplateError(f"unsupported block tag '{tag}'")
        else:
            stack[-1].append(_Var(path=tag))

    if position < len(template):
        stack[-1].append(template[position:])
    if len(stack) != 1:
        raise TemplateError(f"unclosed {{{{#{stack[-1].kind}}}}} block")
    return root


def _lookup(scopes: Sequence[Mapping[str, Any]], path: str) -> Any:
    parts = path.split(".")
    head, rest = parts[0], parts[1:]
    value: Any = _MISSING
    for scope in reversed(scopes):
        if head in scope:
            value = scope[head]
            break
    if value is _MISSING:
        return None

    for part in rest:
        if value is None:
            return None
        if isinstance(value, Mapping):
            value = value.get(part)
        elif part == "length" and isinstance(value, (list, tuple, set, frozenset)):
            value = len(value)
        else:
            value = getattr(value, part, None)
    return value


def format_value(value: Any) -> str:
    """Render one interpolated value as prompt text."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return f"{value:.2f}".rstrip("0").rstrip(".")
    if isinstance(value, (list, tuple, set, frozenset)):
        return ", ".join(format_value(item) for item in value)
    return str(value)


def _render_nodes(nodes: Sequence[_Node], scopes: List[Mapping[str, Any]]) -> str:
    out: List[str] = []
    for node in nodes:
        if isinstance(node, str):
            out.append(node)
        elif isinstance(node, _Var):
            out.append(format_value(_lookup(scopes, node.path)))
        elif node.kind == "if":
            branch = node.body if _lookup(scopes, node.path) else node.alternate
            out.append(_render_nodes(branch, scopes))
        else:
            items = _lookup(scopes, node.path)
            if not isinstance(items, (list, tuple)):
                continue
            for index, item in enumerate(items, start=1):
                scope = {"this": item, "@index": index}
                out.append(_render_nodes(node.body, scopes + [scope]))
    return "".join(out)


def render_template(
    template: str,
    context: Mapping[str, Any],
    partials: Optional[Mapping[str, str]] = None,
) -> str:
    """Render *template* against *context*.

    Args:
        template: Template text.
        context: Root values for lookups.
        partials: Named fragments available to ``{{> name}}``.

    Returns:
        The rendered text.

    Raises:
        TemplateError: On unbalanced blocks or unknown partials.
    """
    expanded = _expand_partials(template, partials or {})
    return _render_nodes(_parse(expanded).body, [dict(context)])
