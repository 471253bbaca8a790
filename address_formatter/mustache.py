"""
Mustache renderer used by the address templates.

Supported:
- Variables: {{name}} (escaped), {{{name}}} and {{&name}} (unescaped)
- Dotted names: {{person.full_name}}, {{items.0}}
- Sections: {{#items}} ... {{/items}} (lists/mappings/truthy/callables)
- Inverted sections: {{^items}} ... {{/items}}
- Comments: {{! comment }}
- Partials: {{> partial}} (mapping, callable or template directory)
- Set delimiters: {{=<% %>=}}

Callable section values receive the unrendered section body and a render
callback, which is how the address templates implement ``{{#first}}``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, Union
import logging
import re

from .errors import TemplateRenderError, TemplateSyntaxError

logger = logging.getLogger(__name__)

DEFAULT_TAGS: Tuple[str, str] = ("{{", "}}")

# -----------------------------
# Escaping
# -----------------------------
def html_escape(s: str) -> str:
    # Note: do NOT escape apostrophes to preserve common HTML source expectations.
    return (
        s.replace("&", "&amp;")
         .replace("<", "&lt;")
         .replace(">", "&gt;")
         .replace('"', "&quot;")
    )

def no_escape(s: str) -> str:
    return s

# -----------------------------
# Scanner
# -----------------------------
class Scanner:
    """Forward-only cursor over a template string."""

    def __init__(self, string: str):
        self.string = string
        self.tail = string
        self.pos = 0

    def eos(self) -> bool:
        return self.tail == ""

    def scan(self, pattern: re.Pattern) -> str:
        """Consume and return the match at the cursor, or "" if there is none."""
        m = pattern.match(self.tail)
        if not m:
            return ""
        matched = m.group(0)
        self.tail = self.tail[len(matched):]
        self.pos += len(matched)
        return matched

    def scan_until(self, pattern: re.Pattern) -> str:
        """Consume and return everything up to the next match (or the rest of the input)."""
        m = pattern.search(self.tail)
        if m is None:
            matched = self.tail
            self.tail = ""
        else:
            matched = self.tail[:m.start()]
            self.tail = self.tail[m.start():]
        self.pos += len(matched)
        return matched

# -----------------------------
# AST nodes
# -----------------------------
@dataclass
class TextNode:
    text: str
    start: int = 0
    end: int = 0

@dataclass
class VarNode:
    name: str
    escaped: bool = True
    start: int = 0
    end: int = 0

@dataclass
class SectionNode:
    name: str
    inverted: bool
    children: List[Any] = field(default_factory=list)
    start: int = 0
    end: int = 0
    # offset of the closing tag; source[end:close_start] is the raw body
    close_start: int = -1

@dataclass
class PartialNode:
    name: str
    start: int = 0
    end: int = 0
    indentation: str = ""
    tag_index: int = 0
    line_has_non_space: bool = False

@dataclass
class CommentNode:
    start: int = 0
    end: int = 0

@dataclass
class DelimiterNode:
    tags: str
    start: int = 0
    end: int = 0

@dataclass
class _CloseTag:
    name: str
    start: int
    end: int


Token = Union[TextNode, VarNode, SectionNode, PartialNode, CommentNode, DelimiterNode]

# -----------------------------
# Parsing
# -----------------------------
_WHITE_RE = re.compile(r"\s*")
_SPACE_RE = re.compile(r"\s+")
_EQUALS_RE = re.compile(r"\s*=")
_CURLY_RE = re.compile(r"\s*\}")
_SIGIL_RE = re.compile(r"#|\^|/|>|\{|&|=|!")
_NON_SPACE_RE = re.compile(r"\S")


def _compile_tags(tags: Union[str, Sequence[str]]) -> Tuple[re.Pattern, re.Pattern, re.Pattern]:
    if isinstance(tags, str):
        tags = _SPACE_RE.split(tags.strip(), maxsplit=1)
    if len(tags) != 2 or not all(tags):
        raise TemplateSyntaxError(f"Invalid tags: {tags!r}")
    opening, closing = tags
    return (
        re.compile(re.escape(opening) + r"\s*"),
        re.compile(r"\s*" + re.escape(closing)),
        re.compile(r"\s*" + re.escape("}" + closing)),
    )


def parse_template(tmpl: str, tags: Sequence[str] = DEFAULT_TAGS) -> List[Token]:
    """Compile ``tmpl`` into a nested token tree.

    Text is tokenized one character at a time so that whitespace on lines
    holding only section/partial/comment tags can be dropped once the line
    ends (standalone lines).
    """
    if not tmpl:
        return []

    tokens: List[Any] = []
    sections: List[SectionNode] = []
    spaces: List[int] = []       # indices of whitespace text tokens on the current line
    has_tag = False              # a tag was seen on the current line
    non_space = False            # non-space text or a variable was seen on the current line
    line_has_non_space = False
    indentation = ""
    tag_index = 0

    def strip_space() -> None:
        nonlocal spaces, has_tag, non_space
        if has_tag and not non_space:
            while spaces:
                tokens[spaces.pop()] = None
        else:
            spaces = []
        has_tag = False
        non_space = False

    opening_re, closing_re, closing_curly_re = _compile_tags(tags)
    scanner = Scanner(tmpl)

    while not scanner.eos():
        start = scanner.pos

        value = scanner.scan_until(opening_re)
        for chr_ in value:
            if _NON_SPACE_RE.search(chr_):
                non_space = True
                line_has_non_space = True
                indentation += " "
            else:
                spaces.append(len(tokens))
                indentation += chr_
            tokens.append(TextNode(chr_, start, start + 1))
            start += 1
            if chr_ == "\n":
                strip_space()
                indentation = ""
                tag_index = 0
                line_has_non_space = False

        if not scanner.scan(opening_re):
            break
        has_tag = True

        sigil = scanner.scan(_SIGIL_RE) or "name"
        scanner.scan(_WHITE_RE)

        if sigil == "=":
            value = scanner.scan_until(_EQUALS_RE)
            scanner.scan(_EQUALS_RE)
            scanner.scan_until(closing_re)
        elif sigil == "{":
            value = scanner.scan_until(closing_curly_re)
            scanner.scan(_CURLY_RE)
            scanner.scan_until(closing_re)
            sigil = "&"
        else:
            value = scanner.scan_until(closing_re)

        if not scanner.scan(closing_re):
            raise TemplateSyntaxError("Unclosed tag", position=scanner.pos)

        end = scanner.pos
        if sigil == ">":
            token: Any = PartialNode(value, start, end, indentation, tag_index, line_has_non_space)
        elif sigil in ("#", "^"):
            token = SectionNode(value, sigil == "^", [], start, end)
            sections.append(token)
        elif sigil == "/":
            if not sections:
                raise TemplateSyntaxError(f'Unopened section "{value}"', position=start)
            open_section = sections.pop()
            if open_section.name != value:
                raise TemplateSyntaxError(f'Unclosed section "{open_section.name}"', position=start)
            token = _CloseTag(value, start, end)
        elif sigil == "!":
            token = CommentNode(start, end)
        elif sigil == "=":
            token = DelimiterNode(value, start, end)
            opening_re, closing_re, closing_curly_re = _compile_tags(value)
        else:
            token = VarNode(value, sigil == "name", start, end)
            non_space = True
        tag_index += 1
        tokens.append(token)

    strip_space()
    if sections:
        raise TemplateSyntaxError(f'Unclosed section "{sections[-1].name}"', position=scanner.pos)

    return build_tree(squash_tokens(tokens))


def squash_tokens(tokens: List[Any]) -> List[Any]:
    squashed: List[Any] = []
    last = None
    for tok in tokens:
        if tok is None:
            continue
        if isinstance(tok, TextNode) and isinstance(last, TextNode):
            last.text += tok.text
            last.end = tok.end
        else:
            squashed.append(tok)
            last = tok
    return squashed


def build_tree(tokens: List[Any]) -> List[Token]:
    root: List[Token] = []
    collector = root
    stack: List[SectionNode] = []
    for tok in tokens:
        if isinstance(tok, SectionNode):
            collector.append(tok)
            stack.append(tok)
            collector = tok.children
        elif isinstance(tok, _CloseTag):
            sec = stack.pop()
            sec.close_start = tok.start
            collector = stack[-1].children if stack else root
        else:
            collector.append(tok)
    return root

# -----------------------------
# Template cache
# -----------------------------
class TemplateCache(Protocol):
    def get(self, key: str) -> Optional[List[Token]]: ...
    def set(self, key: str, tokens: List[Token]) -> None: ...
    def clear(self) -> None: ...


class DictTemplateCache:
    """Unbounded in-memory cache. Not synchronised."""

    def __init__(self):
        self._store: Dict[str, List[Token]] = {}

    def get(self, key: str) -> Optional[List[Token]]:
        return self._store.get(key)

    def set(self, key: str, tokens: List[Token]) -> None:
        self._store[key] = tokens

    def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)

# -----------------------------
# Context
# -----------------------------
_PRIMITIVES = (str, bytes, int, float, bool)


def _has_property(obj: Any, name: str) -> bool:
    if obj is None or isinstance(obj, _PRIMITIVES):
        return False
    if isinstance(obj, Mapping):
        return name in obj
    if isinstance(obj, (list, tuple)):
        return name.isdigit() and int(name) < len(obj)
    if name.startswith("_"):
        return False
    return hasattr(obj, name)


def _primitive_has_property(obj: Any, name: str) -> bool:
    if not isinstance(obj, _PRIMITIVES) or name.startswith("_"):
        return False
    return hasattr(obj, name) and not callable(getattr(obj, name))


def _get(obj: Any, name: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(name)
    if isinstance(obj, (list, tuple)):
        if name.isdigit() and int(name) < len(obj):
            return obj[int(name)]
        return None
    if name.startswith("_"):
        return None
    return getattr(obj, name, None)


class Context:
    """A stack of views; lookups fall back to the parent context."""

    def __init__(self, view: Any, parent: Optional["Context"] = None):
        self.view = view
        self.parent = parent
        self.cache: Dict[str, Any] = {".": view}

    def push(self, view: Any) -> "Context":
        return Context(view, self)

    def lookup(self, name: str) -> Any:
        if name in self.cache:
            value = self.cache[name]
        else:
            value = None
            ctx: Optional[Context] = self
            while ctx is not None:
                if name.find(".") > 0:
                    names = name.split(".")
                    current = ctx.view
                    hit = False
                    for i, part in enumerate(names):
                        if current is None:
                            break
                        if i == len(names) - 1:
                            hit = _has_property(current, part) or _primitive_has_property(current, part)
                        current = _get(current, part)
                else:
                    hit = _has_property(ctx.view, name)
                    current = _get(ctx.view, name)
                if hit:
                    value = current
                    break
                ctx = ctx.parent
            self.cache[name] = value

        if callable(value):
            value = value(self.view)
        return value

# -----------------------------
# Rendering
# -----------------------------
Partials = Union[Mapping[str, str], Callable[[str], Optional[str]], None]


def directory_partials(template_dir: Path) -> Callable[[str], Optional[str]]:
    """Partials provider reading ``<name>.mustache`` (or ``<name>``) from a directory."""
    template_dir = Path(template_dir)

    def load(name: str) -> Optional[str]:
        for candidate in (template_dir / (name + ".mustache"), template_dir / name):
            if candidate.is_file():
                return candidate.read_text(encoding="utf-8")
        return None

    return load


def indent_partial(partial: str, indentation: str, line_has_non_space: bool) -> str:
    filtered = re.sub(r"[^ \t]", "", indentation)
    lines = partial.split("\n")
    for i, line in enumerate(lines):
        if line and (i > 0 or not line_has_non_space):
            lines[i] = filtered + line
    return "\n".join(lines)


def _is_truthy(val: Any) -> bool:
    if val is None or val is False:
        return False
    if isinstance(val, (str, int, float)) and not val:
        return False
    if isinstance(val, (list, tuple, dict)) and len(val) == 0:
        return False
    return True


class Renderer:
    def __init__(
        self,
        escape: Callable[[str], str] = html_escape,
        tags: Sequence[str] = DEFAULT_TAGS,
        cache: Optional[TemplateCache] = None,
        use_cache: bool = True,
        template_dir: Optional[Path] = None,
    ):
        self.escape = escape
        self.tags = tuple(tags)
        self.cache: Optional[TemplateCache] = None
        if use_cache:
            self.cache = cache if cache is not None else DictTemplateCache()
        self.template_dir = template_dir

    def parse(self, template: str, tags: Optional[Sequence[str]] = None) -> List[Token]:
        tags = tuple(tags or self.tags)
        key = template + ":" + ":".join(tags)
        tokens = self.cache.get(key) if self.cache is not None else None
        if tokens is None:
            tokens = parse_template(template, tags)
            if self.cache is not None:
                self.cache.set(key, tokens)
        else:
            logger.debug("template cache hit (%d chars)", len(template))
        return tokens

    def clear_cache(self) -> None:
        if self.cache is not None:
            self.cache.clear()

    def render(
        self,
        template: str,
        data: Any,
        partials: Partials = None,
        tags: Optional[Sequence[str]] = None,
    ) -> str:
        if partials is None and self.template_dir is not None:
            partials = directory_partials(self.template_dir)
        tokens = self.parse(template, tags)
        ctx = data if isinstance(data, Context) else Context(data)
        return self._render_tokens(tokens, ctx, partials, template, tags)

    def _render_tokens(
        self,
        tokens: List[Token],
        ctx: Context,
        partials: Partials,
        original: Optional[str],
        tags: Optional[Sequence[str]] = None,
    ) -> str:
        out: List[str] = []
        for tok in tokens:
            if isinstance(tok, TextNode):
                out.append(tok.text)
            elif isinstance(tok, VarNode):
                val = ctx.lookup(tok.name)
                if val is None:
                    continue
                if not tok.escaped:
                    out.append(str(val))
                elif isinstance(val, (int, float)) and not isinstance(val, bool):
                    out.append(str(val))
                else:
                    out.append(self.escape(str(val)))
            elif isinstance(tok, SectionNode):
                if tok.inverted:
                    val = ctx.lookup(tok.name)
                    if not _is_truthy(val):
                        out.append(self._render_tokens(tok.children, ctx, partials, original, tags))
                else:
                    out.append(self._render_section(tok, ctx, partials, original, tags))
            elif isinstance(tok, PartialNode):
                out.append(self._render_partial(tok, ctx, partials, tags))
            # comments and delimiter changes render nothing
        return "".join(out)

    def _render_section(
        self,
        tok: SectionNode,
        ctx: Context,
        partials: Partials,
        original: Optional[str],
        tags: Optional[Sequence[str]],
    ) -> str:
        val = ctx.lookup(tok.name)
        if not _is_truthy(val):
            return ""
        if isinstance(val, (list, tuple)):
            return "".join(
                self._render_tokens(tok.children, ctx.push(item), partials, original, tags)
                for item in val
            )
        if callable(val):
            if not isinstance(original, str):
                raise TemplateRenderError("Cannot use higher-order sections without the original template")

            def sub_render(text: str) -> str:
                return self.render(text, ctx, partials, tags)

            result = val(original[tok.end:tok.close_start], sub_render)
            return "" if result is None else str(result)
        if val is True:
            return self._render_tokens(tok.children, ctx, partials, original, tags)
        return self._render_tokens(tok.children, ctx.push(val), partials, original, tags)

    def _render_partial(self, tok: PartialNode, ctx: Context, partials: Partials, tags: Optional[Sequence[str]]) -> str:
        if not partials:
            return ""
        value = partials(tok.name) if callable(partials) else partials.get(tok.name)
        if value is None:
            return ""
        if tok.tag_index == 0 and tok.indentation:
            value = indent_partial(value, tok.indentation, tok.line_has_non_space)
        tokens = self.parse(value, tags)
        return self._render_tokens(tokens, ctx, partials, value, tags)

# -----------------------------
# Module-level conveniences
# -----------------------------
_default_renderer = Renderer()


def render(template: str, data: Any, partials: Partials = None, tags: Optional[Sequence[str]] = None) -> str:
    return _default_renderer.render(template, data, partials, tags)


def parse(template: str, tags: Optional[Sequence[str]] = None) -> List[Token]:
    return _default_renderer.parse(template, tags)


def clear_cache() -> None:
    _default_renderer.clear_cache()
