"""
Post-render cleanup and substitution tables.

Rendering a country template with missing fields leaves stray separators
behind ("- ", ", ,", blank lines, trailing commas). ``clean_rendered`` removes
them and drops repeated lines and repeated ", " segments.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Callable, Iterable, List, Optional, Sequence, Tuple
import re

# -----------------------------
# Cleanup pass
# -----------------------------
_CLEANUP_RULES: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"[},\s]+$"), ""),
    (re.compile(r"^[,\s]+"), ""),
    (re.compile(r"^- "), ""),           # line starting with a dash because a field is missing
    (re.compile(r",\s*,"), ", "),
    (re.compile(r"[ \t]+,[ \t]+"), ", "),
    (re.compile(r"[ \t][ \t]+"), " "),
    (re.compile(r"[ \t]\n"), "\n"),
    (re.compile(r"\n,"), "\n"),
    (re.compile(r",,+"), ","),
    (re.compile(r",\n"), "\n"),
    (re.compile(r"\n[ \t]+"), "\n"),
    (re.compile(r"\n\n+"), "\n"),
]

# Never collapsed, "New York, New York" is a real address.
_DEDUPE_EXEMPT = "new york"


def _dedupe(chunks: Iterable[str], glue: str, modifier: Optional[Callable[[str], str]] = None) -> str:
    seen = set()
    result: List[str] = []
    for chunk in chunks:
        chunk = chunk.strip()
        if chunk.lower() == _DEDUPE_EXEMPT:
            seen.add(chunk)
            result.append(chunk)
            continue
        if chunk not in seen:
            seen.add(chunk)
            result.append(modifier(chunk) if modifier else chunk)
    return glue.join(result)


def dedupe_lines(text: str) -> str:
    """Drop repeated lines, then repeated ", " segments inside each line."""
    return _dedupe(text.split("\n"), "\n", lambda line: _dedupe(line.split(", "), ", "))


def _clean_once(text: str) -> str:
    for pattern, replacement in _CLEANUP_RULES:
        text = pattern.sub(replacement, text)
        text = dedupe_lines(text)
    return text.strip()


def clean_rendered(text: str) -> str:
    """Run the cleanup pass until it no longer changes the text.

    Every rule either shortens the text or removes a comma, so the loop
    terminates; the result is a fixed point, hence idempotent.
    """
    while True:
        cleaned = _clean_once(text)
        if cleaned == text:
            return cleaned
        text = cleaned

# -----------------------------
# Substitution tables
# -----------------------------
_GROUP_REF_RE = re.compile(r"\$(\d|\$|&)")
_SCOPE_RE = re.compile(r"^(\w+)=(.*)$", re.DOTALL)


@lru_cache(maxsize=1024)
def _compile(pattern: str) -> re.Pattern:
    return re.compile(pattern)


def expand_replacement(replacement: str) -> Callable[[re.Match], str]:
    """Build a ``re.sub`` callback honouring ``$1``, ``$&`` and ``$$`` references."""

    def expand(m: re.Match) -> str:
        def ref(r: re.Match) -> str:
            token = r.group(1)
            if token == "$":
                return "$"
            if token == "&":
                return m.group(0)
            idx = int(token)
            if 0 < idx <= m.re.groups:
                return m.group(idx) or ""
            return r.group(0)

        return _GROUP_REF_RE.sub(ref, replacement)

    return expand


def split_scope(pattern: str) -> Tuple[Optional[str], str]:
    """``"city=^St\\b"`` -> ``("city", "^St\\b")``; unscoped patterns get ``None``."""
    m = _SCOPE_RE.match(pattern)
    if m:
        return m.group(1), m.group(2)
    return None, pattern


def apply_substitutions(text: str, rules: Sequence[Sequence[str]], component: Optional[str] = None) -> str:
    """Apply ``(pattern, replacement)`` rules in order, first occurrence only.

    With ``component`` set, rules may be scoped as ``"field=pattern"``; a
    scoped rule only applies when its field is ``component``. Without it the
    patterns are used verbatim.
    """
    for pattern, replacement in rules:
        if component is not None:
            scope, pattern = split_scope(pattern)
            if scope is not None and scope != component:
                continue
        text = _compile(pattern).sub(expand_replacement(replacement), text, count=1)
    return text
