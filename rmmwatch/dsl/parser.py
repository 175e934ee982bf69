from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Union

from lark import Lark, Transformer
from lark.exceptions import UnexpectedInput

from rmmwatch.errors import ConfigurationError

from .grammar import DOCUMENT_GRAMMAR
from .model import Document, Entry, OptionList, Section


def _strip_quotes(s: str) -> str:
    if s.startswith('"') and s.endswith('"'):
        s = s[1:-1]
    return s.replace('\\"', '"').replace("\\\\", "\\")


class _Header:
    def __init__(self, path: str, line: int):
        self.path = path
        self.line = line


class _DocumentTransformer(Transformer):
    def __init__(self, source: str):
        super().__init__()
        self.source = source

    def ml_string(self, s):
        return str(s[0])[3:-3]

    def string(self, s):
        return _strip_quotes(str(s[0]))

    def boolean(self, b):
        return str(b[0]) == "true"

    def options(self, items):
        return OptionList(options=[str(t) == "true" for t in items])

    def number(self, n):
        return float(n[0])

    def header(self, items):
        token = items[0]
        return _Header(str(token), token.line)

    def pair(self, items):
        key, value = items
        return Entry(key=str(key), value=value, line=key.line)

    def start(self, items):
        doc = Document(source=self.source)
        current = doc.root
        for item in items:
            if isinstance(item, _Header):
                current = _open_section(doc.root, item)
            elif isinstance(item, Entry):
                current.entries.append(item)
        return doc


def _open_section(root: Section, header: _Header) -> Section:
    # Each header opens a fresh section; parents resolve to their latest occurrence.
    parts = header.path.split(".")
    parent = root
    for depth, part in enumerate(parts[:-1], start=1):
        nxt = parent.child(part)
        if nxt is None:
            nxt = Section(name=part, path=tuple(parts[:depth]), line=header.line)
            parent.children.append(nxt)
        parent = nxt
    section = Section(name=parts[-1], path=tuple(parts), line=header.line)
    parent.children.append(section)
    return section


@lru_cache(maxsize=1)
def _parser() -> Lark:
    return Lark(DOCUMENT_GRAMMAR, start="start", parser="lalr")


def parse_document(text: str, source: str = "<string>") -> Document:
    """Parse a condition document into its section tree."""
    if not text.endswith("\n"):
        text += "\n"
    try:
        tree = _parser().parse(text)
    except UnexpectedInput as exc:
        raise ConfigurationError(
            f"syntax error near column {exc.column}",
            location=f"{source}:{exc.line}",
        ) from exc
    return _DocumentTransformer(source).transform(tree)


def parse_document_file(path: Union[str, Path]) -> Document:
    p = Path(path)
    return parse_document(p.read_text(encoding="utf-8"), source=str(p))
