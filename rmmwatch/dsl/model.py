from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple, Union


@dataclass
class OptionList:
    """Slash-delimited bare candidates such as ``false / true``."""

    options: List[Union[bool, str]]


Value = Union[str, bool, float, OptionList]


@dataclass
class Entry:
    key: str
    value: Value
    line: int = 0


@dataclass
class Section:
    name: str
    path: Tuple[str, ...] = ()
    entries: List[Entry] = field(default_factory=list)
    children: List["Section"] = field(default_factory=list)
    line: int = 0

    @property
    def dotted(self) -> str:
        return ".".join(self.path) or "<root>"

    def child(self, name: str) -> Optional["Section"]:
        """Latest occurrence of a direct child section."""
        found = None
        for c in self.children:
            if c.name.lower() == name.lower():
                found = c
        return found

    def children_named(self, name: str) -> List["Section"]:
        return [c for c in self.children if c.name.lower() == name.lower()]

    def walk(self) -> Iterator["Section"]:
        yield self
        for c in self.children:
            yield from c.walk()

    def own(self, key: str) -> Optional[Entry]:
        for e in self.entries:
            if e.key.lower() == key.lower():
                return e
        return None

    def flat_entries(self) -> List[Entry]:
        """Entries of this section and every descendant, in document order."""
        collected = [e for s in self.walk() for e in s.entries]
        return sorted(collected, key=lambda e: e.line)


@dataclass
class Document:
    root: Section = field(default_factory=lambda: Section(name=""))
    source: str = "<string>"

    def sections(self, dotted: str) -> List[Section]:
        """Every occurrence of a section path, in document order."""
        current = [self.root]
        for part in dotted.split("."):
            current = [c for s in current for c in s.children_named(part)]
        return current

    def section(self, dotted: str) -> Optional[Section]:
        found = self.sections(dotted)
        return found[-1] if found else None

    def lookup(self, dotted: str, key: str) -> Optional[Entry]:
        """First entry ``key`` across all occurrences of ``dotted``."""
        for s in self.sections(dotted):
            e = s.own(key)
            if e is not None:
                return e
        return None
