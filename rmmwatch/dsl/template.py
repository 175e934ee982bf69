"""
Option template catalog.

The template is itself a condition document whose values describe the legal
choices of every key:

  - ``"A / B / C"``          enumerated label, one of the candidates
  - ``"  unit1 / unit2"``    quantity, ``<number> <unit>``
  - ``false / true``         flag
  - anything else            free value

Lookups are scoped by a dotted section prefix, so a key is found in the named
section or any of its subsections.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from rmmwatch.errors import ConfigurationError

from .model import Document, OptionList
from .parser import parse_document_file

DEFAULT_TEMPLATE_PATH = Path(__file__).parent / "templates" / "condition_template.toml"

_SPACES = re.compile(r"\s+")
_QUANTITY = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*(.*?)\s*$")


def normalize_label(text: str) -> str:
    return _SPACES.sub(" ", text).strip()


def _unit_key(label: str) -> str:
    # "Minute(s)", "minutes" and "minute" name the same unit.
    if "%" in label:
        return "%"
    return label.lower().replace("(s)", "").rstrip("s")


def split_candidates(raw: str) -> List[str]:
    """Split a slash-delimited candidate list, tolerating stray whitespace."""
    return [normalize_label(p) for p in raw.split("/") if normalize_label(p)]


@dataclass
class TemplateKey:
    section: str
    key: str
    kind: str  # enum | quantity | flag | free
    candidates: List[str] = field(default_factory=list)
    default: str = ""


def _classify(section: str, key: str, value) -> TemplateKey:
    if isinstance(value, (bool, OptionList)):
        return TemplateKey(section, key, "flag")
    if not isinstance(value, str):
        return TemplateKey(section, key, "free")
    if value and value[0].isspace() and value.strip():
        return TemplateKey(section, key, "quantity", split_candidates(value))
    if "/" in value and "," not in value:
        return TemplateKey(section, key, "enum", split_candidates(value))
    return TemplateKey(section, key, "free", default=value)


class TemplateCatalog:
    def __init__(self, document: Document):
        self._keys: List[TemplateKey] = []
        for section in document.root.walk():
            dotted = ".".join(section.path)
            for entry in section.entries:
                self._keys.append(_classify(dotted, entry.key, entry.value))
        self._cache: Dict[Tuple[str, str], Optional[TemplateKey]] = {}

    @classmethod
    def from_file(cls, path: Union[str, Path, None] = None) -> "TemplateCatalog":
        return cls(parse_document_file(path or DEFAULT_TEMPLATE_PATH))

    def __len__(self) -> int:
        return len(self._keys)

    def keys(self) -> List[TemplateKey]:
        return list(self._keys)

    def lookup(self, scope: str, key: str) -> Optional[TemplateKey]:
        cache_key = (scope.lower(), key.lower())
        if cache_key not in self._cache:
            self._cache[cache_key] = self._find(*cache_key)
        return self._cache[cache_key]

    def _find(self, scope: str, key: str) -> Optional[TemplateKey]:
        for tk in self._keys:
            section = tk.section.lower()
            in_scope = section == scope or section.startswith(scope + ".")
            if in_scope and tk.key.lower() == key:
                return tk
        return None

    def candidates(self, scope: str, key: str) -> List[str]:
        tk = self.lookup(scope, key)
        return list(tk.candidates) if tk else []

    def choose(self, scope: str, key: str, raw: str) -> str:
        """Return the canonical candidate matching ``raw`` (case-insensitive)."""
        location = f"{scope}.{key}"
        tk = self.lookup(scope, key)
        if tk is None or tk.kind != "enum":
            raise ConfigurationError("key has no enumerated options", location=location)
        wanted = normalize_label(str(raw)).lower()
        for candidate in tk.candidates:
            if candidate.lower() == wanted:
                return candidate
        raise ConfigurationError(
            f"{raw!r} is not one of: {' / '.join(tk.candidates)}",
            location=location,
        )

    def quantity(self, scope: str, key: str, raw) -> Tuple[float, str]:
        """Parse ``<number> <unit>``; the unit may be omitted when only one is offered."""
        location = f"{scope}.{key}"
        tk = self.lookup(scope, key)
        if tk is None or tk.kind != "quantity":
            raise ConfigurationError("key does not take a quantity", location=location)
        if isinstance(raw, float):
            raw = f"{raw:g}"
        m = _QUANTITY.match(str(raw))
        if not m:
            raise ConfigurationError(f"expected '<number> <unit>', got {raw!r}", location=location)
        number = float(m.group(1))
        unit = normalize_label(m.group(2))
        if not unit:
            if len(tk.candidates) != 1:
                raise ConfigurationError(
                    f"unit required, one of: {' / '.join(tk.candidates)}",
                    location=location,
                )
            return number, tk.candidates[0]
        for candidate in tk.candidates:
            if _unit_key(candidate) == _unit_key(unit):
                return number, candidate
        raise ConfigurationError(
            f"unit {unit!r} is not one of: {' / '.join(tk.candidates)}",
            location=location,
        )
