from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from rmmwatch.dsl.loader import load_binding_file
from rmmwatch.dsl.template import TemplateCatalog
from rmmwatch.errors import ConfigurationError
from rmmwatch.schemas.binding import PolicyBinding

logger = logging.getLogger("rmmwatch.policy_store")

DOCUMENT_SUFFIXES = (".toml", ".conf")


@dataclass(frozen=True)
class ReloadResult:
    ok: bool
    policy_count: int
    source_path: str
    error: Optional[str] = None
    errors: List[str] = field(default_factory=list)


class PolicyStore:
    """
    In-memory set of PolicyBindings loaded from a directory of condition
    documents (or a single document).

    A reload parses every document first and swaps the set only when all of
    them load; otherwise the last-known-good bindings stay in place.
    """

    def __init__(self, policy_path: str, catalog: Optional[TemplateCatalog] = None):
        self._policy_path = policy_path
        self._catalog = catalog
        self._lock = threading.Lock()
        self._bindings: Dict[str, PolicyBinding] = {}
        self._sources: Dict[str, str] = {}
        self._generation = 0

    @property
    def policy_path(self) -> str:
        return self._policy_path

    @property
    def generation(self) -> int:
        """Incremented on every successful reload."""
        with self._lock:
            return self._generation

    def snapshot(self) -> Tuple[int, List[PolicyBinding]]:
        """The generation and its bindings, read together."""
        with self._lock:
            return self._generation, list(self._bindings.values())

    def get_bindings(self) -> List[PolicyBinding]:
        with self._lock:
            return list(self._bindings.values())

    def get(self, policy_id: str) -> Optional[PolicyBinding]:
        with self._lock:
            return self._bindings.get(policy_id)

    def source_of(self, policy_id: str) -> Optional[str]:
        with self._lock:
            return self._sources.get(policy_id)

    def load_initial(self) -> ReloadResult:
        return self.reload()

    def _documents(self) -> List[Path]:
        root = Path(self._policy_path)
        if root.is_file():
            return [root]
        return sorted(p for p in root.iterdir() if p.is_file() and p.suffix in DOCUMENT_SUFFIXES)

    def _failed(self, errors: List[str]) -> ReloadResult:
        for err in errors:
            logger.warning("Policy reload rejected: %s", err)
        return ReloadResult(
            ok=False,
            policy_count=len(self.get_bindings()),
            source_path=self._policy_path,
            error=errors[0],
            errors=errors,
        )

    def reload(self) -> ReloadResult:
        if not Path(self._policy_path).exists():
            return self._failed([f"Policy path not found: {self._policy_path}"])

        bindings: Dict[str, PolicyBinding] = {}
        sources: Dict[str, str] = {}
        errors: List[str] = []

        for path in self._documents():
            try:
                binding = load_binding_file(path, self._catalog)
            except ConfigurationError as exc:
                errors.append(str(exc))
                continue
            except OSError as exc:
                errors.append(f"{path}: {exc}")
                continue
            if binding.policy_id in bindings:
                errors.append(
                    f"{path}: duplicate policy name {binding.policy_id!r} "
                    f"(already defined in {sources[binding.policy_id]})"
                )
                continue
            bindings[binding.policy_id] = binding
            sources[binding.policy_id] = str(path)

        if errors:
            return self._failed(errors)

        with self._lock:
            self._bindings = bindings
            self._sources = sources
            self._generation += 1

        logger.info("Loaded %d policy bindings from %s", len(bindings), self._policy_path)
        return ReloadResult(ok=True, policy_count=len(bindings), source_path=self._policy_path)
