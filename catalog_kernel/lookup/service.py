"""
Lookup Service — layered key/value data, most specific level first.

Behavioral Contract:
- Levels are path templates interpolated from the node's facts,
  e.g. ``nodes/%{certname}`` or ``%{group}/%{stage}``
- A level whose template references a missing fact is skipped
- ``first`` merge: the first level defining the key wins
- ``unique`` merge: lists from every level, concatenated, duplicates dropped
- ``hash`` merge: dicts from every level, more specific keys win
- Values are checked against the caller's expected type (strict, no coercion)
- Read-only: nothing in a run writes to the data
"""

import logging
import re
from enum import Enum
from functools import lru_cache
from typing import Any, List, Optional, Tuple

from pydantic import TypeAdapter, ValidationError

from catalog_kernel.errors import LookupKeyError, LookupTypeError
from catalog_kernel.lookup.backends import DataSource
from catalog_kernel.models.node import Node

logger = logging.getLogger(__name__)

DEFAULT_HIERARCHY: Tuple[str, ...] = (
    "nodes/%{certname}",
    "%{group}/%{stage}",
    "%{group}",
    "common",
)

_INTERPOLATION = re.compile(r"%\{([^}]+)\}")


class _NoDefault:
    def __repr__(self) -> str:
        return "<no default>"


NO_DEFAULT: Any = _NoDefault()


class MergeStrategy(str, Enum):
    FIRST = "first"
    UNIQUE = "unique"
    HASH = "hash"


@lru_cache(maxsize=256)
def type_adapter(expected_type: Any) -> TypeAdapter:
    return TypeAdapter(expected_type)


def unit_parameter_key(unit: str, parameter: str) -> str:
    """Lookup key for a unit parameter, e.g. ``profile::jenkins::heap_mb``."""
    return f"{unit}::{parameter}"


def interpolate(template: str, node: Node) -> Optional[str]:
    """Fill ``%{fact}`` placeholders from the node; None if any fact is missing."""
    missing = False

    def _replace(match: "re.Match") -> str:
        nonlocal missing
        name = match.group(1).strip()
        if name.startswith("facts."):
            name = name[len("facts."):]
        elif name == "trusted.certname":
            name = "certname"
        value = node.fact(name)
        if value is None or isinstance(value, (dict, list)):
            missing = True
            return ""
        return str(value)

    path = _INTERPOLATION.sub(_replace, template)
    return None if missing else path


class LookupService:
    """Hierarchical lookups scoped to one node."""

    def __init__(
        self,
        source: DataSource,
        node: Node,
        hierarchy: Optional[List[str]] = None,
    ):
        self.source = source
        self.node = node
        self.hierarchy = list(hierarchy) if hierarchy is not None else list(DEFAULT_HIERARCHY)
        self._paths = self._resolve_paths()

    def _resolve_paths(self) -> List[Tuple[str, str]]:
        paths = []
        for level in self.hierarchy:
            path = interpolate(level, self.node)
            if path is not None:
                paths.append((level, path))
        return paths

    @property
    def paths(self) -> List[str]:
        """Level paths consulted for this node, most specific first."""
        return [path for _, path in self._paths]

    def _values(self, key: str) -> List[Tuple[str, Any]]:
        found = []
        for _, path in self._paths:
            data = self.source.load(path)
            if data is not None and key in data:
                found.append((path, data[key]))
        return found

    def get(
        self,
        key: str,
        expected_type: Any = Any,
        default: Any = NO_DEFAULT,
        merge: MergeStrategy = MergeStrategy.FIRST,
    ) -> Any:
        """
        Look up a key. Returns ``default`` when no level defines it.

        Raises LookupKeyError when the key is missing and no default was
        given; LookupTypeError when the value does not match ``expected_type``.
        """
        merge = MergeStrategy(merge)
        found = self._values(key)
        if not found:
            if default is NO_DEFAULT:
                raise LookupKeyError(
                    key,
                    f"Key {key} not found for {self.node.certname} "
                    f"in levels {self.paths}.",
                )
            return default

        if merge == MergeStrategy.FIRST:
            value = found[0][1]
        elif merge == MergeStrategy.UNIQUE:
            value = self._merge_unique(key, found)
        else:
            value = self._merge_hash(key, found)

        logger.debug(
            "Lookup %s for %s answered by %s",
            key, self.node.certname, [path for path, _ in found],
        )
        return self._check_type(key, value, expected_type)

    def lookup_parameter(
        self,
        unit: str,
        parameter: str,
        expected_type: Any = Any,
        default: Any = NO_DEFAULT,
    ) -> Any:
        """Look up ``<unit>::<parameter>``."""
        return self.get(unit_parameter_key(unit, parameter), expected_type, default)

    def has(self, key: str) -> bool:
        return bool(self._values(key))

    def explain(self, key: str) -> List[dict]:
        """Every level consulted for the key, in order, and whether it answered."""
        explanation = []
        for level, path in self._paths:
            data = self.source.load(path)
            entry = {"level": level, "path": path, "found": bool(data) and key in data}
            if entry["found"]:
                entry["value"] = data[key]
            explanation.append(entry)
        return explanation

    def _merge_unique(self, key: str, found: List[Tuple[str, Any]]) -> list:
        merged: list = []
        for path, value in found:
            items = value if isinstance(value, list) else [value]
            for item in items:
                if item not in merged:
                    merged.append(item)
        return merged

    def _merge_hash(self, key: str, found: List[Tuple[str, Any]]) -> dict:
        merged: dict = {}
        # Least specific first so more specific levels overwrite
        for path, value in reversed(found):
            if not isinstance(value, dict):
                raise LookupTypeError(
                    key,
                    f"Hash merge of {key} needs mappings; level {path} has "
                    f"{type(value).__name__}.",
                )
            merged.update(value)
        return merged

    def _check_type(self, key: str, value: Any, expected_type: Any) -> Any:
        if expected_type is Any:
            return value
        try:
            return type_adapter(expected_type).validate_python(value, strict=True)
        except ValidationError as e:
            raise LookupTypeError(
                key,
                f"Value of {key} for {self.node.certname} does not match "
                f"{getattr(expected_type, '__name__', expected_type)}: "
                f"{e.errors()[0]['msg']}",
            ) from e


class Hierarchy:
    """A data source plus level templates; hands out node-scoped services."""

    def __init__(self, source: DataSource, levels: Optional[List[str]] = None):
        self.source = source
        self.levels = list(levels) if levels is not None else list(DEFAULT_HIERARCHY)

    def for_node(self, node: Node) -> LookupService:
        return LookupService(self.source, node, self.levels)
