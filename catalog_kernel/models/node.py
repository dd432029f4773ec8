"""Node — a managed machine and the facts discovered on it."""

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator


_MISSING = object()


def _read_only(self, *args, **kwargs):
    raise TypeError("Node facts are read-only")


class FrozenFacts(dict):
    """A dict that refuses every mutation. Serializes like a plain dict."""

    __setitem__ = __delitem__ = __ior__ = _read_only
    clear = pop = popitem = setdefault = update = _read_only

    def __reduce__(self):
        return (type(self), (dict(self),))

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


class FrozenList(list):
    """A list that refuses every mutation."""

    __setitem__ = __delitem__ = __iadd__ = __imul__ = _read_only
    append = extend = insert = pop = remove = clear = sort = reverse = _read_only

    def __reduce__(self):
        return (type(self), (list(self),))

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


def freeze(value: Any) -> Any:
    """Read-only copy of nested dicts and lists; other values as they are."""
    if isinstance(value, dict):
        return FrozenFacts((k, freeze(v)) for k, v in value.items())
    if isinstance(value, (list, tuple)):
        return FrozenList(freeze(v) for v in value)
    return value


class Node(BaseModel):
    """A node identity plus an immutable snapshot of its facts."""

    model_config = ConfigDict(frozen=True)

    certname: str                           # e.g., "ci01.example.com"
    facts: Dict[str, Any] = Field(default_factory=FrozenFacts)  # Snapshot taken before evaluation

    @field_validator("facts", mode="after")
    @classmethod
    def _freeze_facts(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        return freeze(v)

    def fact(self, path: str, default: Any = None) -> Any:
        """
        Read a fact by dotted path, e.g. ``memory.system.total_mb``.

        ``certname`` always resolves to the node identity.
        """
        if path == "certname":
            return self.certname
        value: Any = self.facts
        for part in path.split("."):
            if not isinstance(value, dict):
                return default
            value = value.get(part, _MISSING)
            if value is _MISSING:
                return default
        return value

    def has_fact(self, path: str) -> bool:
        return self.fact(path, _MISSING) is not _MISSING
