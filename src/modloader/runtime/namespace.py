"""
Module Namespace

Immutable view of a module's exports. Built once, when the module finishes
evaluating, and never exposed before that.

Exports are reachable as attributes (`ns.arr`) and by key (`ns["arr"]`).
Apart from dunder protocol methods the object has no attributes of its own,
so no export can be shadowed by an inherited member.
"""

from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional


class Namespace:
    __slots__ = ("__bindings", "__name")

    def __init__(self, bindings: Mapping[str, Any], name: Optional[str] = None):
        object.__setattr__(self, "_Namespace__bindings", MappingProxyType(dict(bindings)))
        object.__setattr__(self, "_Namespace__name", name)

    def __getattr__(self, key: str) -> Any:
        if key.startswith("_Namespace__"):
            raise AttributeError(key)
        try:
            return self.__bindings[key]
        except KeyError:
            raise AttributeError(f"module {self.__name!r} has no export {key!r}") from None

    def __getitem__(self, key: str) -> Any:
        return self.__bindings[key]

    def __contains__(self, key: object) -> bool:
        return key in self.__bindings

    def __iter__(self) -> Iterator[str]:
        return iter(self.__bindings)

    def __len__(self) -> int:
        return len(self.__bindings)

    def __dir__(self):
        return list(self.__bindings)

    def __setattr__(self, key: str, value: Any) -> None:
        raise TypeError(f"Cannot assign export {key!r}: module namespaces are immutable")

    def __delattr__(self, key: str) -> None:
        raise TypeError(f"Cannot delete export {key!r}: module namespaces are immutable")

    def __repr__(self) -> str:
        return f"<Namespace {self.__name or '<anonymous>'} exports={list(self.__bindings)}>"


def namespace_name(namespace: Namespace) -> Optional[str]:
    return object.__getattribute__(namespace, "_Namespace__name")


def namespace_dict(namespace: Namespace) -> Dict[str, Any]:
    """Plain-dict copy of the exports."""
    return {key: namespace[key] for key in namespace}
