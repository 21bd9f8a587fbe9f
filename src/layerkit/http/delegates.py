"""Attribute delegation between the context and its request/response views."""

from __future__ import annotations

from typing import Any


class Delegate:
    """Descriptor forwarding an attribute to ``getattr(instance, target)``.

    Example:
        >>> class Context:
        ...     body = Delegate("response")
        ...     header_sent = Delegate("response", readonly=True)
        ...     accepts = Delegate("request")  # methods come back bound
    """

    __slots__ = ("target", "name", "readonly")

    def __init__(self, target: str, name: str | None = None, *, readonly: bool = False) -> None:
        self.target = target
        self.name = name
        self.readonly = readonly

    def __set_name__(self, owner: type, name: str) -> None:
        if self.name is None:
            self.name = name

    def __get__(self, obj: object, objtype: type | None = None) -> Any:
        if obj is None:
            return self
        return getattr(getattr(obj, self.target), self.name)

    def __set__(self, obj: object, value: Any) -> None:
        if self.readonly:
            raise AttributeError(f"{self.name!r} is read-only")
        setattr(getattr(obj, self.target), self.name, value)

    def __repr__(self) -> str:
        return f"Delegate({self.target}.{self.name})"
