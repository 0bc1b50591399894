"""IPSO object machinery for the gateway's JSON payload schema.

The gateway encodes every property under a numeric string key (the
*IPSO key*): ``{"9001": "Kitchen", "5850": 1, ...}``.  Domain objects
are plain dataclasses whose wire fields are declared with
:func:`ipso_field`, which records the key and the conversion rules in
the dataclass field metadata::

    @dataclass
    class Light(IpsoObject):
        on_off: bool = ipso_field("5850", default=False,
                                  from_wire=bool, to_wire=int)

:class:`IpsoObject` then provides generic parsing, serialization,
copying and merging; :mod:`pyTradfriClient.patch` diffs two objects
field by field.

Field options
~~~~~~~~~~~~~

``required``
    Always sent when the enclosing object is part of a patch, even if
    unchanged (e.g. the transition time of a light).
``read_only``
    Parsed but never sent (e.g. creation timestamps).
``nested`` / ``many``
    The value is another :class:`IpsoObject` (or a list of them).
"""

from __future__ import annotations

import copy
import dataclasses
from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    Dict,
    Iterator,
    Mapping,
    Optional,
    Tuple,
    Type,
    TypeVar,
)

T = TypeVar("T", bound="IpsoObject")

#: Metadata key under which :func:`ipso_field` stores its spec.
_METADATA_KEY = "ipso"


@dataclass(frozen=True)
class IpsoFieldSpec:
    """Wire description of one dataclass field.

    Attributes
    ----------
    key:
        The IPSO key (``"5850"``).
    required:
        Include in every non-empty patch of the enclosing object.
    read_only:
        Never include in a patch.
    from_wire / to_wire:
        Value converters applied when parsing / serializing.
    nested:
        :class:`IpsoObject` subclass of the value, if any.
    many:
        The value is a list of *nested* objects.
    """

    key: str
    required: bool = False
    read_only: bool = False
    from_wire: Optional[Callable[[Any], Any]] = None
    to_wire: Optional[Callable[[Any], Any]] = None
    nested: Optional[Type["IpsoObject"]] = None
    many: bool = False


def ipso_field(
    key: str,
    *,
    default: Any = None,
    default_factory: Optional[Callable[[], Any]] = None,
    required: bool = False,
    read_only: bool = False,
    from_wire: Optional[Callable[[Any], Any]] = None,
    to_wire: Optional[Callable[[Any], Any]] = None,
    nested: Optional[Type["IpsoObject"]] = None,
    many: bool = False,
) -> Any:
    """Declare a dataclass field that maps to IPSO key *key*."""
    spec = IpsoFieldSpec(
        key=key,
        required=required,
        read_only=read_only,
        from_wire=from_wire,
        to_wire=to_wire,
        nested=nested,
        many=many,
    )
    metadata = {_METADATA_KEY: spec}
    if default_factory is not None:
        return field(default_factory=default_factory, metadata=metadata)
    return field(default=default, metadata=metadata)


def ipso_fields(obj: Any) -> Iterator[Tuple[str, IpsoFieldSpec]]:
    """Yield ``(attribute name, spec)`` for every wire field of *obj*."""
    for f in dataclasses.fields(obj):
        spec = f.metadata.get(_METADATA_KEY)
        if spec is not None:
            yield f.name, spec


def enum_or_value(enum_cls: Type[Any]) -> Callable[[Any], Any]:
    """Converter returning an *enum_cls* member, or the raw value if unknown."""

    def convert(value: Any) -> Any:
        try:
            return enum_cls(value)
        except ValueError:
            return value

    return convert


def serialize_value(spec: IpsoFieldSpec, value: Any) -> Any:
    """Convert one attribute value to its wire representation."""
    if value is None:
        return None
    if spec.nested is not None:
        if spec.many:
            return [item.serialize() for item in value]
        return value.serialize()
    if spec.to_wire is not None:
        return spec.to_wire(value)
    return value


class IpsoObject:
    """Mixin for dataclasses describing an IPSO payload."""

    @classmethod
    def parse(cls: Type[T], raw: Any) -> T:
        """Build an instance from a decoded JSON payload.

        Unknown keys are ignored; missing keys keep their defaults.

        Raises
        ------
        ValueError
            If *raw* is not a JSON object.
        """
        if not isinstance(raw, Mapping):
            raise ValueError(
                f"Cannot parse {cls.__name__} from {type(raw).__name__}"
            )
        kwargs: Dict[str, Any] = {}
        for name, spec in ipso_fields(cls):
            if spec.key not in raw:
                continue
            value = raw[spec.key]
            if value is not None:
                if spec.nested is not None:
                    if spec.many:
                        value = [spec.nested.parse(item) for item in value]
                    else:
                        value = spec.nested.parse(value)
                elif spec.from_wire is not None:
                    value = spec.from_wire(value)
            kwargs[name] = value
        return cls(**kwargs)

    def serialize(self) -> Dict[str, Any]:
        """Return the complete wire representation (non-``None`` fields)."""
        result: Dict[str, Any] = {}
        for name, spec in ipso_fields(self):
            value = getattr(self, name)
            if value is None:
                continue
            result[spec.key] = serialize_value(spec, value)
        return result

    def clone(self: T) -> T:
        """Return a deep copy."""
        return copy.deepcopy(self)

    def merge(self: T, changes: Mapping[str, Any]) -> T:
        """Set the attributes named in *changes*.  Returns ``self``.

        Raises
        ------
        ValueError
            If *changes* names an attribute that is not a wire field.
        """
        known = {name for name, _ in ipso_fields(self)}
        for name, value in changes.items():
            if name not in known:
                raise ValueError(
                    f"{type(self).__name__} has no property {name!r}"
                )
            setattr(self, name, value)
        return self
