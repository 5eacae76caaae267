# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import logging
from collections.abc import Iterable, Mapping, Sequence
from inspect import Parameter, Signature
from io import BytesIO
from typing import Any, ClassVar, Self, dataclass_transform, overload

from amp.configuration import get_configuration
from amp.python import reprproxy

from .datamodel import DataWireAdapter, resolve_adapter
from .exceptions import CodecError, MalformedDataError
from .wire import WireData, decode_pairs, encode_pairs, read_pairs

__all__ = 'Record', 'AnnotatedRecord', 'Element', 'ListElement'  # noqa: RUF022


log = logging.getLogger(__name__)

type DataWireAdapterType[T] = type[DataWireAdapter[T]]


class Record:  # noqa: PLW1641
    """
    A set of named, typed attributes that map to the key/value pairs of an AMP box.

    The attributes are declared with Element (or ListElement) descriptors and
    are encoded in the order in which they were declared, inherited ones first.
    The attribute name (UTF-8 encoded) is used as the key. Attributes that
    are None are absent from the wire.

    Records are self-delimiting on the wire (their pairs are followed by a
    terminator), so they can also be nested inside other records, either
    as single items or as lists of items.
    """

    __signature__: ClassVar[Signature] = Signature()

    _fields_: ClassVar[dict[str, 'Element']] = {}

    _all_arguments: ClassVar[frozenset[str]]
    _mandatory_arguments: ClassVar[frozenset[str]]
    _default_arguments: ClassVar[dict[str, object]]

    def __new__(cls, **kw: object) -> Self:
        if not cls._all_arguments.issuperset(kw):
            raise TypeError(f'Got an unexpected keyword argument {next(iter(set(kw) - cls._all_arguments))!r}')
        if not cls._mandatory_arguments.issubset(kw):
            raise TypeError(f'Missing a required keyword argument {next(iter(cls._mandatory_arguments - set(kw)))!r}')
        return super().__new__(cls)

    def __init__(self, **kw: object) -> None:
        kw = self._default_arguments | kw
        for name in self._fields_:
            setattr(self, name, kw[name])

    def __init_subclass__(cls, **kw: object) -> None:
        super().__init_subclass__(**kw)

        # all the fields of this record (both inherited and locally defined)
        fields = cls._fields_ | {name: value for name, value in cls.__dict__.items() if isinstance(value, Element)}

        cls._fields_ = fields

        cls.__signature__ = Signature(parameters=[descriptor.signature_parameter for descriptor in fields.values()])
        cls._all_arguments = frozenset(cls.__signature__.parameters)
        cls._mandatory_arguments = frozenset(p.name for p in cls.__signature__.parameters.values() if p.default is Parameter.empty)
        cls._default_arguments = {p.name: p.default for p in cls.__signature__.parameters.values() if p.default is not Parameter.empty}

    def __repr__(self) -> str:
        return f'{self.__class__.__qualname__}({', '.join(f'{name}={self.__dict__.get(name)!r}' for name in self._fields_)})'

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Record):
            return self.__class__ is other.__class__ and all(self.__dict__.get(name) == other.__dict__.get(name) for name in self._fields_)
        return NotImplemented

    # The key/value view of the record

    def to_pairs(self) -> list[tuple[bytes, bytes]]:
        """Return the encoded (name, value) pairs of the attributes that are not None"""
        pairs = []
        for field in self._fields_.values():
            value = field.to_wire(self)
            if value is not None:
                pairs.append((field.key, value))
        return pairs

    def update_from(self, pairs: Iterable[tuple[bytes, bytes]] | Mapping[bytes, bytes]) -> None:
        """
        Decode the attributes present in pairs and assign them to the record.

        All the attributes are decoded before any of them is assigned, so if
        decoding fails the record is left unchanged.
        """

        values = self._decode_values(self._collect(pairs))
        for name, value in values.items():
            self.__dict__[name] = value

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[bytes, bytes]] | Mapping[bytes, bytes]) -> Self:
        """
        Build a new record from pairs.

        Attributes missing from pairs take their default value, or None if
        they were declared without a default (the same as an attribute that
        was None when the record was encoded).
        """

        values = cls._decode_values(cls._collect(pairs))
        instance = super().__new__(cls)
        for name in cls._fields_:
            if name in values:
                instance.__dict__[name] = values[name]
            else:
                setattr(instance, name, cls._default_arguments.get(name))
        return instance

    # The wire representation of the record as a nested item

    @classmethod
    def from_wire(cls, buffer: WireData) -> Self:
        if isinstance(buffer, BytesIO):
            return cls.from_pairs(read_pairs(buffer))
        return cls.from_pairs(decode_pairs(buffer))

    def to_wire(self) -> bytes:
        return encode_pairs(self.to_pairs())

    # Helpers

    @classmethod
    def _collect(cls, pairs: Iterable[tuple[bytes, bytes]] | Mapping[bytes, bytes]) -> dict[bytes, bytes]:
        # The first occurrence of a key wins, the same as a box lookup.
        collected: dict[bytes, bytes] = {}
        for key, value in pairs.items() if isinstance(pairs, Mapping) else pairs:
            collected.setdefault(bytes(key), bytes(value))
        return collected

    @classmethod
    def _decode_values(cls, data: dict[bytes, bytes]) -> dict[str, Any]:
        values = {}
        for name, field in cls._fields_.items():
            if (value_data := data.pop(field.key, None)) is not None:
                values[name] = field.from_wire(cls, value_data)
        if data:
            if get_configuration().strict_items:
                raise MalformedDataError(f'Unknown attributes for {cls.__qualname__!r}: {', '.join(repr(key) for key in data)}')
            log.debug('Dropping unknown attributes for %s: %s', cls.__qualname__, ', '.join(repr(key) for key in data))
        return values


class Element[T]:
    """
    An attribute of a record.

    The element type is either a type with an associated adapter (int, str,
    bytes, bytearray, bool, float, Decimal, datetime), a record type, or a
    list of any of these described as list[T] (list[list[int]] for nested
    lists). None is always accepted and means the attribute is absent.
    """

    name: str | None
    type: Any
    default: T | None
    adapter: DataWireAdapterType[T]

    @overload
    def __init__(self, element_type: type[T], /, *, default: T | None = ..., adapter: DataWireAdapterType[T] | None = ...) -> None: ...

    @overload
    def __init__(self, element_type: Any, /, *, default: T | None = ..., adapter: DataWireAdapterType[T] | None = ...) -> None: ...  # noqa: ANN401

    def __init__(self, element_type: Any, /, *, default: T | None = NotImplemented, adapter: DataWireAdapterType[T] | None = None) -> None:
        self.name = None
        self.type = element_type
        self.default = default
        self.provided_adapter = adapter
        if adapter is None:
            adapter = resolve_adapter(element_type)
        if adapter._abstract_:
            raise TypeError(f'Cannot use abstract adapter {adapter.__qualname__!r}')
        self.adapter = adapter

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({reprproxy(self.type)!r}, default={self.default!r}, adapter={reprproxy(self.provided_adapter)!r})'

    def __set_name__(self, owner: type[Record], name: str) -> None:
        if self.name is None:
            self.name = name
        elif name != self.name:
            raise TypeError(f'Cannot assign the same {self.__class__.__qualname__!r} to two different names: {self.name!r} and {name!r}')

    @overload
    def __get__(self, instance: None, owner: type[Record]) -> Self: ...

    @overload
    def __get__(self, instance: Record, owner: type[Record] | None = None) -> T | None: ...

    def __get__(self, instance: Record | None, owner: type[Record] | None = None) -> Self | T | None:
        if instance is None:
            return self
        if self.name is None:
            raise TypeError(f'Cannot use {self.__class__.__qualname__!r} instance without calling __set_name__ on it.')
        try:
            return instance.__dict__[self.name]
        except KeyError as exc:
            raise AttributeError(f'Attribute {self.name!r} of object {instance.__class__.__qualname__!r} is not set') from exc

    def __set__(self, instance: Record, value: T | None) -> None:
        if self.name is None:
            raise TypeError(f'Cannot use {self.__class__.__qualname__!r} instance without calling __set_name__ on it.')
        instance.__dict__[self.name] = None if value is None else self.adapter.validate(value)

    def __delete__(self, instance: Record) -> None:
        raise AttributeError(f'Attribute {self.name!r} of {instance.__class__.__qualname__!r} object cannot be deleted')

    @property
    def key(self) -> bytes:
        if self.name is None:
            raise TypeError(f'Cannot use {self.__class__.__qualname__!r} instance without calling __set_name__ on it.')
        return self.name.encode('utf-8')

    @property
    def signature_parameter(self) -> Parameter:
        assert self.name is not None  # noqa: S101 (used by type checkers)
        kwds = {} if self.default is NotImplemented else {'default': self.default}
        return Parameter(name=self.name, kind=Parameter.KEYWORD_ONLY, annotation=self.type, **kwds)

    def from_wire(self, owner: type[Record], data: bytes) -> T:
        try:
            return self.adapter.from_wire(data)
        except CodecError as exc:
            raise exc.__class__(f'Failed to decode {owner.__qualname__}.{self.name}: {exc}') from exc

    def to_wire(self, instance: Record) -> bytes | None:
        value = instance.__dict__.get(self.name)
        if value is None:
            return None
        try:
            return self.adapter.to_wire(value)
        except CodecError as exc:
            raise exc.__class__(f'Failed to encode {instance.__class__.__qualname__}.{self.name}: {exc}') from exc


class ListElement[T](Element[list[T]]):
    """
    A list attribute of a record. ListElement(T) is the same as Element(list[T]).

    While the list terminator is enabled in the codec configuration, an item
    cannot have an empty encoding, because a zero length ends the list. This
    rules out items like '' in list[str], b'' in list[bytes] and an empty
    inner list of records in list[list[Record]]; encoding them raises
    MalformedDataError. Lists of records (ListElement(Record)) are not
    affected, since every record is followed by its own terminator.
    """

    item_type: Any

    def __init__(self, item_type: Any, /, *, default: Sequence[T] | None = NotImplemented) -> None:  # noqa: ANN401
        super().__init__(list[item_type], default=default)  # type: ignore[arg-type]
        self.item_type = item_type

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({reprproxy(self.item_type)!r}, default={self.default!r})'


@dataclass_transform(kw_only_default=True, field_specifiers=(Element, ListElement))
class AnnotatedRecord(Record):
    pass
