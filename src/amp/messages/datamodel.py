# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import re
from collections.abc import Buffer, MutableMapping, Sequence
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from functools import cache
from io import BytesIO
from math import inf, isinf, isnan, nan
from types import new_class
from typing import Any, ClassVar, Protocol, Self, get_args, get_origin, runtime_checkable

from amp.configuration import get_configuration
from amp.python import reprproxy

from .exceptions import MalformedDataError, MissingElementTypeError, TypeMismatchError, UnsupportedError
from .wire import TERMINATOR, WireData, read_chunk, read_length, write_chunk

__all__ = (  # noqa: RUF022
    # Protocols

    'DataWireProtocol',
    'DataWireAdapter',

    # Adapters and the adapter registry

    'AdapterRegistry',

    'IntegerAdapter',
    'StringAdapter',
    'BytesAdapter',
    'ByteBufferAdapter',
    'BooleanAdapter',
    'FloatAdapter',
    'DecimalAdapter',
    'DateTimeAdapter',

    'ListAdapter',
    'FrameListAdapter',
    'ProtocolAdapter',

    'make_list_adapter',
    'make_protocol_adapter',
    'resolve_adapter',
)


# Protocols

@runtime_checkable
class DataWireProtocol(Protocol):
    """
    The wire protocol for self-delimiting AMP data (boxes and records).

    When given a BytesIO, from_wire reads one frame and leaves the buffer
    positioned after it. When given a bytes-like object, it must contain
    exactly one frame.
    """

    @classmethod
    def from_wire(cls, buffer: WireData) -> Self: ...

    def to_wire(self) -> bytes: ...


@runtime_checkable
class DataWireAdapter[T](Protocol):
    """Wire protocol adapter between an AMP value and the python type T"""

    _abstract_: ClassVar[bool] = True

    @staticmethod
    def from_wire(data: bytes) -> T: ...

    @staticmethod
    def to_wire(value: T, /) -> bytes: ...

    @staticmethod
    def validate(value: T, /) -> T: ...


class AdapterRegistry[T]:
    _adapters: ClassVar[MutableMapping[type, type[DataWireAdapter]]] = {}

    @classmethod
    def associate(cls, data_type: type[T], adapter: type[DataWireAdapter[T]]) -> None:
        if issubclass(data_type, DataWireProtocol):
            raise TypeError('Types that implement the DataWireProtocol do not need to be associated with an adapter')
        cls._adapters[data_type] = adapter

    @classmethod
    def get_adapter(cls, data_type: type[T]) -> type[DataWireAdapter[T]] | None:
        return cls._adapters.get(data_type, None)


# Helpers

def _ascii(data: bytes, type_name: str) -> str:
    try:
        return data.decode('ascii')
    except UnicodeDecodeError:
        raise TypeMismatchError(f'Invalid {type_name} value: {reprproxy(data)!r}') from None


# Scalar adapters

class IntegerAdapter:
    """Signed integers as decimal ASCII text"""

    _abstract_: ClassVar[bool] = False

    _decimal_pattern: ClassVar[re.Pattern[str]] = re.compile(r'[+-]?[0-9]+')
    _strict_pattern: ClassVar[re.Pattern[str]] = re.compile(r'-?[0-9]+')
    _hex_pattern: ClassVar[re.Pattern[str]] = re.compile(r'(?P<sign>[+-]?)(?:0[xX]|#)(?P<digits>[0-9a-fA-F]+)')
    _octal_pattern: ClassVar[re.Pattern[str]] = re.compile(r'(?P<sign>[+-]?)0(?P<digits>[0-9]+)')

    @classmethod
    def from_wire(cls, data: bytes) -> int:
        text = _ascii(data, 'integer')
        if get_configuration().strict_integers:
            if cls._strict_pattern.fullmatch(text):
                return int(text)
        elif match := cls._hex_pattern.fullmatch(text):
            return int(match['sign'] + match['digits'], 16)
        elif match := cls._octal_pattern.fullmatch(text):
            # a leading zero always means octal, so 08 and 09 are invalid
            if set(match['digits']).isdisjoint('89'):
                return int(match['sign'] + match['digits'], 8)
        elif cls._decimal_pattern.fullmatch(text):
            return int(text)
        raise TypeMismatchError(f'Invalid integer value: {reprproxy(data)!r}')

    @staticmethod
    def to_wire(value: int, /) -> bytes:
        return str(int(value)).encode('ascii')

    @staticmethod
    def validate(value: int, /) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f'Expected an integer, got {value.__class__.__qualname__!r}')
        return value


class StringAdapter:
    """Unicode strings as UTF-8"""

    _abstract_: ClassVar[bool] = False

    @staticmethod
    def from_wire(data: bytes) -> str:
        try:
            return data.decode('utf-8')
        except UnicodeDecodeError as exc:
            raise TypeMismatchError(f'Cannot decode bytes to string: {exc}') from exc

    @staticmethod
    def to_wire(value: str, /) -> bytes:
        return value.encode('utf-8')

    @staticmethod
    def validate(value: str, /) -> str:
        if not isinstance(value, str):
            raise TypeError(f'Expected a string, got {value.__class__.__qualname__!r}')
        return value


class BytesAdapter:
    _abstract_: ClassVar[bool] = False

    @staticmethod
    def from_wire(data: bytes) -> bytes:
        return bytes(data)

    @staticmethod
    def to_wire(value: bytes, /) -> bytes:
        return bytes(value)

    @staticmethod
    def validate(value: bytes, /) -> bytes:
        if isinstance(value, str) or not isinstance(value, Buffer):
            raise TypeError(f'Expected a bytes-like object, got {value.__class__.__qualname__!r}')
        return bytes(value)


class ByteBufferAdapter:
    """Mutable byte buffers. Both decoding and validation return a new buffer that holds a copy of the data."""

    _abstract_: ClassVar[bool] = False

    @staticmethod
    def from_wire(data: bytes) -> bytearray:
        return bytearray(data)

    @staticmethod
    def to_wire(value: bytearray, /) -> bytes:
        return bytes(value)

    @staticmethod
    def validate(value: bytearray, /) -> bytearray:
        if not isinstance(value, bytearray):
            raise TypeError(f'Expected a bytearray, got {value.__class__.__qualname__!r}')
        return bytearray(value)


class BooleanAdapter:
    """
    Booleans as the literal True or False.

    Anything other than True decodes as False, unless strict booleans
    are enabled in the codec configuration.
    """

    _abstract_: ClassVar[bool] = False

    @staticmethod
    def from_wire(data: bytes) -> bool:
        match bytes(data):
            case b'True':
                return True
            case b'False':
                return False
            case _ if get_configuration().strict_booleans:
                raise TypeMismatchError(f'Invalid boolean value: {reprproxy(data)!r}')
            case _:
                return False

    @staticmethod
    def to_wire(value: bool, /) -> bytes:  # noqa: FBT001
        return b'True' if value else b'False'

    @staticmethod
    def validate(value: bool, /) -> bool:  # noqa: FBT001
        if not isinstance(value, bool):
            raise TypeError(f'Expected a boolean, got {value.__class__.__qualname__!r}')
        return value


class FloatAdapter:
    """Double precision floats in their shortest round-trip form, with Inf, -Inf and nan for the special values"""

    _abstract_: ClassVar[bool] = False

    _pattern: ClassVar[re.Pattern[str]] = re.compile(r'[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?')

    @classmethod
    def from_wire(cls, data: bytes) -> float:
        text = _ascii(data, 'float')
        match text:
            case 'Inf':
                return inf
            case '-Inf':
                return -inf
            case 'nan':
                return nan
            case _ if cls._pattern.fullmatch(text):
                return float(text)
            case _:
                raise TypeMismatchError(f'Invalid float value: {reprproxy(data)!r}')

    @staticmethod
    def to_wire(value: float, /) -> bytes:
        if isnan(value):
            return b'nan'
        if isinf(value):
            return b'Inf' if value > 0 else b'-Inf'
        return repr(float(value)).encode('ascii')

    @staticmethod
    def validate(value: float, /) -> float:
        if isinstance(value, bool) or not isinstance(value, float | int):
            raise TypeError(f'Expected a float, got {value.__class__.__qualname__!r}')
        return float(value)


class DecimalAdapter:
    """Arbitrary precision decimals. Only finite values can be represented."""

    _abstract_: ClassVar[bool] = False

    _pattern: ClassVar[re.Pattern[str]] = re.compile(r'[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?')
    _unsupported: ClassVar[frozenset[str]] = frozenset({'Infinity', '-Infinity', 'NaN', '-NaN', 'sNaN', '-sNaN'})

    @classmethod
    def from_wire(cls, data: bytes) -> Decimal:
        text = _ascii(data, 'decimal')
        if text in cls._unsupported:
            raise UnsupportedError(f'Decimal value {text!r} is not supported')
        if not cls._pattern.fullmatch(text):
            raise TypeMismatchError(f'Invalid decimal value: {reprproxy(data)!r}')
        return Decimal(text)

    @staticmethod
    def to_wire(value: Decimal, /) -> bytes:
        if not value.is_finite():
            raise UnsupportedError(f'Decimal value {str(value)!r} is not supported')
        return str(value).encode('ascii')

    @staticmethod
    def validate(value: Decimal, /) -> Decimal:
        if not isinstance(value, Decimal):
            raise TypeError(f'Expected a Decimal, got {value.__class__.__qualname__!r}')
        return value


class DateTimeAdapter:
    """
    Timestamps as YYYY-MM-DDThh:mm:ss.ffffff±HH:MM

    Only timezone aware values can be encoded, and encoding always includes
    the UTC offset. Decoding also accepts the form without an offset and
    returns a naive datetime for it.
    """

    _abstract_: ClassVar[bool] = False

    _pattern: ClassVar[re.Pattern[str]] = re.compile(
        r'(?P<year>[0-9]{4})-(?P<month>[0-9]{2})-(?P<day>[0-9]{2})'
        r'T(?P<hour>[0-9]{2}):(?P<minute>[0-9]{2}):(?P<second>[0-9]{2})\.(?P<microsecond>[0-9]{6})'
        r'(?:(?P<sign>[+-])(?P<offset_hours>[0-9]{2}):(?P<offset_minutes>[0-9]{2}))?',
    )

    @classmethod
    def from_wire(cls, data: bytes) -> datetime:
        match = cls._pattern.fullmatch(_ascii(data, 'timestamp'))
        if match is None:
            raise TypeMismatchError(f'Unable to parse timestamp {reprproxy(data)!r}')
        tzinfo = None
        if match['sign'] is not None:
            offset_hours, offset_minutes = int(match['offset_hours']), int(match['offset_minutes'])
            if offset_hours > 23 or offset_minutes > 59:
                raise TypeMismatchError(f'Invalid UTC offset in timestamp {reprproxy(data)!r}')
            offset = timedelta(hours=offset_hours, minutes=offset_minutes)
            tzinfo = timezone(-offset if match['sign'] == '-' else offset)
        fields = ('year', 'month', 'day', 'hour', 'minute', 'second', 'microsecond')
        try:
            return datetime(*(int(match[name]) for name in fields), tzinfo=tzinfo)  # noqa: DTZ001
        except ValueError as exc:
            raise TypeMismatchError(f'Invalid timestamp {reprproxy(data)!r}: {exc}') from exc

    @staticmethod
    def to_wire(value: datetime, /) -> bytes:
        offset = value.utcoffset()
        if offset is None:
            raise TypeMismatchError(f'Cannot encode naive timestamp {value!r} (the UTC offset is unknown)')
        if offset % timedelta(minutes=1):
            raise TypeMismatchError(f'The UTC offset of {value!r} cannot be represented in whole minutes')
        sign = '-' if offset < timedelta(0) else '+'
        offset_hours, offset_minutes = divmod(abs(offset) // timedelta(minutes=1), 60)
        date = f'{value.year:04d}-{value.month:02d}-{value.day:02d}'
        time = f'{value.hour:02d}:{value.minute:02d}:{value.second:02d}.{value.microsecond:06d}'
        return f'{date}T{time}{sign}{offset_hours:02d}:{offset_minutes:02d}'.encode('ascii')

    @staticmethod
    def validate(value: datetime, /) -> datetime:
        if not isinstance(value, datetime):
            raise TypeError(f'Expected a datetime, got {value.__class__.__qualname__!r}')
        if value.utcoffset() is None:
            raise TypeError(f'Expected a timezone aware datetime, got naive {value!r}')
        return value


AdapterRegistry.associate(int, IntegerAdapter)
AdapterRegistry.associate(str, StringAdapter)
AdapterRegistry.associate(bytes, BytesAdapter)
AdapterRegistry.associate(bytearray, ByteBufferAdapter)
AdapterRegistry.associate(bool, BooleanAdapter)
AdapterRegistry.associate(float, FloatAdapter)
AdapterRegistry.associate(Decimal, DecimalAdapter)
AdapterRegistry.associate(datetime, DateTimeAdapter)


# Compound adapters

class ListAdapter:
    """
    Homogeneous lists, encoded as length prefixed chunks, one for each item.

    The list ends with a zero length, unless the list terminator is disabled
    in the codec configuration, in which case the list ends with the data.
    """

    _abstract_: ClassVar[bool] = True
    _item_adapter_: ClassVar[type[DataWireAdapter]] = NotImplemented

    def __init_subclass__(cls, *, item_adapter: type[DataWireAdapter] = NotImplemented, **kw: object) -> None:
        if item_adapter is not NotImplemented:
            if item_adapter._abstract_:
                raise TypeError(f'Cannot use abstract adapter {item_adapter.__qualname__!r} for the list items')
            cls._item_adapter_ = item_adapter
            cls._abstract_ = False
        super().__init_subclass__(**kw)

    @classmethod
    def from_wire(cls, data: bytes) -> list:
        buffer = BytesIO(data)
        items = []
        if get_configuration().list_terminator:
            while length := read_length(buffer):
                items.append(cls._item_adapter_.from_wire(read_chunk(buffer, length)))
            if trailing := buffer.read():
                raise MalformedDataError(f'Found {len(trailing)} unexpected bytes after the list terminator')
        else:
            while buffer.tell() < len(data):
                items.append(cls._item_adapter_.from_wire(read_chunk(buffer)))
        return items

    @classmethod
    def to_wire(cls, value: Sequence, /) -> bytes:
        terminated = get_configuration().list_terminator
        stream = BytesIO()
        for item in value:
            item_data = cls._item_adapter_.to_wire(item)
            if terminated and not item_data:
                raise MalformedDataError(f'Cannot encode {item!r} as a list item, because its empty encoding would terminate the list')
            write_chunk(stream, item_data)
        if terminated:
            stream.write(TERMINATOR)
        return stream.getvalue()

    @classmethod
    def validate(cls, value: Sequence, /) -> list:
        if isinstance(value, str | Buffer) or not isinstance(value, Sequence):
            raise TypeError(f'Expected a list, got {value.__class__.__qualname__!r}')
        return [cls._item_adapter_.validate(item) for item in value]


class FrameListAdapter[T: DataWireProtocol]:
    """
    Lists of self-delimiting items (records or boxes).

    Every item already ends with a terminator, so the items are simply
    concatenated and the list ends with the data.
    """

    _abstract_: ClassVar[bool] = True
    _type_: ClassVar[type[Any]] = NotImplemented

    def __init_subclass__(cls, *, item_type: type[T] = NotImplemented, **kw: object) -> None:
        if item_type is not NotImplemented:
            cls._type_ = item_type
            cls._abstract_ = False
        super().__init_subclass__(**kw)

    @classmethod
    def from_wire(cls, data: bytes) -> list[T]:
        buffer = BytesIO(data)
        items = []
        while buffer.tell() < len(data):
            items.append(cls._type_.from_wire(buffer))
        return items

    @classmethod
    def to_wire(cls, value: Sequence[T], /) -> bytes:
        return b''.join(item.to_wire() for item in value)

    @classmethod
    def validate(cls, value: Sequence[T], /) -> list[T]:
        if isinstance(value, str | Buffer) or not isinstance(value, Sequence):
            raise TypeError(f'Expected a list, got {value.__class__.__qualname__!r}')
        for item in value:
            if not isinstance(item, cls._type_):
                raise TypeError(f'Expected a list of {cls._type_.__qualname__!r} items, got an item of type {item.__class__.__qualname__!r}')
        return list(value)


class ProtocolAdapter[T: DataWireProtocol]:
    """Adapter for a single value of a type that implements the DataWireProtocol"""

    _abstract_: ClassVar[bool] = True
    _type_: ClassVar[type[Any]] = NotImplemented

    def __init_subclass__(cls, *, data_type: type[T] = NotImplemented, **kw: object) -> None:
        if data_type is not NotImplemented:
            cls._type_ = data_type
            cls._abstract_ = False
        super().__init_subclass__(**kw)

    @classmethod
    def from_wire(cls, data: bytes) -> T:
        return cls._type_.from_wire(bytes(data))

    @staticmethod
    def to_wire(value: T, /) -> bytes:
        return value.to_wire()

    @classmethod
    def validate(cls, value: T, /) -> T:
        if not isinstance(value, cls._type_):
            raise TypeError(f'Expected a {cls._type_.__qualname__!r} instance, got {value.__class__.__qualname__!r}')
        return value


def _is_protocol_type(data_type: object) -> bool:
    return isinstance(data_type, type) and issubclass(data_type, DataWireProtocol)


@cache
def make_protocol_adapter[T: DataWireProtocol](data_type: type[T]) -> type[ProtocolAdapter[T]]:
    return new_class(f'{data_type.__name__}Adapter', (ProtocolAdapter,), kwds={'data_type': data_type})


@cache
def make_list_adapter(item_type: object) -> type[ListAdapter] | type[FrameListAdapter]:
    """
    Return the adapter for list[item_type].

    Nested lists are described by nesting the item type (list[list[int]]),
    each nesting level consuming the head of the type path. Self-delimiting
    items (records) are not framed again by the list.
    """

    if _is_protocol_type(item_type):
        return new_class(f'{item_type.__name__}ListAdapter', (FrameListAdapter,), kwds={'item_type': item_type})  # type: ignore[union-attr]
    item_adapter = resolve_adapter(item_type)
    return new_class(f'ListAdapter[{reprproxy(item_type)!s}]', (ListAdapter,), kwds={'item_adapter': item_adapter})


@cache
def resolve_adapter(data_type: object) -> type[DataWireAdapter]:
    """Return the adapter for a declared element type"""

    if data_type is list or get_origin(data_type) is list:
        arguments = get_args(data_type)
        if len(arguments) != 1:
            raise MissingElementTypeError(f'Cannot resolve an adapter for {reprproxy(data_type)!r} without a single element type (use list[T])')
        return make_list_adapter(arguments[0])
    if not isinstance(data_type, type):
        raise TypeError(f'Unsupported element type: {reprproxy(data_type)!r}')
    if issubclass(data_type, DataWireProtocol):
        return make_protocol_adapter(data_type)
    adapter = AdapterRegistry.get_adapter(data_type)
    if adapter is None:
        raise TypeError(f'No adapter is associated with {reprproxy(data_type)!r}')
    return adapter
