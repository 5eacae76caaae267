# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

from collections.abc import Buffer, Iterable, Iterator
from io import BytesIO
from typing import Any, NamedTuple, NoReturn, Self

from amp.python import reprproxy

from .datamodel import DataWireAdapter, resolve_adapter
from .elements import Record
from .exceptions import MalformedDataError, RemoteError, UnsupportedError
from .wire import WireData, decode_pairs, encode_pairs, read_pairs

__all__ = 'Box', 'BoxEntry', 'decode_box', 'encode_box'  # noqa: RUF022


type Key = str | Buffer
type Value = str | Buffer


def _as_bytes(data: Key | Value) -> bytes:
    # text keys and values are taken byte-per-char, like header identifiers
    if isinstance(data, str):
        return data.encode('iso-8859-1')
    return bytes(data)


class BoxEntry(NamedTuple):
    key: bytes
    value: bytes

    def set_value(self, value: Value) -> NoReturn:
        raise UnsupportedError('Box entries cannot be modified')


class Box:  # noqa: PLW1641
    """
    An AMP box: an ordered sequence of key/value pairs of byte strings.

    This is an ordered multimap rather than a mapping: pairs are kept in
    insertion order, the same key can be added more than once, and looking
    up a key returns the value of its first occurrence. A box can only be
    modified by adding pairs at the end or by removing them by key.

    Keys and values can be given as bytes-like objects or as strings, which
    are encoded as ISO-8859-1 (one byte per character).
    """

    __hash__ = None  # type: ignore[assignment]

    _error_code_key = b'_error_code'
    _error_description_key = b'_error_description'

    def __init__(self, pairs: Iterable[tuple[Key, Value]] = (), /) -> None:
        self._pairs: list[BoxEntry] = []
        self.put_all(pairs)

    def __repr__(self) -> str:
        return f'{self.__class__.__qualname__}([{', '.join(f'({reprproxy(key)!r}, {reprproxy(value)!r})' for key, value in self._pairs)}])'

    def __len__(self) -> int:
        return len(self._pairs)

    def __iter__(self) -> Iterator[BoxEntry]:
        return iter(self._pairs)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str | Buffer) and self.contains_key(key)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Box):
            return all(other.get(key) == value for key, value in self._pairs) and all(self.get(key) == value for key, value in other._pairs)
        return NotImplemented

    @staticmethod
    def as_string(data: Buffer) -> str:
        """Return the byte-per-char (ISO-8859-1) text of data"""
        return bytes(data).decode('iso-8859-1')

    # Lookup

    def get(self, key: Key, default: bytes | None = None) -> bytes | None:
        key = _as_bytes(key)
        for entry in self._pairs:
            if entry.key == key:
                return entry.value
        return default

    def contains_key(self, key: Key) -> bool:
        return self.get(key) is not None

    def contains_value(self, value: Value) -> bool:
        value = _as_bytes(value)
        return any(entry.value == value for entry in self._pairs)

    def is_empty(self) -> bool:
        return not self._pairs

    def keys(self) -> list[bytes]:
        return [entry.key for entry in self._pairs]

    def values(self) -> list[bytes]:
        return [entry.value for entry in self._pairs]

    def entries(self) -> list[BoxEntry]:
        return list(self._pairs)

    # Modification

    def put(self, key: Key, value: Value) -> None:
        """Add a pair at the end of the box (existing pairs with the same key are kept)"""
        self._pairs.append(BoxEntry(_as_bytes(key), _as_bytes(value)))

    def put_all(self, pairs: Iterable[tuple[Key, Value]]) -> None:
        for key, value in pairs:
            self.put(key, value)

    def remove(self, key: Key) -> bytes | None:
        """Remove the first pair with the given key and return its value"""
        key = _as_bytes(key)
        for index, entry in enumerate(self._pairs):
            if entry.key == key:
                del self._pairs[index]
                return entry.value
        return None

    def clear(self) -> NoReturn:
        raise UnsupportedError('Boxes cannot be cleared')

    # The wire representation

    @classmethod
    def from_wire(cls, buffer: WireData) -> Self:
        if isinstance(buffer, BytesIO):
            return cls(read_pairs(buffer))
        return cls(decode_pairs(buffer))

    def to_wire(self) -> bytes:
        return encode_pairs(self._pairs)

    def wire_length(self) -> int:
        return sum(4 + len(key) + len(value) for key, value in self._pairs) + 2

    # Typed values

    @classmethod
    def from_record(cls, record: Record) -> Self:
        box = cls()
        box.fill_from(record)
        return box

    def fill_from(self, record: Record) -> None:
        """Add the attributes of record to the box, in declaration order"""
        if not isinstance(record, Record):
            raise MalformedDataError(f'Cannot extract attributes from {record.__class__.__qualname__!r} object (not a record)')
        self.put_all(record.to_pairs())

    def fill_into[R: Record](self, record: R) -> R:
        """Decode the attributes of record that are present in the box and assign them to it"""
        if not isinstance(record, Record):
            raise MalformedDataError(f'Cannot fill in attributes of {record.__class__.__qualname__!r} object (not a record)')
        record.update_from(self._pairs)
        return record

    def put_value(self, key: Key, value: Any, value_type: Any = None) -> None:  # noqa: ANN401
        """Encode value according to value_type (by default the type of value) and add it to the box"""
        if value is None:
            return
        adapter: type[DataWireAdapter] = resolve_adapter(value.__class__ if value_type is None else value_type)
        self.put(key, adapter.to_wire(adapter.validate(value)))

    def get_value(self, key: Key, value_type: Any) -> Any:  # noqa: ANN401
        """Return the decoded value of key, or None if the key is missing"""
        data = self.get(key)
        if data is None:
            return None
        return resolve_adapter(value_type).from_wire(data)

    # Errors

    def fill_error(self) -> RemoteError | None:
        """Return the error reported by the remote peer, or None if the box does not report an error"""
        code = self.get_value(self._error_code_key, str)
        if code is None:
            return None
        return RemoteError(code, self.get_value(self._error_description_key, str) or '')

    def put_error(self, error: RemoteError) -> None:
        self.put_value(self._error_code_key, error.code, str)
        self.put_value(self._error_description_key, error.description, str)


def decode_box(data: WireData) -> Box:
    """Decode data that holds exactly one box"""
    return Box.from_wire(data)


def encode_box(box: Box) -> bytes:
    return box.to_wire()
