# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
AMP box framing.

   A box is a sequence of key/value pairs. Each key and each value is
   sent as a 16-bit big-endian unsigned length followed by that many
   bytes. The box ends with a zero length in the position of a key:

     +--------+-----+--------+-------+--  ...  --+--------+
     | klen16 | key | vlen16 | value |   ...     | 0x0000 |
     +--------+-----+--------+-------+--  ...  --+--------+

   There is no header, no escaping and no padding. Because a zero key
   length ends the box, keys cannot be empty. Values can be empty.

"""

from collections.abc import Buffer, Iterable, Iterator
from io import SEEK_END, BytesIO

from amp.configuration import get_configuration

from .exceptions import LengthOverflowError, MalformedDataError, TruncatedDataError

__all__ = (  # noqa: RUF022
    'MAX_LENGTH',
    'LENGTH_SIZE',
    'TERMINATOR',
    'WireData',

    'write_chunk',
    'read_length',
    'read_chunk',

    'encode_pairs',
    'read_pairs',
    'decode_pairs',
    'iter_frames',
)


MAX_LENGTH = 0xFFFF
LENGTH_SIZE = 2
TERMINATOR = b'\x00\x00'

type WireData = bytes | bytearray | memoryview | BytesIO


def write_chunk(stream: BytesIO, data: Buffer) -> None:
    """Write data to stream prefixed with its 16-bit length"""
    data = bytes(data)
    if len(data) > MAX_LENGTH:
        raise LengthOverflowError(f'Data is too long to be framed ({len(data)} > {MAX_LENGTH} bytes)')
    stream.write(len(data).to_bytes(LENGTH_SIZE, byteorder='big'))
    stream.write(data)


def read_length(buffer: BytesIO) -> int:
    length_data = buffer.read(LENGTH_SIZE)
    if len(length_data) < LENGTH_SIZE:
        raise TruncatedDataError('Insufficient data in buffer to extract a length prefix')
    return int.from_bytes(length_data, byteorder='big')


def read_chunk(buffer: BytesIO, length: int | None = None) -> bytes:
    """Read a length prefixed chunk from buffer (or only its payload if the length was already read)"""
    if length is None:
        length = read_length(buffer)
    data = buffer.read(length)
    if len(data) < length:
        raise TruncatedDataError(f'Insufficient data in buffer to extract {length} bytes (only {len(data)} available)')
    return data


def encode_pairs(pairs: Iterable[tuple[bytes, bytes]]) -> bytes:
    """Encode key/value pairs as a single box frame"""
    stream = BytesIO()
    for key, value in pairs:
        if not key:
            raise MalformedDataError('Cannot encode an empty key (a zero length key terminates the box)')
        write_chunk(stream, key)
        write_chunk(stream, value)
    stream.write(TERMINATOR)
    return stream.getvalue()


def read_pairs(buffer: BytesIO) -> list[tuple[bytes, bytes]]:
    """Read the pairs of one box frame, leaving the buffer positioned right after its terminator"""
    max_pairs = get_configuration().max_pairs
    pairs = []
    while key_length := read_length(buffer):
        if max_pairs is not None and len(pairs) >= max_pairs:
            raise MalformedDataError(f'The box has more than {max_pairs} key/value pairs')
        key = read_chunk(buffer, key_length)
        value = read_chunk(buffer)
        pairs.append((key, value))
    return pairs


def decode_pairs(data: WireData) -> list[tuple[bytes, bytes]]:
    """Decode data that holds exactly one box frame"""
    buffer = data if isinstance(data, BytesIO) else BytesIO(data)
    pairs = read_pairs(buffer)
    if trailing := buffer.read():
        raise MalformedDataError(f'Found {len(trailing)} unexpected bytes after the box terminator')
    return pairs


def iter_frames(data: WireData) -> Iterator[list[tuple[bytes, bytes]]]:
    """Decode consecutive box frames until the data is exhausted"""
    buffer = data if isinstance(data, BytesIO) else BytesIO(data)
    position = buffer.tell()
    end = buffer.seek(0, SEEK_END)
    buffer.seek(position)
    while buffer.tell() < end:
        yield read_pairs(buffer)
