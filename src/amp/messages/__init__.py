# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
AMP boxes and typed records.

   An AMP message is a box: an ordered list of key/value byte strings.
   Records describe the typed view of a box. Each record attribute is
   stored under its name, with its value encoded according to the type
   the attribute was declared with:

     class Point(AnnotatedRecord):
         x: Element[int] = Element(int)
         y: Element[int] = Element(int)

     class Plot(AnnotatedRecord):
         title: Element[str] = Element(str, default='')
         points: ListElement[Point] = ListElement(Point, default=())

     box = Box.from_record(Plot(title='line', points=[Point(x=0, y=0), Point(x=1, y=1)]))
     data = box.to_wire()
     plot = Plot.from_pairs(decode_box(data))

"""

from .box import Box, BoxEntry, decode_box, encode_box
from .datamodel import AdapterRegistry, DataWireAdapter, DataWireProtocol, resolve_adapter
from .elements import AnnotatedRecord, Element, ListElement, Record
from .exceptions import (
    CodecError,
    LengthOverflowError,
    MalformedDataError,
    MissingElementTypeError,
    RemoteError,
    TruncatedDataError,
    TypeMismatchError,
    UnsupportedError,
)

__all__ = (  # noqa: RUF022
    'Box',
    'BoxEntry',
    'decode_box',
    'encode_box',

    'Record',
    'AnnotatedRecord',
    'Element',
    'ListElement',

    'AdapterRegistry',
    'DataWireAdapter',
    'DataWireProtocol',
    'resolve_adapter',

    'CodecError',
    'TruncatedDataError',
    'LengthOverflowError',
    'MalformedDataError',
    'TypeMismatchError',
    'UnsupportedError',
    'MissingElementTypeError',
    'RemoteError',
)
