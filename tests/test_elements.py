# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import logging
from datetime import UTC, datetime
from decimal import Decimal
from inspect import signature
from io import BytesIO

import pytest

from amp.configuration import use_configuration
from amp.messages import AnnotatedRecord, Box, Element, ListElement, MalformedDataError, MissingElementTypeError, Record, TruncatedDataError, TypeMismatchError, decode_box


class Command(AnnotatedRecord):
    count: Element[int] = Element(int)
    name: Element[str] = Element(str)
    ok: Element[bool] = Element(bool, default=False)


class Item(AnnotatedRecord):
    a: Element[int] = Element(int)
    b: Element[str] = Element(str)


class Order(AnnotatedRecord):
    reference: Element[str] = Element(str)
    items: ListElement[Item] = ListElement(Item, default=())
    primary: Element[Item] = Element(Item, default=None)


class Sample(AnnotatedRecord):
    identifier: Element[bytes] = Element(bytes, default=None)
    buffer: Element[bytearray] = Element(bytearray, default=None)
    ratio: Element[float] = Element(float, default=None)
    amount: Element[Decimal] = Element(Decimal, default=None)
    when: Element[datetime] = Element(datetime, default=None)
    matrix: Element[list[list[int]]] = Element(list[list[int]], default=None)
    tags: ListElement[str] = ListElement(str, default=None)


class TestRecords:

    def test_declaration(self) -> None:
        assert list(Command._fields_) == ['count', 'name', 'ok']  # noqa: SLF001
        assert str(signature(Command)) == '(*, count: int, name: str, ok: bool = False)'
        assert Command.count.key == b'count'
        assert repr(Command.count) == 'Element(int, default=NotImplemented, adapter=None)'
        assert repr(Order.items) == 'ListElement(Item, default=())'

        class Extended(Command):
            extra: Element[int] = Element(int, default=0)

        assert list(Extended._fields_) == ['count', 'name', 'ok', 'extra']  # noqa: SLF001

    def test_construction(self) -> None:
        command = Command(count=7, name='test')
        assert command.count == 7
        assert command.name == 'test'
        assert command.ok is False
        assert command == Command(count=7, name='test', ok=False)
        assert command != Command(count=8, name='test')
        assert repr(command) == "Command(count=7, name='test', ok=False)"

        with pytest.raises(TypeError, match="Missing a required keyword argument 'name'"):
            Command(count=7)  # type: ignore[call-arg]
        with pytest.raises(TypeError, match="Got an unexpected keyword argument 'other'"):
            Command(count=7, name='test', other=1)  # type: ignore[call-arg]
        with pytest.raises(TypeError, match='Expected an integer'):
            Command(count='7', name='test')  # type: ignore[arg-type]
        with pytest.raises(AttributeError, match='cannot be deleted'):
            del command.count

        command.count = None  # type: ignore[assignment]
        assert command.count is None

    def test_record_to_box(self) -> None:
        box = Box.from_record(Command(count=7, name='a\xe9', ok=True))
        assert box.entries() == [(b'count', b'7'), (b'name', b'a\xc3\xa9'), (b'ok', b'True')]
        assert decode_box(box.to_wire()) == box

    def test_none_attributes_are_omitted(self) -> None:
        command = Command(count=7, name='test')
        command.name = None  # type: ignore[assignment]
        assert command.to_pairs() == [(b'count', b'7'), (b'ok', b'False')]
        assert Sample().to_pairs() == []

    def test_box_to_record(self) -> None:
        box = Box([('ok', 'True'), ('name', 'a\xc3\xa9'), ('count', '7')])
        assert Command.from_pairs(box) == Command(count=7, name='a\xe9', ok=True)

        # the first occurrence of a key wins
        box = Box([('count', '1'), ('count', '2'), ('name', 'x')])
        assert Command.from_pairs(box).count == 1

        # missing optional attributes take their default value
        assert Command.from_pairs(Box([('count', '1'), ('name', 'x')])).ok is False

        # missing attributes without a default are None, the same as when they were encoded
        command = Command.from_pairs(Box([('count', '1')]))
        assert command.name is None
        assert command == Command(count=1, name=None)  # type: ignore[arg-type]

    def test_all_types(self) -> None:
        sample = Sample(
            identifier=b'\x00\x01',
            buffer=bytearray(b'data'),
            ratio=0.25,
            amount=Decimal('99.95'),
            when=datetime(2023, 4, 5, 6, 7, 8, 9000, tzinfo=UTC),
            matrix=[[1, 2], [], [3]],
            tags=['a', 'b'],
        )
        box = Box.from_record(sample)
        assert box.keys() == [b'identifier', b'buffer', b'ratio', b'amount', b'when', b'matrix', b'tags']
        assert box.get('when') == b'2023-04-05T06:07:08.009000+00:00'
        assert box.get('tags') == b'\x00\x01a\x00\x01b\x00\x00'

        decoded = Sample.from_pairs(decode_box(box.to_wire()))
        assert decoded == sample
        assert isinstance(decoded.buffer, bytearray)

    def test_fill_into(self) -> None:
        command = Command(count=1, name='old')
        Box([('name', 'new')]).fill_into(command)
        assert command == Command(count=1, name='new')

        # decoding is all or nothing
        with pytest.raises(TypeMismatchError, match='Failed to decode Command.count'):
            Box([('name', 'changed'), ('count', 'seven')]).fill_into(command)
        assert command == Command(count=1, name='new')

    def test_unknown_attributes(self, caplog: pytest.LogCaptureFixture) -> None:
        box = Box([('count', '1'), ('name', 'x'), ('color', 'red')])

        with caplog.at_level(logging.DEBUG, logger='amp.messages.elements'):
            assert Command.from_pairs(box) == Command(count=1, name='x')
        assert "Dropping unknown attributes for Command: b'color'" in caplog.text

        with use_configuration(strict_items=True), pytest.raises(MalformedDataError, match="Unknown attributes for 'Command': b'color'"):
            Command.from_pairs(box)

    def test_error_context(self) -> None:
        with pytest.raises(TypeMismatchError, match=r"Failed to decode Command.count: Invalid integer value: b'x'") as exc_info:
            Command.from_pairs(Box([('count', 'x'), ('name', 'test')]))
        assert isinstance(exc_info.value.__cause__, TypeMismatchError)

    def test_list_without_element_type(self) -> None:
        with pytest.raises(MissingElementTypeError):
            Element(list)
        with pytest.raises(MissingElementTypeError):
            ListElement(list)

    def test_empty_list_items(self) -> None:
        class Labels(AnnotatedRecord):
            names: ListElement[str] = ListElement(str, default=())

        with pytest.raises(MalformedDataError, match=r'Failed to encode .*Labels\.names: .* would terminate the list'):
            Box.from_record(Labels(names=['a', '']))

        with use_configuration(list_terminator=False):
            box = Box.from_record(Labels(names=['a', '']))
            assert Labels.from_pairs(box) == Labels(names=['a', ''])

    def test_plain_record(self) -> None:
        class Point(Record):
            x = Element(int)
            y = Element(int, default=0)

        point = Point(x=1)
        assert point.to_pairs() == [(b'x', b'1'), (b'y', b'0')]
        assert Point.from_pairs({b'x': b'5'}) == Point(x=5, y=0)

    def test_buffer_defaults_are_not_shared(self) -> None:
        class Packet(AnnotatedRecord):
            payload: Element[bytearray] = Element(bytearray, default=bytearray(b'ab'))

        one, two = Packet(), Packet()
        one.payload.append(0x63)
        assert one.payload == bytearray(b'abc')
        assert two.payload == bytearray(b'ab')
        assert Packet.payload.default == bytearray(b'ab')

        decoded = Packet.from_pairs(Box())
        decoded.payload.append(0x64)
        assert Packet().payload == bytearray(b'ab')

        buffer = bytearray(b'xyz')
        packet = Packet(payload=buffer)
        buffer.append(0x21)
        assert packet.payload == bytearray(b'xyz')

    def test_timestamps_need_an_offset(self) -> None:
        class Event(AnnotatedRecord):
            when: Element[datetime] = Element(datetime, default=None)

        event = Event(when=datetime(2023, 4, 5, 6, 7, 8, tzinfo=UTC))
        assert Event.from_pairs(decode_box(Box.from_record(event).to_wire())) == event

        with pytest.raises(TypeError, match='Expected a timezone aware datetime'):
            Event(when=datetime(2023, 4, 5, 6, 7, 8))  # noqa: DTZ001

        # a timestamp received without an offset is kept as a naive value
        event = Event.from_pairs(Box([('when', '2023-04-05T06:07:08.000000')]))
        assert event.when == datetime(2023, 4, 5, 6, 7, 8)  # noqa: DTZ001


class TestItems:

    def test_item_list(self) -> None:
        order = Order(reference='A1', items=[Item(a=1, b='x'), Item(a=2, b='yy')])
        box = Box.from_record(order)

        first = bytes.fromhex('00 01 61 00 01 31 00 01 62 00 01 78 00 00')
        second = bytes.fromhex('00 01 61 00 01 32 00 01 62 00 02 79 79 00 00')
        assert box.get('items') == first + second
        assert 'primary' not in box

        decoded = Order.from_pairs(decode_box(box.to_wire()))
        assert decoded == order
        assert decoded.items == [Item(a=1, b='x'), Item(a=2, b='yy')]

    def test_empty_item_list(self) -> None:
        box = Box.from_record(Order(reference='A2'))
        assert box.get('items') == b''
        assert Order.from_pairs(box).items == []

    def test_single_item(self) -> None:
        order = Order(reference='A3', primary=Item(a=3, b='z'))
        box = Box.from_record(order)
        assert box.get('primary') == bytes.fromhex('00 01 61 00 01 33 00 01 62 00 01 7A 00 00')
        assert Order.from_pairs(box) == order

    def test_none_attributes(self) -> None:
        order = Order(reference='A4', items=[Item(a=1, b=None), Item(a=None, b='y')])  # type: ignore[arg-type]
        box = Box.from_record(order)
        assert box.get('items') == bytes.fromhex('00 01 61 00 01 31 00 00  00 01 62 00 01 79 00 00')
        assert Order.from_pairs(decode_box(box.to_wire())) == order

        order = Order(reference='A5', primary=Item(a=None, b='x'))  # type: ignore[arg-type]
        filled = Box.from_record(order).fill_into(Order(reference=''))
        assert filled == order
        assert filled.primary.a is None

    def test_item_errors(self) -> None:
        data = bytes.fromhex('00 01 61 00 01 31 00 01 62 00 01 78')
        with pytest.raises(TruncatedDataError, match='Failed to decode Order.items'):
            Order.from_pairs(Box([('reference', 'A4'), ('items', data)]))

        with pytest.raises(TypeError, match="Expected a list of 'Item' items"):
            Order(reference='A5', items=[Box()])  # type: ignore[list-item]

    def test_items_as_records(self) -> None:
        item = Item(a=1, b='x')
        buffer = BytesIO(item.to_wire() + Item(a=2, b='y').to_wire())
        assert Item.from_wire(buffer) == item
        assert Item.from_wire(buffer) == Item(a=2, b='y')
        assert buffer.read() == b''
        assert Item.from_wire(item.to_wire()) == item
