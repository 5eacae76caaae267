# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

from types import GenericAlias, NoneType, UnionType

__all__ = 'reprproxy',  # noqa: COM818


class reprproxy:  # noqa: N801
    """
    A proxy to provide better representation for declared types.

    Classes show up by their qualified name and generic aliases like
    list[list[int]] show up the way they were written in the code,
    which keeps error messages about record fields readable. Other
    values get their normal representation, truncated if they are
    long byte strings.
    """

    max_bytes = 32

    def __init__(self, value: object) -> None:
        self.value = value

    def __repr__(self) -> str:
        match self.value:
            case GenericAlias() as value:
                return f'{value.__origin__.__qualname__}[{', '.join(reprproxy(arg).__repr__() for arg in value.__args__)}]'
            case UnionType() as value:
                return ' | '.join('None' if _type is NoneType else reprproxy(_type).__repr__() for _type in value.__args__)
            case type() as value:
                return value.__qualname__
            case bytes() | bytearray() as value if len(value) > self.max_bytes:
                return f'{bytes(value[:self.max_bytes])!r}... ({len(value)} bytes)'
            case value:
                return repr(value)

    __str__ = __repr__
