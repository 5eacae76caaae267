# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

__all__ = (  # noqa: RUF022
    'CodecError',
    'TruncatedDataError',
    'LengthOverflowError',
    'MalformedDataError',
    'TypeMismatchError',
    'UnsupportedError',
    'MissingElementTypeError',
    'RemoteError',
)


class CodecError(ValueError):
    """Base class for the errors raised while encoding or decoding AMP boxes."""


class TruncatedDataError(CodecError):
    """Raised when the data ends in the middle of a length or a payload."""


class LengthOverflowError(CodecError, OverflowError):
    """Raised when a key or value does not fit in a 16-bit length prefix."""


class MalformedDataError(CodecError):
    """Raised when the data is structurally invalid."""


class TypeMismatchError(CodecError):
    """Raised when the wire bytes cannot be converted to the declared type (or the value cannot be represented on the wire)."""


class UnsupportedError(CodecError):
    """Raised for values and operations the AMP box does not support."""


class MissingElementTypeError(CodecError, TypeError):
    """Raised when a list type is used without describing its element type."""


class RemoteError(Exception):
    """An error reported by the remote peer through the _error_code and _error_description keys."""

    def __init__(self, code: str, description: str = '') -> None:
        super().__init__(code, description)
        self.code = code
        self.description = description

    def __repr__(self) -> str:
        return f'{self.__class__.__qualname__}(code={self.code!r}, description={self.description!r})'

    def __str__(self) -> str:
        return f'{self.code} {self.description}' if self.description else self.code

    def __eq__(self, other: object) -> bool:
        if isinstance(other, RemoteError):
            return (self.code, self.description) == (other.code, other.description)
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self.code, self.description))
