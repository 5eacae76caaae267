# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import logging
from contextvars import ContextVar, Token
from dataclasses import dataclass, fields, replace
from os import PathLike, fspath
from typing import ClassVar, Protocol, Self

from lxml import etree

__all__ = 'CodecConfiguration', 'ConfigurationContext', 'get_configuration', 'use_configuration'  # noqa: RUF022


log = logging.getLogger(__name__)

# noinspection PyProtectedMember
type ETreeElement = etree._Element  # noqa: SLF001


class OptionAdapter[T](Protocol):
    """Converts an option value between its python type and the XML text"""

    @staticmethod
    def xml_parse(value: str, /) -> T: ...

    @staticmethod
    def xml_build(value: T, /) -> str: ...


class BooleanOption:
    @staticmethod
    def xml_parse(value: str) -> bool:
        match value.strip():
            case 'true' | '1':
                return True
            case 'false' | '0':
                return False
            case _:
                raise ValueError(f'Invalid boolean value: {value!r}')

    @staticmethod
    def xml_build(value: bool) -> str:  # noqa: FBT001
        return 'true' if value else 'false'


class PositiveIntegerOption:
    @staticmethod
    def xml_parse(value: str) -> int:
        number = int(value)
        if number < 1:
            raise ValueError(f"invalid value '{value}' for positive integer")
        return number

    @staticmethod
    def xml_build(value: int) -> str:
        return str(value)


@dataclass(frozen=True, kw_only=True, slots=True)
class CodecConfiguration:
    """
    Options that control how strictly AMP boxes are decoded.

    strict_integers: only accept plain decimal integers (no 0x, # or octal forms)
    strict_booleans: only accept True and False as boolean values
    strict_items:    reject item attributes that the record does not declare
    list_terminator: lists end with a zero length (otherwise they end with the data)
    max_pairs:       the maximum number of key/value pairs in a decoded box
    """

    strict_integers: bool = False
    strict_booleans: bool = False
    strict_items: bool = False
    list_terminator: bool = True
    max_pairs: int | None = None

    xml_tag: ClassVar[str] = 'codec-configuration'
    xml_options: ClassVar[dict[str, type[OptionAdapter]]] = {
        'strict-integers': BooleanOption,
        'strict-booleans': BooleanOption,
        'strict-items': BooleanOption,
        'list-terminator': BooleanOption,
        'max-pairs': PositiveIntegerOption,
    }

    def __post_init__(self) -> None:
        if self.max_pairs is not None and self.max_pairs < 1:
            raise ValueError(f'max_pairs must be a positive integer or None, not {self.max_pairs!r}')

    @classmethod
    def from_xml(cls, data: str | bytes) -> Self:
        if isinstance(data, str):
            data = data.encode()
        return cls.from_element(etree.fromstring(data, parser=cls._parser()))

    @classmethod
    def from_file(cls, path: str | PathLike[str]) -> Self:
        configuration = cls.from_element(etree.parse(fspath(path), parser=cls._parser()).getroot())
        log.debug('Loaded codec configuration from %s: %r', path, configuration)
        return configuration

    @classmethod
    def from_element(cls, element: ETreeElement) -> Self:
        if etree.QName(element).localname != cls.xml_tag:
            raise ValueError(f'The root element must be {cls.xml_tag!r}, not {etree.QName(element).localname!r}')
        options: dict[str, object] = {}
        for child in element:
            name = etree.QName(child).localname
            try:
                adapter = cls.xml_options[name]
            except KeyError:
                raise ValueError(f'Unknown codec configuration option: {name!r}') from None
            attribute = name.replace('-', '_')
            if attribute in options:
                raise ValueError(f'The {name!r} option is specified more than once')
            options[attribute] = adapter.xml_parse(child.text or '')
        return cls(**options)  # type: ignore[arg-type]

    def to_xml(self) -> bytes:
        root = etree.Element(self.xml_tag)
        for name, adapter in self.xml_options.items():
            value = getattr(self, name.replace('-', '_'))
            if value is not None:
                etree.SubElement(root, name).text = adapter.xml_build(value)
        return etree.tostring(root, encoding='UTF-8', xml_declaration=True, pretty_print=True)

    def replace(self, **options: object) -> Self:
        unknown = set(options) - {field.name for field in fields(self)}
        if unknown:
            raise TypeError(f'Got an unexpected option {next(iter(unknown))!r}')
        return replace(self, **options)  # type: ignore[arg-type]

    @staticmethod
    def _parser() -> etree.XMLParser:
        return etree.XMLParser(remove_comments=True, remove_blank_text=True, resolve_entities=False, no_network=True)


_active_configuration: ContextVar[CodecConfiguration] = ContextVar('amp_codec_configuration', default=CodecConfiguration())


def get_configuration() -> CodecConfiguration:
    """Return the codec configuration that is active in the current context"""
    return _active_configuration.get()


class ConfigurationContext:
    """Activate a codec configuration for the duration of a with block"""

    configuration: CodecConfiguration

    def __init__(self, configuration: CodecConfiguration) -> None:
        self.configuration = configuration
        self._reset_tokens: list[Token[CodecConfiguration]] = []

    def __repr__(self) -> str:
        return f'{self.__class__.__qualname__}({self.configuration!r})'

    def __enter__(self) -> CodecConfiguration:
        self._reset_tokens.append(_active_configuration.set(self.configuration))
        return self.configuration

    def __exit__(self, *_: object) -> None:
        _active_configuration.reset(self._reset_tokens.pop())


def use_configuration(configuration: CodecConfiguration | None = None, /, **options: object) -> ConfigurationContext:
    """
    Return a context manager that activates a codec configuration.

    Without a configuration argument the options are applied on top of
    the configuration that is active at the time of the call.
    """

    if configuration is None:
        configuration = get_configuration()
    if options:
        configuration = configuration.replace(**options)
    return ConfigurationContext(configuration)
