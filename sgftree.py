#!/usr/bin/env python3
# -*- coding: utf-8 -*-

# sgftree.py (validating Smart Game Format parser)
# Copyright © 2000-2021 David John Goodger (goodger@python.org)
#
# This library is free software; you can redistribute it and/or modify it
# under the terms of the GNU Lesser General Public License as published by the
# Free Software Foundation; either version 2 of the License, or (at your
# option) any later version.
#
# This library is distributed in the hope that it will be useful, but WITHOUT
# ANY WARRANTY; without even the implied warranty of MERCHANTABILITY or
# FITNESS FOR A PARTICULAR PURPOSE.  See the GNU Lesser General Public License
# for more details.
#
# You should have received a copy of the GNU Lesser General Public License
# (lgpl.txt) along with this library; if not, write to the Free Software
# Foundation, Inc., 59 Temple Place, Suite 330, Boston, MA  02111-1307  USA
# The license is currently available on the Internet at:
#     http://www.gnu.org/copyleft/lesser.html

"""
=============================================
 Validating Smart Game Format Parser: sgftree
=============================================

version 1.0a


Description
===========

This library contains a validating parser and typed value classes for SGF,
the Smart Game Format, file format 4 (FF[4]). SGF is a text only, tree based
file format designed to store game records of board games for two players.
(See `the official SGF specification <https://www.red-bean.com/sgf/>`_.)

Given a string containing a complete SGF data instance, `parse()` (or the
`Parser` class) will create a `Collection` object consisting of one or more
`GameTree` instances (one per game), each containing a sequence of `Node`
instances and (optionally) branch `GameTree` objects (variations). Branches
begin immediately following the last `Node` in the `GameTree` sequence. Each
`Node` maps property IDs to `Property` objects, and each `Property` holds one
or more typed `PropertyValue` objects (`Number`, `Real`, `Text`, `Point`,
`Compose`, ...).

Every property value is decoded and validated against a read-only property
catalog (`PROPERTIES`, plus the game-specific tables in `GAME_TYPES`). The
first structural or value problem raises a `ParseError` subclass; nothing is
returned for a document that fails. Recoverable problems (unknown property
IDs, misplaced properties) are collected as `ParseWarning` objects, returned
with the result and issued through the `warnings` module.

Reading files and writing SGF are left to the caller.
"""


# Revision History:
#
# * 1.0a: Validating parser with typed property values, derived from
#   sgflib 2.0a.


import re
import codecs
import warnings
import collections
from types import MappingProxyType


TEXT_ENCODING = 'UTF-8'
"""Default encoding for `bytes` input without a CA (charset) property."""

DEFAULT_GAME = 1
"""Game type (GM) assumed when a game does not declare one: Go."""


class Error(Exception):
    """Base class for sgftree exceptions."""
    pass

# Parsing Exceptions

class ParseError(Error):

    """
    Base class for fatal parsing exceptions; every parsing operation raises
    this one kind (or a subclass).

    Instance attributes:

    - message : string -- Description of the problem.
    - offset : integer -- 1-based character offset into the decoded SGF
      text, or `None`.
    - line, column : integer -- 1-based position of `offset`, or `None`.
    - label : string -- Caller-supplied document label (e.g. a file name).
    - property_id : string -- The property concerned, if any.
    """

    def __init__(self, message, offset=None, line=None, column=None,
                 label=None, property_id=None):
        super().__init__(message)
        self.message = message
        self.offset = offset
        self.line = line
        self.column = column
        self.label = label
        self.property_id = property_id

    def __str__(self):
        parts = []
        if self.label:
            parts.append(self.label)
        if self.line is not None:
            parts.append(f'{self.line}:{self.column}')
        parts.append(f' {self.message}' if parts else self.message)
        return ':'.join(parts)

class StructuralError(ParseError):
    """Raised by `Parser` for malformed nesting & misplaced tokens."""
    pass

class ValueValidationError(ParseError):
    """Raised by `PropertyValue.validate()` & `ValueType.make()`."""
    pass

class DuplicatePropertyError(ParseError):
    """Raised by `Node.add_property()` & `Parser.parse_node()`."""
    pass

# Tree Construction Exceptions

class TreeConstructionError(Error):
    """Base class for game tree construction exceptions."""
    pass

class NodeConstructionError(TreeConstructionError):
    """Raised by `Node.update()`, `Node.__setitem__()`."""
    pass

# Miscellaneous Exceptions

class PropertyError(Error, AttributeError):
    """Raised by `Node` attribute access."""
    pass


# Parsing Warnings

class ParseWarning(UserWarning):

    """
    Base class for recoverable parsing problems. Collected in order by the
    `Parser` (see `Collection.warnings`) and issued via `warnings.warn()`.
    """

    def __init__(self, message, property_id=None, offset=None):
        super().__init__(message)
        self.message = message
        self.property_id = property_id
        self.offset = offset

    def __str__(self):
        if self.offset is None:
            return self.message
        return f'{self.message} (offset {self.offset})'

class UnknownPropertyWarning(ParseWarning):
    """Property ID not in the catalog; its values were kept as `Opaque`."""
    pass

class PropertyValueCountWarning(ParseWarning):
    """Several values given to a single-valued property."""
    pass

class PropertyPlacementWarning(ParseWarning):
    """Root property outside a root node, or setup & move properties mixed."""
    pass

class UnterminatedTreeWarning(ParseWarning):
    """Game tree closed implicitly at the end of the data (lenient mode)."""
    pass

class CharsetWarning(ParseWarning):
    """Unknown CA (charset) in `bytes` input."""
    pass


# Text decoding

LINE_BREAK = re.compile(r'\r\n?|\n\r?')
"""CR, LF, CR/LF, LF/CR."""

SPACES = ' \t\v\f'
"""Whitespace other than line breaks; always converted to a space."""


def decode_text(raw, simple=False):
    """
    Decode the raw body of a property value (the text between "[" and "]").

    A backslash escapes the following character, which is inserted verbatim;
    a backslash before a line break removes both ("soft" line break).
    Unescaped line breaks become "\\n", or a space if `simple` (SimpleText).
    Other whitespace becomes a space; with `simple`, runs of unescaped
    whitespace collapse to one space.
    """
    parts = []
    collapsing = False
    index = 0
    length = len(raw)
    while index < length:
        char = raw[index]
        if char == '\\':
            index += 1
            if index == length:
                break
            line_break = LINE_BREAK.match(raw, index)
            if line_break:
                index = line_break.end()
                continue
            char = raw[index]
            parts.append(' ' if char in SPACES else char)
            collapsing = False
            index += 1
            continue
        line_break = LINE_BREAK.match(raw, index)
        if line_break:
            index = line_break.end()
            if not simple:
                parts.append('\n')
                collapsing = False
                continue
            char = ' '
        else:
            index += 1
        if char in SPACES:
            if simple and collapsing:
                continue
            parts.append(' ')
            collapsing = True
        else:
            parts.append(char)
            collapsing = False
    return ''.join(parts)


def split_compose(raw):
    """
    Split a raw composed value at the first unescaped ":". Return a pair of
    raw strings, or `None` if there is no separator.
    """
    index = 0
    while index < len(raw):
        char = raw[index]
        if char == '\\':
            index += 2
            continue
        if char == ':':
            return raw[:index], raw[index+1:]
        index += 1
    return None


# Property Values

class PropertyValue:

    """
    Base class for typed property values. Values are immutable and compare
    equal when they are of the same class with equal `fields`.
    """

    __slots__ = ()

    fields = ()
    """Names of the attributes making up the value."""

    def __init__(self, *args):
        for (name, arg) in zip(self.fields, args):
            object.__setattr__(self, name, arg)

    def __setattr__(self, name, value):
        raise AttributeError(
            f'{self.__class__.__name__} values are immutable')

    def key(self):
        return tuple(getattr(self, name) for name in self.fields)

    def __eq__(self, other):
        if other.__class__ is not self.__class__:
            return NotImplemented
        return self.key() == other.key()

    def __hash__(self):
        return hash((self.__class__.__name__,) + self.key())

    def __repr__(self):
        return '{}({})'.format(
            self.__class__.__name__, ', '.join(repr(v) for v in self.key()))

    def validate(self, game=None):
        """
        Raise `ValueValidationError` if the value is invalid. `game` is the
        `GameType` in effect, consulted by coordinate values.
        """
        pass


class NoneValue(PropertyValue):
    """Value of an empty "[]" (e.g. `DO`, `IT`, an empty `VW` list)."""
    __slots__ = ()


class Number(PropertyValue):

    """An integer with an inclusive range; a `None` bound is open."""

    __slots__ = fields = ('value', 'min', 'max')

    def __init__(self, value, min=None, max=None):
        super().__init__(value, min, max)

    def __int__(self):
        return self.value

    def validate(self, game=None):
        if ((self.min is not None and self.value < self.min)
              or (self.max is not None and self.value > self.max)):
            raise ValueValidationError(
                f'value {self.value} not in range '
                f'(min {self.min}, max {self.max})')


class Real(PropertyValue):

    """A decimal number, kept as its text."""

    __slots__ = fields = ('value',)

    pattern = re.compile(r'[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)')

    def __float__(self):
        return float(self.value)

    def validate(self, game=None):
        if not self.pattern.fullmatch(self.value):
            raise ValueValidationError(f'{self.value!r} is not a real number')


class Double(PropertyValue):

    """
    Annotation emphasis: "1" is normal, "2" emphasized (e.g. `GB[2]`, "very
    good for black").
    """

    __slots__ = fields = ('value',)

    @property
    def emphasized(self):
        return self.value == '2'

    def validate(self, game=None):
        if self.value not in ('1', '2'):
            raise ValueValidationError(
                f'{self.value!r} is not a double (expected "1" or "2")')


class Color(PropertyValue):

    __slots__ = fields = ('value',)

    def validate(self, game=None):
        if self.value not in ('B', 'W'):
            raise ValueValidationError(
                f'{self.value!r} is not a color (expected "B" or "W")')


class SimpleText(PropertyValue):

    """
    Single-line text; `allow_empty` (not part of the value) comes from the
    property catalog.
    """

    __slots__ = ('value', 'allow_empty')
    fields = ('value',)

    def __init__(self, value, allow_empty=True):
        super().__init__(value)
        object.__setattr__(self, 'allow_empty', allow_empty)

    def __str__(self):
        return self.value

    def validate(self, game=None):
        if not self.value and not self.allow_empty:
            raise ValueValidationError('empty text is not allowed')


class Text(SimpleText):
    """Formatted text, with hard line breaks preserved as "\\n"."""
    __slots__ = ()


class Coordinate(PropertyValue):

    """
    Base class of game-specific positions, kept as their text and validated
    by the `GameType` in effect.
    """

    __slots__ = fields = ('value',)

    kind = None
    """Key into `GameType.check()`."""

    def __str__(self):
        return self.value

    def validate(self, game=None):
        if game is not None:
            game.check(self.kind, self.value)


class Point(Coordinate):
    __slots__ = ()
    kind = 'point'


class Move(Coordinate):
    __slots__ = ()
    kind = 'move'


class Stone(Coordinate):
    __slots__ = ()
    kind = 'stone'


class Compose(PropertyValue):

    """Two values joined by ":" (e.g. `LB[dd:A]`, `AR[aa:cc]`)."""

    __slots__ = fields = ('first', 'second')

    def validate(self, game=None):
        self.first.validate(game)
        self.second.validate(game)


class Opaque(PropertyValue):
    """Text of a property missing from the catalog, decoded as Text."""
    __slots__ = fields = ('value',)


# Value Types

class ValueType:

    """
    Describes how the raw body of a property value becomes a
    `PropertyValue`. Subclasses implement `make()`, which raises
    `ValueValidationError` for text that cannot be converted.
    """

    def __init__(self, name):
        self.name = name

    def __repr__(self):
        return self.name

    def make(self, raw):
        raise NotImplementedError


class ScalarType(ValueType):

    """Non-text values: decoded as SimpleText & converted as is."""

    def __init__(self, name, factory):
        super().__init__(name)
        self.factory = factory

    def make(self, raw):
        return self.factory(decode_text(raw, simple=True))


class TextType(ValueType):

    def __init__(self, name, value_class, simple, allow_empty=True):
        super().__init__(name)
        self.value_class = value_class
        self.simple = simple
        self.allow_empty = allow_empty

    def make(self, raw):
        return self.value_class(
            decode_text(raw, simple=self.simple), self.allow_empty)


class ComposeType(ValueType):

    def __init__(self, first, second):
        super().__init__(f'{first.name}:{second.name}')
        self.first = first
        self.second = second

    def make(self, raw):
        parts = split_compose(raw)
        if parts is None:
            raise ValueValidationError(
                f'expected a composed value ({self.name})')
        return Compose(self.first.make(parts[0]), self.second.make(parts[1]))


class EitherType(ValueType):

    """
    Alternative value types: a composed alternative is chosen when the raw
    text contains an unescaped ":", `NONE` when it is empty, otherwise the
    first other alternative.
    """

    def __init__(self, *alternatives):
        super().__init__(' | '.join(alt.name for alt in alternatives))
        self.alternatives = alternatives

    def select(self, raw):
        composed = [alt for alt in self.alternatives
                    if isinstance(alt, ComposeType)]
        if composed and split_compose(raw) is not None:
            return composed[0]
        if NONE in self.alternatives and not raw:
            return NONE
        for alt in self.alternatives:
            if alt is not NONE and not isinstance(alt, ComposeType):
                return alt
        return self.alternatives[0]

    def make(self, raw):
        return self.select(raw).make(raw)


NUMBER_PATTERN = re.compile(r'[+-]?[0-9]+')


def number(min=None, max=None):
    """Return a `ValueType` for integers in the range [`min`, `max`]."""
    def make_number(text):
        if not NUMBER_PATTERN.fullmatch(text):
            raise ValueValidationError(f'{text!r} is not a number')
        return Number(int(text), min, max)
    return ScalarType('number', make_number)


def make_none(text):
    if text:
        raise ValueValidationError(f'expected an empty value, got {text!r}')
    return NoneValue()


def simple_text(allow_empty=True):
    return TextType('simpletext', SimpleText, True, allow_empty)


def compose(first, second):
    return ComposeType(first, second)


def either(*alternatives):
    return EitherType(*alternatives)


NONE = ScalarType('none', make_none)
NUMBER = number()
REAL = ScalarType('real', Real)
DOUBLE = ScalarType('double', Double)
COLOR = ScalarType('color', Color)
SIMPLE_TEXT = simple_text()
TEXT = TextType('text', Text, False)
POINT = ScalarType('point', Point)
MOVE = ScalarType('move', Move)
STONE = ScalarType('stone', Stone)
POINTS = either(POINT, compose(POINT, POINT))
STONES = either(STONE, compose(POINT, POINT))
"""Lists of points/stones may be compressed into rectangles ("aa:cc")."""


# Property Catalog

PropertyDef = collections.namedtuple(
    'PropertyDef', 'id name value_type cardinality property_type',
    defaults=('single', None))
PropertyDef.__doc__ = """\
Catalog entry for one property ID.

- id : string -- The property ID ("FF").
- name : string -- Descriptive name, usable as a `Node` attribute.
- value_type : `ValueType`.
- cardinality : 'single', 'list' (one or more values), or 'elist' (a list
  that may be given as "[]").
- property_type : 'root', 'game-info', 'setup', 'move', or `None`.
"""


def define(*definitions):
    """Return a read-only catalog mapping of `PropertyDef` objects by ID."""
    return MappingProxyType({d.id: d for d in definitions})


def extend_catalog(base, *definitions):
    """
    Return a new read-only catalog: `base` plus (or overridden by)
    `definitions`. Use it to set `Parser.catalog` in a subclass or instance.
    """
    catalog = dict(base)
    catalog.update((d.id, d) for d in definitions)
    return MappingProxyType(catalog)


PROPERTIES = define(
    # move properties
    PropertyDef('B', 'black', MOVE, 'single', 'move'),
    PropertyDef('W', 'white', MOVE, 'single', 'move'),
    PropertyDef('KO', 'ko', NONE, 'single', 'move'),
    PropertyDef('MN', 'set_move_number', NUMBER, 'single', 'move'),
    # setup properties
    PropertyDef('AB', 'add_black', STONES, 'list', 'setup'),
    PropertyDef('AE', 'add_empty', POINTS, 'list', 'setup'),
    PropertyDef('AW', 'add_white', STONES, 'list', 'setup'),
    PropertyDef('PL', 'player_to_play', COLOR, 'single', 'setup'),
    # node annotation properties
    PropertyDef('C', 'comment', TEXT),
    PropertyDef('DM', 'even_position', DOUBLE),
    PropertyDef('GB', 'good_for_black', DOUBLE),
    PropertyDef('GW', 'good_for_white', DOUBLE),
    PropertyDef('HO', 'hotspot', DOUBLE),
    PropertyDef('N', 'node_name', SIMPLE_TEXT),
    PropertyDef('UC', 'unclear_position', DOUBLE),
    PropertyDef('V', 'value', REAL),
    # move annotation properties
    PropertyDef('BM', 'bad_move', DOUBLE, 'single', 'move'),
    PropertyDef('DO', 'doubtful', NONE, 'single', 'move'),
    PropertyDef('IT', 'interesting', NONE, 'single', 'move'),
    PropertyDef('TE', 'tesuji', DOUBLE, 'single', 'move'),
    # markup properties
    PropertyDef('AR', 'arrow', compose(POINT, POINT), 'list'),
    PropertyDef('CR', 'circle', POINTS, 'list'),
    PropertyDef('DD', 'dim_points', POINTS, 'elist'),
    PropertyDef('LB', 'label', compose(POINT, SIMPLE_TEXT), 'list'),
    PropertyDef('LN', 'line', compose(POINT, POINT), 'list'),
    PropertyDef('MA', 'mark', POINTS, 'list'),
    PropertyDef('SL', 'selected', POINTS, 'list'),
    PropertyDef('SQ', 'square', POINTS, 'list'),
    PropertyDef('TR', 'triangle', POINTS, 'list'),
    # root properties
    PropertyDef('AP', 'application',
                compose(SIMPLE_TEXT, SIMPLE_TEXT), 'single', 'root'),
    PropertyDef('CA', 'charset',
                simple_text(allow_empty=False), 'single', 'root'),
    PropertyDef('FF', 'file_format', number(1, 4), 'single', 'root'),
    PropertyDef('GM', 'game', number(1), 'single', 'root'),
    PropertyDef('ST', 'style', number(0, 3), 'single', 'root'),
    PropertyDef('SZ', 'size',
                either(number(1), compose(number(1), number(1))),
                'single', 'root'),
    # game info properties
    PropertyDef('AN', 'annotation', SIMPLE_TEXT, 'single', 'game-info'),
    PropertyDef('BR', 'black_rank', SIMPLE_TEXT, 'single', 'game-info'),
    PropertyDef('BT', 'black_team', SIMPLE_TEXT, 'single', 'game-info'),
    PropertyDef('CP', 'copyright', SIMPLE_TEXT, 'single', 'game-info'),
    PropertyDef('DT', 'date', SIMPLE_TEXT, 'single', 'game-info'),
    PropertyDef('EV', 'event', SIMPLE_TEXT, 'single', 'game-info'),
    PropertyDef('GC', 'game_comment', TEXT, 'single', 'game-info'),
    PropertyDef('GN', 'game_name', SIMPLE_TEXT, 'single', 'game-info'),
    PropertyDef('ON', 'opening', SIMPLE_TEXT, 'single', 'game-info'),
    PropertyDef('OT', 'overtime', SIMPLE_TEXT, 'single', 'game-info'),
    PropertyDef('PB', 'player_black', SIMPLE_TEXT, 'single', 'game-info'),
    PropertyDef('PC', 'place', SIMPLE_TEXT, 'single', 'game-info'),
    PropertyDef('PW', 'player_white', SIMPLE_TEXT, 'single', 'game-info'),
    PropertyDef('RE', 'result', SIMPLE_TEXT, 'single', 'game-info'),
    PropertyDef('RO', 'round', SIMPLE_TEXT, 'single', 'game-info'),
    PropertyDef('RU', 'rules', SIMPLE_TEXT, 'single', 'game-info'),
    PropertyDef('SO', 'source', SIMPLE_TEXT, 'single', 'game-info'),
    PropertyDef('TM', 'time_limit', REAL, 'single', 'game-info'),
    PropertyDef('US', 'user', SIMPLE_TEXT, 'single', 'game-info'),
    PropertyDef('WR', 'white_rank', SIMPLE_TEXT, 'single', 'game-info'),
    PropertyDef('WT', 'white_team', SIMPLE_TEXT, 'single', 'game-info'),
    # timing properties
    PropertyDef('BL', 'black_time_left', REAL, 'single', 'move'),
    PropertyDef('OB', 'overtime_stones_black', NUMBER, 'single', 'move'),
    PropertyDef('OW', 'overtime_stones_white', NUMBER, 'single', 'move'),
    PropertyDef('WL', 'white_time_left', REAL, 'single', 'move'),
    # miscellaneous properties
    PropertyDef('AS', 'who_adds_stones', SIMPLE_TEXT),
    PropertyDef('FG', 'figure', either(NONE, compose(NUMBER, SIMPLE_TEXT))),
    PropertyDef('PM', 'print_move_mode', number(0, 2)),
    PropertyDef('VW', 'view', POINTS, 'elist'),
    )
"""General (not game-specific) FF[4] properties, by ID."""


class GameType:

    """
    A game (GM property value): its name, its game-specific properties, and
    optional regular expressions for its point, move & stone coordinates.
    A game without patterns accepts any coordinate text.
    """

    def __init__(self, number, name, properties=None,
                 point=None, move=None, stone=None):
        self.number = number
        self.name = name
        self.properties = define() if properties is None else properties
        self.patterns = {
            'point': point and re.compile(point),
            'move': move and re.compile(move),
            'stone': stone and re.compile(stone),
            }

    def __repr__(self):
        return '{}({!r}, {!r})'.format(
            self.__class__.__name__, self.number, self.name)

    def check(self, kind, text):
        """Raise `ValueValidationError` unless `text` is a valid `kind`."""
        pattern = self.patterns[kind]
        if pattern is not None and not pattern.fullmatch(text):
            raise ValueValidationError(
                f'{text!r} is not a valid {self.name} {kind}')


GO_PROPERTIES = define(
    PropertyDef('HA', 'handicap', number(0), 'single', 'game-info'),
    PropertyDef('KM', 'komi', REAL, 'single', 'game-info'),
    PropertyDef('TB', 'territory_black', POINTS, 'elist'),
    PropertyDef('TW', 'territory_white', POINTS, 'elist'),
    )

game_names = {
    1: 'Go',
    2: 'Othello',
    3: 'chess',
    4: 'Gomoku+Renju',
    5: "Nine Men's Morris",
    6: 'Backgammon',
    7: 'Chinese chess',
    8: 'Shogi',
    9: 'Lines of Action',
    10: 'Ataxx',
    11: 'Hex',
    12: 'Jungle',
    13: 'Neutron',
    14: "Philosopher's Football",
    15: 'Quadrature',
    16: 'Trax',
    17: 'Tantrix',
    18: 'Amazons',
    19: 'Octi',
    20: 'Gess',
    21: 'Twixt',
    22: 'Zertz',
    23: 'Plateau',
    24: 'Yinsh',
    25: 'Punct',
    26: 'Gobblet',
    27: 'hive',
    28: 'Exxit',
    29: 'Hnefatal',
    30: 'Kuba',
    31: 'Tripples',
    32: 'Chase',
    33: 'Tumbling Down',
    34: 'Sahara',
    35: 'Byte',
    36: 'Focus',
    37: 'Dvonn',
    38: 'Tamsk',
    39: 'Gipf',
    40: 'Kropki',
    }
"""Mapping of game type numbers to names."""

GAME_TYPES = MappingProxyType({
    **{number: GameType(number, name) for (number, name) in game_names.items()},
    # "tt" is a pass on boards up to 19x19 (FF[3] style):
    1: GameType(1, 'Go', GO_PROPERTIES, point='[a-zA-Z]{2}',
                move='(?:[a-zA-Z]{2})?', stone='[a-zA-Z]{2}'),
    })
"""Read-only mapping of game type number to `GameType`."""


# Tree Construction

class Property:

    """
    One property of a `Node`: an ID and a non-empty tuple of
    `PropertyValue` objects. `definition` is the catalog `PropertyDef`, or
    `None` for unknown properties.
    """

    def __init__(self, property_id, values, definition=None):
        values = tuple(values)
        if not values:
            raise TreeConstructionError(
                f'Property "{property_id}" requires at least one value.')
        self.id = property_id
        self.values = values
        self.definition = definition

    @property
    def value(self):
        """The first (for single-valued properties, the only) value."""
        return self.values[0]

    @property
    def name(self):
        return self.definition.name if self.definition else None

    def __eq__(self, other):
        if not isinstance(other, Property):
            return NotImplemented
        return self.id == other.id and self.values == other.values

    def __hash__(self):
        return hash((self.id, self.values))

    def __repr__(self):
        return '{}({!r}, {!r})'.format(
            self.__class__.__name__, self.id, list(self.values))


class Node(dict):

    """
    An SGF node (one move or play, or initial setup): a mapping of property
    ID to `Property`, in document order. A property ID may occur only once
    per node.

    Example: Let ``node`` be a `Node` parsed from ';B[aa]BL[250]C[comment]':

    * node['B'].value => Move('aa')
    * node.black_time_left.value => Real('250')
    """

    def __init__(self, properties=()):
        super().__init__()
        for prop in properties:
            self.add_property(prop)

    def add_property(self, prop):
        """Add `prop`. Raise `DuplicatePropertyError` if its ID is present."""
        self[prop.id] = prop

    def __setitem__(self, property_id, prop):
        if property_id in self:
            raise DuplicatePropertyError(
                f'duplicate property {property_id} in node',
                property_id=property_id)
        if property_id != prop.id:
            raise NodeConstructionError(
                f'Property "{prop.id}" cannot be stored as "{property_id}".')
        super().__setitem__(property_id, prop)

    def update(self, other):
        """
        `Dictionary` method not applicable to `Node`

        Raise `NodeConstructionError`.
        """
        raise NodeConstructionError(
            'The update() method is not supported by Node; add properties '
            'individually with add_property() instead.')

    def resolve_property_id(self, name):
        """
        Return the property ID for `name`: an ID or descriptive name present
        in this node (as defined by the catalog it was parsed with), else a
        known general or Go property ID or name.
        """
        if name in self:
            return name
        for prop in self.values():
            if prop.name == name:
                return prop.id
        if name in self.property_ids:
            return name
        elif name in self.property_names:
            return self.property_names[name]
        else:
            raise PropertyError(
                "Unknown SGF property name or ID: '{}'".format(name))

    def __getattr__(self, name):
        if name.startswith('_'):
            raise AttributeError(name)
        key = self.resolve_property_id(name)
        try:
            return self[key]
        except KeyError:
            if name == key:
                raise PropertyError(
                    "No '{}' property ID in Node".format(name)) from None
            else:
                raise (PropertyError(
                    "No '{}' property (SGF ID '{}') in Node".format(name, key))
                    ) from None

    def __repr__(self):
        return '{}({})'.format(
            self.__class__.__name__,
            ', '.join('{}={!r}'.format(pid, list(prop.values))
                      for pid, prop in self.items()))

    def node_type(self):
        """
        Return 'root', 'setup' or 'move' for a node holding properties of
        that type (checked in that order), else `None`.
        """
        types = {prop.definition.property_type for prop in self.values()
                 if prop.definition is not None}
        if types & {'root', 'game-info'}:
            return 'root'
        for node_type in ('setup', 'move'):
            if node_type in types:
                return node_type
        return None

    property_ids = {
        pid for catalog in (PROPERTIES, GO_PROPERTIES) for pid in catalog}
    """Known property IDs (general & Go)."""

    property_names = {
        definition.name: pid
        for catalog in (PROPERTIES, GO_PROPERTIES)
        for (pid, definition) in catalog.items()}
    """Mapping of property name to SGF property ID."""


class GameTree(list):

    """
    An SGF game tree: a sequence of `Node` objects (game plays) and optional
    branches (game variations).

    Instance attributes:

    self : list of `Node`
       Game tree 'trunk' (main line of game or branch), all plays prior to any
       branches.

    self.branches : list of `GameTree`
       Variations of a game, in document order. `self.branches[0]` is the
       main line of the game.
    """

    def __init__(self, nodelist=None, branches=None):
        """
        Arguments:

        - nodelist : list of `Node` or `Node` -- Stored in `self`.
        - branches : list of `GameTree` -- Stored in `self.branches`.
        """
        if isinstance(nodelist, Node):
            self.append(nodelist)
        elif isinstance(nodelist, list):
            self.extend(nodelist)
        elif nodelist is not None:
            raise TreeConstructionError(
                f'Unable to construct a GameTree from supplied nodelist '
                f'(type {type(nodelist)}.')
        self.branches = [] if branches is None else branches

    def __eq__(self, other):
        if not isinstance(other, GameTree):
            return NotImplemented
        # pairwise, without recursing into the branches
        stack = [(self, other)]
        while stack:
            first, second = stack.pop()
            if (  not list.__eq__(first, second)
                  or len(first.branches) != len(second.branches)):
                return False
            stack.extend(zip(first.branches, second.branches))
        return True

    def __ne__(self, other):
        return not self == other

    __hash__ = None

    def __repr__(self):
        # first variations, innermost first
        chain = [self]
        while chain[-1].branches:
            chain.append(chain[-1].branches[0])
        text = ''
        for tree in reversed(chain):
            nodelist = branches = ''
            if tree:
                nodelist = 'nodelist=[{}, ...], '.format(repr(tree[0]))
            if tree.branches:
                branches = 'branches=[{}, ...]'.format(text)
            text = '{}({}{})'.format(tree.__class__.__name__, nodelist, branches)
        return text

    def walk(self):
        """Yield this `GameTree` & all its branches, in document order."""
        stack = [self]
        while stack:
            tree = stack.pop()
            yield tree
            stack.extend(reversed(tree.branches))

    def trunk(self):
        """
        Return the main line of the game (nodes and variation A) as a new
        `GameTree`.
        """
        nodes = list(self)
        tree = self
        while tree.branches:
            tree = tree.branches[0]
            nodes.extend(tree)
        return GameTree(nodes)

    def property_search(self, pid, getall=False):
        """
        Search this `GameTree` for nodes containing matching properties.
        Return a `GameTree` containing the matched node(s).

        Arguments:

        - pid : string -- ID of properties to search for.
        - getall : boolean -- Set to true to return all `Node`'s that
          match, or to false to return only the first match.
        """
        matches = []
        for tree in self.walk():
            for node in tree:
                if pid in node:
                    matches.append(node)
                    if not getall:
                        return GameTree(matches)
        return GameTree(matches)

    def node_count(self):
        """Return the number of nodes in this tree and all its branches."""
        return sum(len(tree) for tree in self.walk())

    def depth(self):
        """Return the deepest branch nesting level (0 without branches)."""
        deepest = 0
        stack = [(self, 0)]
        while stack:
            tree, level = stack.pop()
            deepest = max(deepest, level)
            stack.extend((branch, level + 1) for branch in tree.branches)
        return deepest


class Collection(list):

    """
    A `Collection` is a `list` of one or more `GameTree` objects.

    `label` is the caller-supplied document label, and `warnings` the
    ordered `ParseWarning` objects collected while parsing.
    """

    label = None

    warnings = ()

    def __repr__(self):
        """
        The canonical string representation of the `Collection`.
        """
        if not self:
            return '{}()'.format(self.__class__.__name__)
        return '{}({}, ...)'.format(self.__class__.__name__, repr(self[0]))


# Parsing

class Parser:

    """
    Validating parser for SGF data. `Parser.parse()` will return a
    `Collection` object for the entire data, or raise a `ParseError` for the
    first problem found.

    Each `parse_*` method starts at `self.index` and leaves it just past
    what it consumed. Class attributes may be overridden in subclasses or
    instances.
    """

    encoding = TEXT_ENCODING
    """Charset for `bytes` data without a CA property."""

    catalog = PROPERTIES
    """General property catalog; see `extend_catalog()`."""

    game_types = GAME_TYPES
    """Mapping of GM number to `GameType`."""

    default_game = DEFAULT_GAME
    """GM number assumed when a game declares none."""

    lenient = False
    """If true, close game trees left open at the end of the data."""

    issue_warnings = True
    """If true, issue `ParseWarning` objects via `warnings.warn()` too."""

    class patterns:
        """Regular expression text matching patterns."""
        whitespace     = re.compile(r'\s*')
        property_id    = re.compile(r'[A-Z]+')
        property_value = re.compile(
            r'\[([^\\\]]*(?:\\.[^\\\]]*)*)\]', re.DOTALL)
        charset        = re.compile(
            rb'CA\s*\[([^\\\]]*(?:\\.[^\\\]]*)*)\]', re.DOTALL)

    def __init__(self, data, label=None):
        self.label = label
        """Document label for diagnostics (e.g. a file name)."""

        self.warnings = []
        """`ParseWarning` objects, in document order."""

        if isinstance(data, (bytes, bytearray)):
            data = self.decode(bytes(data))
        if data.startswith('\ufeff'):
            data = data[1:]

        self.data = data
        """The complete SGF data instance (`str`)."""

        self.datalen = len(data)
        """Length of `self.data`."""

        self.index = 0
        """Current parsing position in `self.data`."""

        self.game = None
        """`GameType` of the game being parsed."""

    def decode(self, data):
        """
        Decode `bytes` data with the charset of its first CA property,
        falling back to `self.encoding`.
        """
        encoding = self.encoding
        match = self.patterns.charset.search(data)
        if match:
            charset = match.group(1).decode('ascii', 'replace').strip()
            try:
                codecs.lookup(charset)
                encoding = charset
            except LookupError:
                self.warn(CharsetWarning(
                    f'unknown charset {charset!r}; decoding as {encoding}',
                    'CA'))
        try:
            return data.decode(encoding)
        except UnicodeDecodeError as error:
            raise ParseError(
                f'cannot decode data as {encoding}: {error.reason} '
                f'(byte {error.start + 1})', label=self.label) from None

    def error(self, error_class, message, index, property_id=None):
        """Return an `error_class` exception located at `self.data[index]`."""
        line = self.data.count('\n', 0, index) + 1
        column = index - self.data.rfind('\n', 0, index)
        return error_class(
            message, offset=index + 1, line=line, column=column,
            label=self.label, property_id=property_id)

    def warn(self, warning):
        self.warnings.append(warning)
        if self.issue_warnings:
            warnings.warn(warning, stacklevel=2)

    def skip_whitespace(self):
        self.index = self.patterns.whitespace.match(self.data, self.index).end()

    def finish(self, collection):
        collection.label = self.label
        collection.warnings = list(self.warnings)
        return collection

    def parse(self):
        """
        Parse the SGF data stored in `self.data`, and return a `Collection`.
        """
        collection = Collection()
        while True:
            self.skip_whitespace()
            if self.index >= self.datalen:
                break
            char = self.data[self.index]
            if char != '(':
                raise self.error(
                    StructuralError,
                    f'unexpected character {char!r} at document level',
                    self.index)
            self.index += 1
            collection.append(self.parse_game_tree())
        if not collection:
            raise self.error(StructuralError, 'no game tree found', 0)
        return self.finish(collection)

    def select_game(self, number):
        game = self.game_types.get(number)
        if game is None:
            game = GameType(number, f'game {number}')
        return game

    def parse_game_tree(self):
        """
        Parse and return one `GameTree` (with all its branches) from
        `self.data`.

        Called when "(" encountered (& consumed), ends when the matching ")"
        is consumed. Nested game trees are handled with an explicit stack,
        not by recursion.

        Raise `StructuralError` if a problem is encountered.
        """
        self.game = self.select_game(self.default_game)
        root = GameTree()
        # (tree, index of its "(")
        stack = [(root, self.index - 1)]
        while stack:
            tree, start = stack[-1]
            self.skip_whitespace()
            if self.index >= self.datalen:
                if not self.lenient:
                    raise self.error(
                        StructuralError, 'unterminated game tree', start)
                for (tree, start) in reversed(stack):
                    self.warn(UnterminatedTreeWarning(
                        'game tree closed at end of data', offset=start + 1))
                break
            char = self.data[self.index]
            if char == ';':
                if tree.branches:
                    raise self.error(
                        StructuralError, 'node after variation', self.index)
                self.index += 1
                tree.append(self.parse_node(root=tree is root and not tree))
            elif char == '(':
                branch = GameTree()
                tree.branches.append(branch)
                stack.append((branch, self.index))
                self.index += 1
            elif char == ')':
                self.index += 1
                stack.pop()
            else:
                raise self.error(
                    StructuralError,
                    f'unexpected character {char!r} outside node', self.index)
        return root

    def parse_node(self, root=False):
        """
        Parse and return one `Node`, which can be empty. `root` is true for
        the first node of a game.

        Called when ";" encountered (& consumed); ends (without consuming)
        at the start of the next node, the start of a branch, the end of the
        enclosing game tree, or the end of the data.

        The node's properties are all scanned before any value is built, so
        that a root node's GM is known when its coordinates are validated.

        Raise `StructuralError` for a malformed property,
        `DuplicatePropertyError` for a repeated property ID, and
        `ValueValidationError` for an invalid value.
        """
        scanned = {}
        while True:
            self.skip_whitespace()
            if self.index >= self.datalen or self.data[self.index] in ';()':
                break
            start = self.index
            property_id, raw_values = self.parse_property()
            if property_id in scanned:
                raise self.error(
                    DuplicatePropertyError,
                    f'duplicate property {property_id} in node',
                    start, property_id)
            scanned[property_id] = (start, raw_values)
        built = {}
        if root and 'GM' in scanned:
            built['GM'] = self.build_property('GM', *scanned['GM'])
            self.game = self.select_game(built['GM'].value.value)
        node = Node()
        for (property_id, (start, raw_values)) in scanned.items():
            if property_id not in built:
                built[property_id] = self.build_property(
                    property_id, start, raw_values)
            node.add_property(built[property_id])
        self.check_placement(node, root, scanned)
        return node

    def parse_property(self):
        """
        Parse one property: its ID and the raw text of its values. Return
        ``(property_id, [(raw, index of "["), ...])``.

        Called at the first character of a property ID; ends (without
        consuming) at the first non-whitespace character after the last
        value that is not "[".
        """
        start = self.index
        match = self.patterns.property_id.match(self.data, self.index)
        if not match:
            char = self.data[self.index]
            raise self.error(
                StructuralError, f'unexpected character {char!r} in node',
                self.index)
        property_id = match.group()
        self.index = match.end()
        raw_values = []
        while True:
            self.skip_whitespace()
            if self.index >= self.datalen or self.data[self.index] != '[':
                break
            match = self.patterns.property_value.match(self.data, self.index)
            if not match:
                raise self.error(
                    StructuralError, 'unterminated property value',
                    self.index, property_id)
            raw_values.append((match.group(1), self.index))
            self.index = match.end()
        if not raw_values:
            raise self.error(
                StructuralError, f'property {property_id} has no value',
                start, property_id)
        return property_id, raw_values

    def lookup(self, property_id):
        definition = self.catalog.get(property_id)
        if definition is None and self.game is not None:
            definition = self.game.properties.get(property_id)
        return definition

    def build_property(self, property_id, start, raw_values):
        """
        Return a `Property` with typed & validated values built from
        `raw_values` (see `parse_property()`).

        Unknown property IDs are recorded as `UnknownPropertyWarning` and
        their values kept as `Opaque` text.
        """
        definition = self.lookup(property_id)
        if definition is None:
            self.warn(UnknownPropertyWarning(
                f'unknown property {property_id}; value kept as text',
                property_id, start + 1))
            return Property(
                property_id, [Opaque(decode_text(raw)) for raw, _ in raw_values])
        if definition.cardinality == 'single' and len(raw_values) > 1:
            self.warn(PropertyValueCountWarning(
                f'property {property_id} takes a single value, got '
                f'{len(raw_values)}', property_id, start + 1))
        values = []
        for (raw, index) in raw_values:
            if (  definition.cardinality == 'elist' and len(raw_values) == 1
                  and not raw):
                values.append(NoneValue())
                continue
            try:
                value = definition.value_type.make(raw)
                value.validate(self.game)
            except ValueValidationError as error:
                raise self.error(
                    ValueValidationError,
                    f'{property_id}[{raw}]: {error.message}',
                    index, property_id) from None
            values.append(value)
        return Property(property_id, values, definition)

    def check_placement(self, node, root, scanned):
        """Record `PropertyPlacementWarning` objects for `node`."""
        types = set()
        for prop in node.values():
            if prop.definition is None:
                continue
            property_type = prop.definition.property_type
            types.add(property_type)
            if property_type == 'root' and not root:
                self.warn(PropertyPlacementWarning(
                    f'root property {prop.id} outside the root node',
                    prop.id, scanned[prop.id][0] + 1))
        if {'setup', 'move'} <= types:
            first = next(iter(scanned.values()))[0]
            self.warn(PropertyPlacementWarning(
                'node mixes setup and move properties', offset=first + 1))


class LenientParser(Parser):

    """
    Parser that closes game trees left open at the end of the data,
    recording an `UnterminatedTreeWarning` for each, instead of raising
    `StructuralError`.
    """

    lenient = True


class RootNodeParser(Parser):

    """
    For parsing only the first `GameTree` object's root `Node` of an SGF
    file. The rest of the data is not examined.
    """

    def parse(self):
        """
        Return a `Collection` holding one `GameTree` with the root `Node`
        only.
        """
        self.skip_whitespace()
        if self.index >= self.datalen:
            raise self.error(StructuralError, 'no game tree found', 0)
        if self.data[self.index] != '(':
            char = self.data[self.index]
            raise self.error(
                StructuralError,
                f'unexpected character {char!r} at document level', self.index)
        self.index += 1
        self.skip_whitespace()
        if self.index >= self.datalen or self.data[self.index] != ';':
            raise self.error(
                StructuralError, 'game tree has no root node', self.index)
        self.index += 1
        self.game = self.select_game(self.default_game)
        node = self.parse_node(root=True)
        return self.finish(Collection([GameTree(node)]))


ParseResult = collections.namedtuple('ParseResult', 'collection warnings')


def parse(data, label=None, lenient=False, parser_class=None):
    """
    Parse `data` (`str`, or `bytes` decoded per its CA property) and return
    a `ParseResult`: the `Collection` and the list of `ParseWarning`
    objects. Raise a `ParseError` subclass for the first fatal problem.

    `label` identifies the document in diagnostics. `lenient` selects
    `LenientParser`; `parser_class` overrides both.
    """
    if parser_class is None:
        parser_class = LenientParser if lenient else Parser
    collection = parser_class(data, label).parse()
    return ParseResult(collection, collection.warnings)
