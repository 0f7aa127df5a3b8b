"""Tests for file flags and their glyph rendering."""

import pytest

from codec.flags import decode_flags, encode_flags, glyphs_to_number, number_to_glyphs
from common.exceptions import FormatError
from common.types import FileAttributes, FileFlags


def test_zero_renders_empty():
    assert number_to_glyphs(0) == ''
    assert glyphs_to_number('') == 0


def test_single_glyph_values():
    assert number_to_glyphs(9) == '9'
    assert number_to_glyphs(10) == 'A'
    assert number_to_glyphs(63) == '='
    assert number_to_glyphs(64) == '10'


def test_flag_bits_compose():
    flags = FileFlags.of(encrypted=True, executable=True)

    assert flags.value == 9
    assert flags.encrypted and flags.executable
    assert not flags.hidden and not flags.adult
    assert (FileFlags(FileFlags.HIDDEN) | FileFlags.ADULT).value == 6


def test_reserved_bits_survive_decoding():
    flags = FileFlags(FileFlags.HIDDEN | 1024)

    decoded = decode_flags(encode_flags(flags))

    assert decoded.value == 1026
    assert decoded.hidden


def test_with_and_without_flag():
    flags = FileFlags().with_flag(FileFlags.ADULT)

    assert flags.adult
    assert not flags.without_flag(FileFlags.ADULT)


def test_invalid_glyph_rejected():
    with pytest.raises(FormatError):
        glyphs_to_number('A-')


def test_negative_flags_rejected():
    with pytest.raises(ValueError):
        FileFlags(-1)


def test_attributes_validate_vocabularies():
    attributes = FileAttributes(flags=2, license='7', labels='21')

    assert attributes.flags == FileFlags(2)
    assert attributes.license_name == 'CC0'
    assert attributes.label_names == ['Favorite', 'Important']
    assert not attributes.is_default


@pytest.mark.parametrize('kwargs', [
    {'license': '8'},
    {'labels': 'x'},
    {'labels': '11'},
])
def test_attributes_reject_invalid_values(kwargs):
    with pytest.raises(ValueError):
        FileAttributes(**kwargs)
