"""Rendering of flag bit-sets in the 64-glyph alphabet."""

from common.constants import FLAG_GLYPHS
from common.exceptions import FormatError
from common.types import FileFlags

BASE = len(FLAG_GLYPHS)


def number_to_glyphs(value: int) -> str:
    """
    Render a non-negative integer in base 64, most significant glyph first.

    Zero renders as the empty string so default flags cost no bytes.
    """
    if value < 0:
        raise ValueError(f"Cannot render negative value {value}")
    glyphs = []
    while value > 0:
        value, remainder = divmod(value, BASE)
        glyphs.append(FLAG_GLYPHS[remainder])
    return "".join(reversed(glyphs))


def glyphs_to_number(text: str) -> int:
    """
    Parse a base-64 glyph string back to an integer.

    Raises:
        FormatError: If ``text`` contains a character outside the alphabet
    """
    value = 0
    for char in text:
        digit = FLAG_GLYPHS.find(char)
        if digit == -1:
            raise FormatError(f"Invalid flag glyph {char!r} in {text!r}")
        value = value * BASE + digit
    return value


def encode_flags(flags: FileFlags) -> str:
    return number_to_glyphs(flags.value)


def decode_flags(text: str) -> FileFlags:
    return FileFlags(glyphs_to_number(text))
