"""Display index generation for signature elements."""

from enum import Enum

ROMAN_NUMERALS = [
	(1000, "M"), (900, "CM"), (500, "D"), (400, "CD"),
	(100, "C"), (90, "XC"), (50, "L"), (40, "XL"),
	(10, "X"), (9, "IX"), (5, "V"), (4, "IV"), (1, "I"),
]


class IndexType(Enum):
	DEC = "dec"
	ROMAN = "roman"
	SMALL_CHAR = "small_char"
	CAPITAL_CHAR = "capital_char"


def to_roman(number: int) -> str:
	"""Standard subtractive notation. Outside 1..3999 falls back to decimal."""
	if number < 1 or number > 3999:
		return str(number)
	parts = []
	for value, symbol in ROMAN_NUMERALS:
		count, number = divmod(number, value)
		parts.append(symbol * count)
	return "".join(parts)


def to_letters(number: int, upper: bool = False) -> str:
	"""Bijective base-26: 1 -> a, 26 -> z, 27 -> aa, 28 -> ab."""
	if number < 1:
		return ""
	letters = []
	while number > 0:
		number, remainder = divmod(number - 1, 26)
		letters.append(chr(ord("a") + remainder))
	result = "".join(reversed(letters))
	return result.upper() if upper else result


def format_index(number: int, index_type) -> str:
	"""Render a 1-based position under the component's numbering scheme."""
	if number < 1:
		return ""
	index_type = IndexType(index_type)
	if index_type == IndexType.ROMAN:
		return to_roman(number)
	if index_type == IndexType.SMALL_CHAR:
		return to_letters(number)
	if index_type == IndexType.CAPITAL_CHAR:
		return to_letters(number, upper=True)
	return str(number)
