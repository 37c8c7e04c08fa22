"""
Numeric text normalization.

WHAT: Turn spoken numbers ("two hundred", "दो सौ", "१००") into floats
WHY: The completion service sometimes returns quantities and prices as words
HOW: Digit folding via unicodedata, then a small additive/multiplicative word grammar
"""

import math
import re
import unicodedata

_NUMERIC = re.compile(r"^\d+(?:\.\d+)?$")
_TOKEN_SPLIT = re.compile(r"[\s\-,]+")
_CURRENCY_NOISE = re.compile(r"₹|\b(?:rs\.?|inr)(?=\s|\d|$)")

_UNITS: dict[str, float] = {
    # English
    "zero": 0, "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
    "eleven": 11, "twelve": 12, "thirteen": 13, "fourteen": 14, "fifteen": 15,
    "sixteen": 16, "seventeen": 17, "eighteen": 18, "nineteen": 19,
    "twenty": 20, "thirty": 30, "forty": 40, "fifty": 50,
    "sixty": 60, "seventy": 70, "eighty": 80, "ninety": 90,
    "half": 0.5,
    # Hindi
    "एक": 1, "दो": 2, "तीन": 3, "चार": 4, "पाँच": 5, "पांच": 5,
    "छह": 6, "छः": 6, "सात": 7, "आठ": 8, "नौ": 9, "दस": 10,
    "ग्यारह": 11, "बारह": 12, "तेरह": 13, "चौदह": 14, "पंद्रह": 15,
    "सोलह": 16, "सत्रह": 17, "अठारह": 18, "उन्नीस": 19, "बीस": 20,
    "पच्चीस": 25, "तीस": 30, "पैंतीस": 35, "चालीस": 40, "पैंतालीस": 45,
    "पचास": 50, "साठ": 60, "सत्तर": 70, "पचहत्तर": 75, "अस्सी": 80, "नब्बे": 90,
    "आधा": 0.5, "डेढ़": 1.5, "ढाई": 2.5,
    # Romanized Hindi
    "ek": 1, "do": 2, "teen": 3, "char": 4, "chaar": 4, "paanch": 5, "panch": 5,
    "chhe": 6, "saat": 7, "aath": 8, "nau": 9, "das": 10, "bees": 20,
    "pachchis": 25, "tees": 30, "chalis": 40, "pachas": 50, "saath": 60,
    "sattar": 70, "assi": 80, "nabbe": 90, "dedh": 1.5, "dhai": 2.5,
}

_HUNDRED = {"hundred", "सौ", "sau"}

_SCALES: dict[str, float] = {
    "thousand": 1_000, "हज़ार": 1_000, "हजार": 1_000, "hazaar": 1_000, "hazar": 1_000,
    "lakh": 100_000, "lac": 100_000, "लाख": 100_000,
    "crore": 10_000_000, "करोड़": 10_000_000,
    "million": 1_000_000,
}

_FILLER = {"and", "a", "only", "rupees", "rupee", "रुपये", "रुपए", "रुपया"}


def _nfc(word: str) -> str:
    return unicodedata.normalize("NFC", word)


# Input is NFC-normalized, so the tables must be too
_UNITS = {_nfc(k): v for k, v in _UNITS.items()}
_HUNDRED = {_nfc(k) for k in _HUNDRED}
_SCALES = {_nfc(k): v for k, v in _SCALES.items()}
_FILLER = {_nfc(k) for k in _FILLER}


def _fold_digits(text: str) -> str:
    """Replace any Unicode decimal digit (Devanagari, Bengali, ...) with ASCII."""
    return "".join(
        str(unicodedata.decimal(ch)) if ch.isdecimal() else ch
        for ch in text
    )


def parse_number(value: float | int | str) -> float:
    """
    Parse a number given as a numeric type, digits, or number words.

    Raises:
        ValueError: Value is not a finite, non-ambiguous number
    """
    if isinstance(value, bool):
        raise ValueError(f"not a number: {value!r}")

    if isinstance(value, (int, float)):
        number = float(value)
        if not math.isfinite(number):
            raise ValueError(f"not a finite number: {value!r}")
        return number

    text = _nfc(_fold_digits(str(value))).strip().lower()
    text = _CURRENCY_NOISE.sub(" ", text).strip()

    compact = text.replace(",", "")
    if _NUMERIC.match(compact):
        return float(compact)

    return _parse_words(text)


def _parse_words(text: str) -> float:
    tokens = [t for t in _TOKEN_SPLIT.split(text) if t and t not in _FILLER]
    if not tokens:
        raise ValueError(f"no number in {text!r}")

    total = 0.0
    current = 0.0
    seen_number = False

    for token in tokens:
        if _NUMERIC.match(token):
            current += float(token)
            seen_number = True
        elif token in _UNITS:
            current += _UNITS[token]
            seen_number = True
        elif token in _HUNDRED:
            current = (current or 1) * 100
            seen_number = True
        elif token in _SCALES:
            total += (current or 1) * _SCALES[token]
            current = 0.0
            seen_number = True
        else:
            raise ValueError(f"unrecognized number word {token!r} in {text!r}")

    if not seen_number:
        raise ValueError(f"no number in {text!r}")
    return total + current


def normalize_number(number: float) -> float | int:
    """Integral floats become ints ("two hundred" -> 200)."""
    return int(number) if float(number).is_integer() else number
