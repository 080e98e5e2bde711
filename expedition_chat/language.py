"""Script-based language hinting for incoming chat messages.

This is a *script* detector, not a language identifier: every Cyrillic
message maps to ``ru`` and Nepali written in Devanagari maps to ``hi``.
The result is only used to nudge a client's preferred-language field, so
the coarse mapping is good enough.  Latin text returns ``None``, meaning
"assume English and leave the client's locale alone".
"""

from __future__ import annotations

import re
import unicodedata

# (language tag, inclusive code-point ranges).  Order matters: first match
# wins, and kana is checked before the shared CJK ideographs so that
# Japanese text containing kanji is not reported as Chinese.
_SCRIPT_RANGES: list[tuple[str, tuple[tuple[int, int], ...]]] = [
    ("hi", ((0x0900, 0x097F), (0xA8E0, 0xA8FF))),  # Devanagari
    ("ja", ((0x3040, 0x309F), (0x30A0, 0x30FF), (0x31F0, 0x31FF))),  # Hiragana / Katakana
    ("zh", ((0x4E00, 0x9FFF), (0x3400, 0x4DBF), (0xF900, 0xFAFF))),  # CJK ideographs
    ("ko", ((0xAC00, 0xD7AF), (0x1100, 0x11FF), (0x3130, 0x318F))),  # Hangul
    ("ar", ((0x0600, 0x06FF), (0x0750, 0x077F), (0xFB50, 0xFDFF), (0xFE70, 0xFEFF))),  # Arabic
    ("ru", ((0x0400, 0x04FF), (0x0500, 0x052F))),  # Cyrillic
    ("th", ((0x0E00, 0x0E7F),)),  # Thai
    ("bn", ((0x0980, 0x09FF),)),  # Bengali
    ("gu", ((0x0A80, 0x0AFF),)),  # Gujarati
    ("ta", ((0x0B80, 0x0BFF),)),  # Tamil
    ("te", ((0x0C00, 0x0C7F),)),  # Telugu
    ("kn", ((0x0C80, 0x0CFF),)),  # Kannada
    ("ml", ((0x0D00, 0x0D7F),)),  # Malayalam
    ("pa", ((0x0A00, 0x0A7F),)),  # Gurmukhi
    ("am", ((0x1200, 0x137F), (0x1380, 0x139F))),  # Ethiopic
    ("si", ((0x0D80, 0x0DFF),)),  # Sinhala
    ("my", ((0x1000, 0x109F),)),  # Myanmar
    ("bo", ((0x0F00, 0x0FFF),)),  # Tibetan
]

_DIGITS_AND_SPACE = re.compile(r"[\s\d]+")


def _strip_noise(text: str) -> str:
    """Drop whitespace, digits and punctuation/symbol characters."""
    text = _DIGITS_AND_SPACE.sub("", text)
    return "".join(
        ch for ch in text if unicodedata.category(ch)[0] not in ("P", "S", "N")
    )


def _in_ranges(code_point: int, ranges: tuple[tuple[int, int], ...]) -> bool:
    return any(low <= code_point <= high for low, high in ranges)


def detect_script_language(text: str | None) -> str | None:
    """Return a language tag for the dominant non-Latin script, else ``None``.

    >>> detect_script_language("日本語のテキスト")
    'ja'
    >>> detect_script_language("Hello there") is None
    True
    """
    if not text:
        return None

    letters = _strip_noise(text)
    if not letters:
        return None

    code_points = [ord(ch) for ch in letters]
    for tag, ranges in _SCRIPT_RANGES:
        if any(_in_ranges(cp, ranges) for cp in code_points):
            return tag
    return None


LANGUAGE_NAMES = {
    "en": "English",
    "hi": "Hindi",
    "ne": "Nepali",
    "ja": "Japanese",
    "zh": "Chinese",
    "ko": "Korean",
    "ar": "Arabic",
    "ru": "Russian",
    "th": "Thai",
    "bn": "Bengali",
    "gu": "Gujarati",
    "ta": "Tamil",
    "te": "Telugu",
    "kn": "Kannada",
    "ml": "Malayalam",
    "pa": "Punjabi",
    "am": "Amharic",
    "si": "Sinhala",
    "my": "Burmese",
    "bo": "Tibetan",
    "fr": "French",
    "de": "German",
    "es": "Spanish",
}


def language_name(tag: str) -> str:
    """English name for a language tag; unknown tags are returned as-is."""
    return LANGUAGE_NAMES.get(tag.lower(), tag)
