"""Tests for script-based language detection."""

from __future__ import annotations

import pytest

from expedition_chat.language import detect_script_language, language_name


class TestDetectScriptLanguage:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("日本語のテキスト", "ja"),
            ("नेपाली पाठ", "hi"),
            ("我想去西藏", "zh"),
            ("에베레스트 트레킹", "ko"),
            ("مرحبا", "ar"),
            ("Привет, Непал", "ru"),
            ("สวัสดี", "th"),
            ("བོད་", "bo"),
        ],
    )
    def test_detects_script(self, text, expected):
        assert detect_script_language(text) == expected

    @pytest.mark.parametrize("text", ["Hello there", "", None, "   ", "123 !!! ???", "Café crème"])
    def test_latin_or_empty_returns_none(self, text):
        assert detect_script_language(text) is None

    def test_kanji_only_text_is_reported_as_chinese(self):
        assert detect_script_language("東京") == "zh"

    def test_mixed_latin_and_devanagari_detects_devanagari(self):
        assert detect_script_language("Namaste नमस्ते, quote please") == "hi"

    def test_digits_and_punctuation_are_ignored(self):
        assert detect_script_language("2026!!! 日本") == "zh"


class TestLanguageName:
    def test_known_tags(self):
        assert language_name("hi") == "Hindi"
        assert language_name("JA") == "Japanese"

    def test_unknown_tag_is_returned_unchanged(self):
        assert language_name("xx") == "xx"
