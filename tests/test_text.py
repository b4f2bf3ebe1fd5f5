"""Tests for text helpers."""

import pytest

from recallbot.core.text import (
    extract_significant_words,
    is_news_dump,
    is_significant,
    normalize_query,
    truncate,
)


class TestNormalizeQuery:
    def test_empty(self):
        assert normalize_query(None) == ""
        assert normalize_query("   ") == ""

    def test_collapses_whitespace_and_invisible_chars(self):
        assert normalize_query("  привет\u00a0\u200bмир \n ") == "привет мир"

    def test_folds_typographic_punctuation(self):
        assert normalize_query("\u00abцитата\u00bb \u2014 да\u2026") == '"цитата" - да...'

    def test_emoji_kept_by_default(self):
        assert "\U0001F600" in normalize_query("ok \U0001F600")

    def test_emoji_removed_on_request(self):
        assert normalize_query("ok \U0001F600 go", remove_emoji=True) == "ok go"


class TestSignificantWords:
    @pytest.mark.parametrize(
        ("word", "expected"),
        [
            ("создан", True),
            ("чего", False),   # question word
            ("для", False),    # preposition
            ("ты", False),     # too short
            ("2024", False),   # digits
            ("бот", True),
        ],
    )
    def test_is_significant(self, word, expected):
        assert is_significant(word) == expected

    def test_order_kept_and_duplicates_dropped(self):
        assert extract_significant_words("Кошка видит кошку и КОШКА спит") == ["кошка", "видит", "кошку", "спит"]

    def test_question_words_only(self):
        assert extract_significant_words("кто что где когда?") == []


class TestIsNewsDump:
    def test_short_chat_message(self):
        assert not is_news_dump("привет, как дела?")

    def test_single_indicator_is_not_enough(self):
        assert not is_news_dump("x" * 900)

    def test_links_and_subscribe_footer(self):
        text = "Курс упал https://a.example https://b.example Подписаться"
        assert is_news_dump(text)

    def test_leading_emoji_and_breaking(self):
        assert is_news_dump("\U0001F4E2 BREAKING: something happened")

    def test_empty(self):
        assert not is_news_dump("")
        assert not is_news_dump(None)


class TestTruncate:
    def test_short_text_untouched(self):
        assert truncate("abc", 5) == "abc"

    def test_cut_with_ellipsis(self):
        assert truncate("abcdefgh", 3) == "abc..."
