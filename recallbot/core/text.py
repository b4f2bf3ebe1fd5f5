# recallbot/core/text.py
"""Text helpers: query normalization, stop words, significant words, news-dump detection."""

import re
from typing import List, Optional

# Pronouns, conjunctions, particles, prepositions and question words (RU + EN).
STOP_WORDS = frozenset({
    # Russian question words
    'кто', 'что', 'где', 'когда', 'как', 'почему', 'зачем', 'чего', 'чему', 'кого', 'кому',
    'какой', 'какая', 'какое', 'какие', 'каких', 'сколько', 'куда', 'откуда', 'чем',
    # Russian pronouns
    'это', 'эта', 'этот', 'эти', 'этого', 'этом', 'тот', 'та', 'то', 'те', 'того', 'там', 'тут',
    'мой', 'моя', 'мое', 'моё', 'мои', 'твой', 'твоя', 'твое', 'твоё', 'твои',
    'свой', 'своя', 'свое', 'своё', 'свои', 'своей', 'своего', 'своих', 'своим',
    'его', 'ему', 'она', 'они', 'оно', 'них', 'нас', 'вас', 'вам', 'нам', 'мне', 'меня',
    'тебе', 'тебя', 'себя', 'себе',
    # Russian particles, conjunctions, prepositions
    'про', 'об', 'обо', 'ли', 'же', 'бы', 'не', 'ни', 'да', 'нет', 'или', 'и', 'а', 'но',
    'в', 'на', 'с', 'к', 'у', 'о', 'за', 'из', 'по', 'до', 'от', 'для', 'при', 'без',
    'над', 'под', 'между', 'через', 'ещё', 'еще', 'уже', 'только', 'тоже', 'также',
    'самый', 'самая', 'самое', 'очень', 'много', 'мало',
    'все', 'всё', 'всех', 'весь', 'вся',
    'был', 'была', 'было', 'были', 'есть', 'будет', 'можно', 'нужно', 'надо',
    # English
    'the', 'and', 'for', 'are', 'was', 'were', 'you', 'your', 'yours', 'our', 'his', 'her',
    'its', 'they', 'them', 'their', 'this', 'that', 'these', 'those', 'what', 'who', 'whom',
    'why', 'how', 'when', 'where', 'which', 'with', 'from', 'into', 'about', 'not', 'but',
    'can', 'could', 'would', 'should', 'did', 'does', 'have', 'has', 'had', 'been', 'any',
})

MIN_SIGNIFICANT_LENGTH = 3

_WORD_RE = re.compile(r"\w+", re.UNICODE)
_WHITESPACE_RE = re.compile(r"\s+")
_URL_RE = re.compile(r"https?://")

_CHAR_REPLACEMENTS = {
    "\u00a0": " ",   # no-break space
    "\u2007": " ",
    "\u202f": " ",
    "\t": " ",
    "\r": " ",
    "\n": " ",
    "\u200b": "",    # zero-width space
    "\u200c": "",
    "\u200d": "",
    "\u2060": "",
    "\ufeff": "",    # BOM
    "\u2013": "-",   # en dash
    "\u2014": "-",   # em dash
    "\u2212": "-",   # minus sign
    "\u201c": "\"",
    "\u201d": "\"",
    "\u201e": "\"",
    "\u00ab": "\"",
    "\u00bb": "\"",
    "\u2018": "'",
    "\u2019": "'",
    "\u2026": "...",
}
_TRANSLATION = str.maketrans(_CHAR_REPLACEMENTS)

_EMOJI_RE = re.compile(
    "["
    "\U0001F300-\U0001FAFF"  # pictographs, emoticons, transport, supplemental
    "\U00002600-\U000027BF"  # misc symbols, dingbats
    "\U0001F1E6-\U0001F1FF"  # flags
    "\U0000FE0F"             # variation selector
    "]+"
)

NEWS_PATTERNS = ['\u2014 СМИ', 'Подписаться', '⚡', '❗', '🔴', 'BREAKING', 'Срочно:', 'Источник:']


def normalize_query(text: Optional[str], remove_emoji: bool = False) -> str:
    """
    Normalize user input before expansion and embedding.

    Folds typographic punctuation to ASCII, strips invisible characters and
    collapses whitespace. Emoji are replaced by a space when requested.
    """
    if not text:
        return ""

    text = text.translate(_TRANSLATION)
    if remove_emoji:
        text = _EMOJI_RE.sub(' ', text)

    return _WHITESPACE_RE.sub(' ', text).strip()


def tokenize(text: str) -> List[str]:
    """Case-folded word tokens in order of appearance."""
    return _WORD_RE.findall(text.casefold())


def is_significant(word: str) -> bool:
    return len(word) >= MIN_SIGNIFICANT_LENGTH and word not in STOP_WORDS and not word.isdigit()


def extract_significant_words(text: str) -> List[str]:
    """
    Significant words of text, in order, without duplicates.

    A word is significant when, after case folding, it has at least
    three characters and is not a stop word.
    """
    seen = set()
    words = []
    for token in tokenize(text):
        if token in seen or not is_significant(token):
            continue
        seen.add(token)
        words.append(token)
    return words


def is_news_dump(text: Optional[str]) -> bool:
    """Long reposted news (many links, alert emoji, "subscribe" footers) needs two indicators."""
    if not text:
        return False

    indicators = 0
    if len(text) > 800:
        indicators += 1
    if len(_URL_RE.findall(text)) >= 2:
        indicators += 1
    lowered = text.casefold()
    if any(pattern.casefold() in lowered for pattern in NEWS_PATTERNS):
        indicators += 1
    # Leading emoji outside the BMP
    if ord(text[0]) > 0xFFFF:
        indicators += 1

    return indicators >= 2


def truncate(text: str, max_chars: int) -> str:
    """Cut text to max_chars, marking the cut with an ellipsis."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars].rstrip() + "..."
