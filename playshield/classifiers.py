import re
from typing import Iterable, Protocol


# Fake "leave this page?" / browser update / virus scare confirms.
DEFAULT_CONFIRM_KEYWORDS = (
    "leave",
    "chrome",
    "update",
    "install",
    "virus",
    "warning",
)

# Adblock and VPN nag alerts.
DEFAULT_ALERT_KEYWORDS = (
    "ad",
    "block",
    "vpn",
    "disable",
)

# Everyday words that contain an alert keyword ("ad") but are not nags.
DEFAULT_ALERT_EXCLUSIONS = (
    "loaded",
    "loading",
    "download",
    "downloading",
    "upload",
    "ready",
    "already",
    "reading",
)


class MessageClassifier(Protocol):
    def matches(self, text) -> bool:
        ...


def _clean(words) -> tuple:
    cleaned = []
    for word in words or ():
        value = str(word).strip().lower()
        if value and value not in cleaned:
            cleaned.append(value)
    return tuple(cleaned)


class KeywordClassifier:
    """
    Case-insensitive keyword matcher for dialog messages.

    Keywords match anywhere, inside compound words too ("antivirus",
    "reinstall", "AntiAdblock"). Exclusions are whole words removed from the
    message before matching, for words like "loaded" that contain a keyword
    by accident. word_start=True restricts matches to the start of a word.
    Keywords and exclusions are data; swap the lists to tune.
    """

    def __init__(self, keywords: Iterable[str], exclusions: Iterable[str] = (), word_start: bool = False):
        self.keywords = _clean(keywords)
        self.exclusions = _clean(exclusions)
        self.word_start = bool(word_start)

        self._pattern = None
        if self.keywords:
            alternation = "|".join(re.escape(k) for k in self.keywords)
            prefix = r"\b" if self.word_start else ""
            self._pattern = re.compile(rf"{prefix}(?:{alternation})", re.IGNORECASE)

        self._exclusion_pattern = None
        if self.exclusions:
            alternation = "|".join(re.escape(w) for w in self.exclusions)
            self._exclusion_pattern = re.compile(rf"\b(?:{alternation})\b", re.IGNORECASE)

    def matches(self, text) -> bool:
        if text is None or self._pattern is None:
            return False
        text = str(text)
        if self._exclusion_pattern is not None:
            text = self._exclusion_pattern.sub(" ", text)
        return self._pattern.search(text) is not None

    def __repr__(self):
        return f"KeywordClassifier({list(self.keywords)!r}, exclusions={list(self.exclusions)!r})"


def default_confirm_classifier() -> KeywordClassifier:
    return KeywordClassifier(DEFAULT_CONFIRM_KEYWORDS)


def default_alert_classifier() -> KeywordClassifier:
    return KeywordClassifier(DEFAULT_ALERT_KEYWORDS, DEFAULT_ALERT_EXCLUSIONS)
