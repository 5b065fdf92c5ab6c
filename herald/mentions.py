"""Inline ``@`` mention extraction.

Numbers are ``@`` followed by optional invisible formatting characters (the
bidi marks WhatsApp wraps around phone numbers), an optional ``+`` and ASCII digits.
Names are the word after a free-standing ``@``, extended by up to two more
capitalised words, plus ``@first_second`` compounds.

The name heuristic is regex-only and will mis-segment unusual capitalisation;
swap in another ``MentionExtractor`` if that matters.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

# regex character-class body: zero-width and bidi formatting marks
INVISIBLE_CHARS = r"\u200b-\u200f\u202a-\u202e\u2060-\u2064\ufeff"

_NUMBER_RE = re.compile(rf"@[{INVISIBLE_CHARS}]*(\+?[0-9]+)")
_VALID_NUMBER_RE = re.compile(r"^\+?[0-9]+$")
_ASCII_DIGIT_RE = re.compile(r"[0-9]")
_WORD_END_RE = re.compile(r"[\s.,!?;:'\"]")
_EXTRA_WORDS_RE = re.compile(r"^\s+([A-Z][a-z]+)(\s+[A-Z][a-z]+)?")
_COMPOUND_RE = re.compile(r"@([a-zA-Z]+_[a-zA-Z]+)")
_RESIDUAL_RE = re.compile(r"@\S+")
_SPACES_RE = re.compile(r"\s+")


def _dedupe(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


@dataclass
class Mentions:
    numbers: list[str] = field(default_factory=list)
    names: list[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.numbers or self.names)


class MentionExtractor(ABC):
    """Finds mention tokens in message text."""

    @abstractmethod
    def extract(self, text: str) -> Mentions:
        ...

    @abstractmethod
    def strip_mentions(self, text: str, numbers: list[str], names: list[str]) -> str:
        ...


class RegexMentionExtractor(MentionExtractor):
    """Default regex-based extractor."""

    def extract_numbers(self, text: str) -> list[str]:
        if not text:
            return []
        numbers = [m.group(1) for m in _NUMBER_RE.finditer(text)]
        if not numbers:
            for word in text.split():
                if not word.startswith("@"):
                    continue
                candidate = re.sub(r"[^0-9+]", "", word[1:])
                if candidate and _VALID_NUMBER_RE.match(candidate):
                    numbers.append(candidate)
        return _dedupe(numbers)

    def extract_names(self, text: str) -> list[str]:
        if not text:
            return []
        names = []
        for m in re.finditer("@", text):
            pos = m.start()
            # skip e-mail style "user@host"
            if pos > 0 and text[pos - 1].isascii() and text[pos - 1].isalnum():
                continue
            after = text[pos + 1:]
            end = _WORD_END_RE.search(after)
            first = after[: end.start()] if end else after
            if len(first) < 2 or _ASCII_DIGIT_RE.search(first):
                continue
            words = [first]
            extra = _EXTRA_WORDS_RE.match(after[len(first):])
            if extra:
                words += [w.strip() for w in extra.groups() if w]
            names.append(" ".join(words))

        for m in _COMPOUND_RE.finditer(text):
            if m.group(1) not in names:
                names.append(m.group(1))
        return _dedupe(names)

    def extract(self, text: str) -> Mentions:
        numbers = self.extract_numbers(text)
        names = [n for n in self.extract_names(text) if n not in numbers]
        return Mentions(numbers=numbers, names=names)

    def strip_mentions(self, text: str, numbers: list[str], names: list[str]) -> str:
        """Remove mention tokens and tidy whitespace, leaving the payload."""
        if not text:
            return ""
        cleaned = text
        for token in list(names) + list(numbers):
            cleaned = re.sub(rf"@{re.escape(token)}\b", "", cleaned)
        cleaned = _RESIDUAL_RE.sub("", cleaned)
        return _SPACES_RE.sub(" ", cleaned).strip()
