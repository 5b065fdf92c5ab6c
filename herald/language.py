"""Lightweight language detection and relay-intent markers.

Detection is a heuristic over Unicode script ranges plus a small dictionary
of romanized Bengali words. It is good enough to pick a reply language, not
to classify arbitrary text.
"""

import re

_BENGALI = re.compile(r"[\u0980-\u09FF]")
_ARABIC = re.compile(r"[\u0600-\u06FF]")
_DEVANAGARI = re.compile(r"[\u0900-\u097F]")
_LATIN = re.compile(r"[A-Za-z]")

# Common Bengali words written in Latin script
ROMANIZED_BENGALI = frozenset({
    "ki", "koro", "korchi", "korbe", "kore", "bolo", "bolchi", "bolbe", "bole",
    "ache", "hobe", "hoyeche", "hoye", "jabe", "jao", "asho", "eshechi", "thik",
    "bhalo", "kharap", "sundor", "bhai", "bon", "amake", "tomake", "apnake", "ke",
    "keno", "kothay", "kivabe", "ekhon", "pore", "age", "sathe", "jonno", "tumi",
    "ami", "apni", "tui", "ora", "tara", "amra", "tomra", "apnara", "hoy", "noy",
})

ENGLISH_RELAY_MARKERS = (
    "tell", "say to", "inform", "let know", "message", "ask",
    "please tell", "can you tell", "would you tell", "could you tell",
)

BENGALI_RELAY_MARKERS = (
    "বলো", "বল", "জানাও", "বলতে", "বলবে", "জানাবে", "জিজ্ঞাসা", "জিজ্ঞেস",
    "bolo", "bol", "janao", "bolte", "bolbe", "janabe", "jiggasa", "jigges",
)

# Latin markers match on word boundaries so "messages" or "bolt" do not count.
_LATIN_MARKER_RE = re.compile(
    r"\b(?:"
    + "|".join(
        re.escape(m).replace(r"\ ", r"\s+")
        for m in ENGLISH_RELAY_MARKERS + BENGALI_RELAY_MARKERS
        if m.isascii()
    )
    + r")\b",
    re.IGNORECASE,
)
_SCRIPT_MARKERS = tuple(m for m in BENGALI_RELAY_MARKERS if not m.isascii())


def detect_script_language(text: str) -> str:
    """Classify by script: Bengali, Arabic, Devanagari, Latin, else ``auto``."""
    if not text or not text.strip():
        return "auto"
    if _BENGALI.search(text):
        return "bn"
    if _ARABIC.search(text):
        return "ar"
    if _DEVANAGARI.search(text):
        return "hi"
    if _LATIN.search(text):
        return "en"
    return "auto"


def detect_language(text: str) -> str:
    """Script detection plus romanized Bengali.

    Latin-script text counts as ``bn`` when at least a third of its
    whitespace-separated words are common romanized Bengali words.
    """
    lang = detect_script_language(text)
    if lang != "en":
        return lang
    words = text.lower().split()
    hits = sum(1 for w in words if w.strip(".,!?;:'\"") in ROMANIZED_BENGALI)
    if hits > 0 and hits * 3 >= len(words):
        return "bn"
    return "en"


def detect_relay_intent(raw_text: str, payload: str) -> bool:
    """True when ``raw_text`` asks to pass ``payload`` on to someone."""
    if not raw_text or not payload or not payload.strip():
        return False
    if _LATIN_MARKER_RE.search(raw_text):
        return True
    return any(marker in raw_text for marker in _SCRIPT_MARKERS)
