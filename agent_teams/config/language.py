"""
Lightweight detection of the user's language from Unicode scripts.
"""

LANGUAGE_NAMES = {
    "ja": "Japanese (日本語)",
    "ko": "Korean (한국어)",
    "zh": "Chinese (中文)",
    "en": "English",
}


def detect_language(text: str) -> str:
    """
    Guess a BCP-47 tag for ``text``.

    Any kana means Japanese, any Hangul means Korean, CJK ideographs without
    kana mean Chinese. Everything else is treated as English.
    """
    kana = hangul = ideographs = 0
    for ch in text:
        cp = ord(ch)
        if 0x3040 <= cp <= 0x30FF:
            kana += 1
        elif 0x4E00 <= cp <= 0x9FFF:
            ideographs += 1
        elif 0xAC00 <= cp <= 0xD7AF:
            hangul += 1

    if kana:
        return "ja"
    if hangul:
        return "ko"
    if ideographs:
        return "zh"
    return "en"


def language_display_name(tag: str) -> str:
    return LANGUAGE_NAMES.get(tag, tag)
