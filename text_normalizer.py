from __future__ import annotations

import re
from typing import Final

# Sentence-ending punctuation, Latin and CJK.
PUNC_EOS: Final[str] = ".?!。？！"
# Clause-level punctuation; a line ending in one of these needs no separator.
PUNC_COMMA: Final[str] = ",，、\u2014"
DEFAULT_EOS: Final[str] = "。"

SHORT_THRESHOLD: Final[int] = 12
MEDIUM_THRESHOLD: Final[int] = 32

_CJK_RANGES: Final[tuple[tuple[str, str], ...]] = (
    ("\u4e00", "\u9fff"),
    ("\u3400", "\u4dbf"),
    ("\u3040", "\u30ff"),
    ("\uac00", "\ud7af"),
)

# Period between two capitals with nothing after: "U.S" -> "US".
ACRONYM_RE: Final[re.Pattern[str]] = re.compile(r"([A-Z])\s*\.\s*([A-Z])(?![A-Za-z]+)")
# Same, but a word follows, so keep the space: "A. Smith" -> "A Smith".
ACRONYM_WITH_WORDS_RE: Final[re.Pattern[str]] = re.compile(r"([A-Z])\s*\.\s*([A-Z])(?=[A-Za-z]+)")
PUNCTUATION_SPACE_RE: Final[re.Pattern[str]] = re.compile(r"\s*([.!?,])\s*")
CJ_PUNCTUATION_SPACE_RE: Final[re.Pattern[str]] = re.compile(r"\s*([。！？，、])\s*")
NOTICE_PREFIX_RE: Final[re.Pattern[str]] = re.compile(r"^\[.+\] ")


def utf8_len(text: str) -> int:
    return len(text.encode("utf-8"))


def ends_with_eos(text: str) -> bool:
    return bool(text) and text[-1] in PUNC_EOS


def rfind_eos(text: str) -> int:
    """Index of the last sentence-ending character in ``text``, or -1."""
    for index in range(len(text) - 1, -1, -1):
        if text[index] in PUNC_EOS:
            return index
    return -1


def is_cjk(char: str) -> bool:
    return any(low <= char <= high for low, high in _CJK_RANGES)


def replace_newlines(text: str, byte_threshold: int = MEDIUM_THRESHOLD) -> str:
    """Turn raw recognizer line breaks into punctuation.

    A line long enough to be a sentence of its own gets a full stop; shorter
    lines are joined to the next one as a continuation.
    """
    if "\n" not in text:
        return text
    lines = [line.strip() for line in text.split("\n")]
    lines = [line for line in lines if line]
    if not lines:
        return ""
    pieces: list[str] = []
    for index, line in enumerate(lines):
        if index == len(lines) - 1:
            pieces.append(line)
            break
        last_char = line[-1]
        cjk = is_cjk(last_char)
        if last_char in PUNC_EOS or last_char in PUNC_COMMA:
            pieces.append(line if cjk else f"{line} ")
        elif utf8_len(line) >= byte_threshold:
            pieces.append(f"{line}{DEFAULT_EOS}" if cjk else f"{line}. ")
        else:
            pieces.append(line if cjk else f"{line} ")
    return "".join(pieces)


def repair_acronyms(text: str) -> str:
    text = ACRONYM_RE.sub(r"\1\2", text)
    return ACRONYM_WITH_WORDS_RE.sub(r"\1 \2", text)


def normalize(text: str, is_sentence_complete: bool = False) -> str:
    if not text:
        return ""
    # Acronyms are recognized by their capitals, so repair before lowercasing.
    cleaned = repair_acronyms(text).lower()
    cleaned = PUNCTUATION_SPACE_RE.sub(r"\1 ", cleaned)
    cleaned = CJ_PUNCTUATION_SPACE_RE.sub(r"\1", cleaned)
    cleaned = replace_newlines(cleaned, MEDIUM_THRESHOLD)
    cleaned = cleaned.strip()
    if is_sentence_complete and cleaned and not ends_with_eos(cleaned):
        cleaned += DEFAULT_EOS
    return cleaned


def strip_notice_prefix(text: str) -> str:
    return NOTICE_PREFIX_RE.sub("", text or "").strip()


def ensure_eos(text: str) -> str:
    if not text or ends_with_eos(text):
        return text
    return f"{text}{DEFAULT_EOS}"
