#!/usr/bin/env python

"""
    Legacy Hindi (KrutiDev) detection and repair.

    Spreadsheets typed with the KrutiDev family of fonts store Hindi as
    plain Latin bytes (``Hkkjr`` renders as भारत only under that font).
    This module decides whether a string is such text and converts it to
    Unicode Devanagari, preferring to leave a string alone over
    corrupting real English.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import re
import logging
from functools import lru_cache

logger = logging.getLogger(__name__)

DEVANAGARI = re.compile('[\u0900-\u097F]')
LATIN_LETTER = re.compile(r'[A-Za-z]')
TELL_CHARS = re.compile(r'[;*]')
QUOTED = re.compile(r'"([^"]+)"')

MIN_LETTERS = 6
MIN_LETTER_RATIO = 0.55

# Machine generated English prefixes of activity and notification titles.
# Longest first so "New Book Added:" wins over "New Book:".
KNOWN_PREFIXES = (
    'New Book Added:',
    'Reminder sent:',
    'New member:',
    'New book:',
    'Due Soon:',
    'Returned:',
    'Overdue:',
    'Issued:',
)

# Results of converting those English prefixes with a KrutiDev converter,
# found at the start of already corrupted records.
GARBLED_PREFIXES = (
    re.compile(r'^वृअमतकनमरू\s+'),
    re.compile(r'^प्ॅनमकरू\s+'),
    re.compile(r'^ठवइ\s+श्वीदेवद\s+'),
)

LEADING_SYMBOLS = "'\"*`"

HALANT = '्'
I_MATRA = 'ि'
# Private-use marker for the reph glyph until it is moved into place
REPH = '\ue000'

KRUTIDEV_TO_UNICODE = {
    # independent vowels
    'vkS': 'औ', 'vks': 'ओ', 'vk': 'आ', 'v': 'अ',
    'bZ': 'ई', 'b': 'इ', 'm': 'उ', 'Å': 'ऊ', '_': 'ऋ',
    ',s': 'ऐ', ',': 'ए',
    # consonants, full forms
    'd': 'क', 'x': 'ग', 'p': 'च', 'N': 'छ', 't': 'ज', '>': 'झ',
    'V': 'ट', 'B': 'ठ', 'M': 'ड', '<': 'ढ', 'r': 'त', 'n': 'द',
    'u': 'न', 'i': 'प', 'Q': 'फ', 'c': 'ब', 'e': 'म', ';': 'य',
    'j': 'र', 'y': 'ल', 'o': 'व', 'l': 'स', 'g': 'ह', 'G': 'ळ',
    'K': 'ज्ञ', '=': 'त्र', 'Ø': 'क्र', 'J': 'श्र', 'Ñ': 'कृ',
    '|': 'द्य', '}': 'द्व', 'Ù': 'द्ध', 'ô': 'क्क', 'Ë': 'ट्ट',
    'è': 'द्म', 'ã': 'ड्ड', 'ê': 'ष्ट',
    # half forms; a following "k" completes them
    '[': 'ख्', '?': 'घ्', 'P': 'च्', 'T': 'ज्', '÷': 'झ्', '.': 'ण्',
    'R': 'त्', 'F': 'थ्', '/': 'ध्', 'U': 'न्', 'I': 'प्', '¶': 'फ्',
    'C': 'ब्', 'H': 'भ्', 'E': 'म्', '¸': 'य्', 'Y': 'ल्', 'O': 'व्',
    "'": 'श्', '"': 'ष्', 'L': 'स्', '{': 'क्ष्', 'X': 'ग्', '«': 'त्र्',
    'D': 'क्',
    # nukta, rakar, halant
    '+': '़', 'z': '्र', '~': '्',
    # dependent vowel signs
    'kS': 'ौ', 'ks': 'ो', 'k': 'ा', 'h': 'ी', 'q': 'ु', 'w': 'ू',
    '`': 'ृ', '^': 'ृ', 's': 'े', 'S': 'ै', 'f': I_MATRA,
    # signs and punctuation
    'a': 'ं', '¡': 'ँ', '%': 'ः', 'AA': '॥', 'A': '।', 'Z': REPH,
}

UNICODE_TO_KRUTIDEV = {
    'अ': 'v', 'आ': 'vk', 'इ': 'b', 'ई': 'bZ', 'उ': 'm', 'ऊ': 'Å',
    'ऋ': '_', 'ए': ',', 'ऐ': ',S', 'ओ': 'vks', 'औ': 'vkS',
    'क': 'd', 'ख': '[k', 'ग': 'x', 'घ': '?k', 'ङ': 'M', 'च': 'p',
    'छ': 'N', 'ज': 't', 'झ': '>', 'ञ': '×', 'ट': 'V', 'ठ': 'B',
    'ड': 'M', 'ढ': '<', 'ण': '.k', 'त': 'r', 'थ': 'Fk', 'द': 'n',
    'ध': '/k', 'न': 'u', 'प': 'i', 'फ': 'Q', 'ब': 'c', 'भ': 'Hk',
    'म': 'e', 'य': ';', 'र': 'j', 'ल': 'y', 'व': 'o', 'श': "'k",
    'ष': '"k', 'स': 'l', 'ह': 'g', 'क्ष': '{k', 'त्र': '=', 'ज्ञ': 'K',
    'ा': 'k', 'ि': 'f', 'ी': 'h', 'ु': 'q', 'ू': 'w', 'ृ': '^',
    'े': 's', 'ै': 'S', 'ो': 'ks', 'ौ': 'kS', '्': '', 'ं': 'a',
    'ः': '%', 'ँ': '¡', '।': 'A', '॥': 'AA',
    '०': '0', '१': '1', '२': '2', '३': '3', '४': '4',
    '५': '5', '६': '6', '७': '7', '८': '8', '९': '9',
}

_KEY_LENGTHS = sorted({len(k) for k in KRUTIDEV_TO_UNICODE}, reverse=True)

_CONSONANT = '[क-हक़-य़]़?'
_CLUSTER = f'(?:{_CONSONANT}{HALANT})*{_CONSONANT}'
_PREPOSED_I = re.compile(f'{I_MATRA}({_CLUSTER})')
_POSTPOSED_REPH = re.compile(f'({_CLUSTER}[ा-ौ]?){REPH}')


def contains_devanagari(text) -> bool:
    return bool(text) and DEVANAGARI.search(text) is not None

def looks_like_legacy_hindi(text) -> bool:
    """True when `text` reads like KrutiDev-typed Hindi: no Devanagari,
    at least six Latin letters, at least one ';' or '*', and Latin
    letters making up at least 55% of the string.
    """
    s = str(text or '').strip()
    if not s or contains_devanagari(s):
        return False
    letters = len(LATIN_LETTER.findall(s))
    if letters < MIN_LETTERS:
        return False
    if not TELL_CHARS.search(s):
        return False
    return letters / max(len(s), 1) >= MIN_LETTER_RATIO

def krutidev_to_unicode(text: str) -> str:
    out = []
    i = 0
    while i < len(text):
        for size in _KEY_LENGTHS:
            glyph = text[i:i + size]
            if len(glyph) == size and glyph in KRUTIDEV_TO_UNICODE:
                out.append(KRUTIDEV_TO_UNICODE[glyph])
                i += size
                break
        else:
            out.append(text[i])
            i += 1
    converted = ''.join(out)

    # half consonant followed by a vowel sign is the full consonant
    for sign in ('ा', 'ो', 'ौ'):
        full = sign if sign != 'ा' else ''
        converted = converted.replace(HALANT + sign, full)

    converted = _PREPOSED_I.sub(lambda m: m.group(1) + I_MATRA, converted)
    converted = _POSTPOSED_REPH.sub(lambda m: 'र' + HALANT + m.group(1), converted)
    return converted.replace(REPH, 'र' + HALANT)

def _convert_if_legacy(text: str):
    """Converted text, or None when `text` is not legacy Hindi or the
    conversion produced no Devanagari."""
    if not looks_like_legacy_hindi(text):
        return None
    converted = krutidev_to_unicode(text)
    if contains_devanagari(converted):
        return converted
    logger.debug(f"Discarding conversion without Devanagari: {text!r}")
    return None

@lru_cache(maxsize=4096)
def normalize_legacy_hindi(text: str) -> str:
    """Best effort Unicode rendition of `text`.

    Unicode Hindi and ordinary English come back unchanged. A known
    English prefix is kept and only the remainder is considered; quoted
    titles inside an English sentence are converted one by one.
    """
    if not text or contains_devanagari(text):
        return text

    for prefix in KNOWN_PREFIXES:
        if text.startswith(prefix):
            rest = text[len(prefix):].strip()
            if not rest:
                return text
            converted = _convert_if_legacy(rest)
            return f"{prefix} {converted}" if converted else text

    result = text
    any_converted = False
    for match in QUOTED.finditer(text):
        quoted = match.group(1)
        converted = _convert_if_legacy(quoted)
        if converted:
            result = result.replace(f'"{quoted}"', f'"{converted}"', 1)
            any_converted = True
    if any_converted:
        return result

    return _convert_if_legacy(text) or text

def normalize_for_display(text: str) -> str:
    if not text:
        return text
    result = normalize_legacy_hindi(text)
    for pattern in GARBLED_PREFIXES:
        result = pattern.sub('', result, count=1)
    result = result.strip()
    while result and result[0] in LEADING_SYMBOLS:
        result = result[1:].lstrip()
    return result.strip()

def unicode_to_krutidev_approx(text: str) -> str:
    """Approximate KrutiDev spelling of Unicode Hindi, used to search
    records still stored in the legacy encoding."""
    if not contains_devanagari(text):
        return text
    out = []
    i = 0
    while i < len(text):
        pair = text[i:i + 2]
        if len(pair) == 2 and pair in UNICODE_TO_KRUTIDEV:
            out.append(UNICODE_TO_KRUTIDEV[pair])
            i += 2
            continue
        out.append(UNICODE_TO_KRUTIDEV.get(text[i], text[i]))
        i += 1
    return ''.join(out)
