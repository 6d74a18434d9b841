"""Krutidev 010 to Unicode Devanagari transcoding.

Remarks and defendant names on both portals are typed with the Krutidev
font, so the rendered DOM carries Latin bytes that only look like Hindi on
screen. ``transcode`` recovers logical Unicode text in four steps:

1. A fixed, ordered list of literal substring rewrites (``GLYPH_MAPPING``).
   Order is authoritative; later rules rely on earlier ones having fired.
2. Pre-base vowel sign relocation: the ``f`` marker (short i) and the ``fa``
   marker (short i plus anusvara) are written before the consonant they
   follow in Unicode, so each is swapped with its right neighbour.
3. Reph relocation: the ``Z`` marker is written after the syllable it
   precedes in Unicode; it is moved left past attached vowel signs and
   emitted as RA + VIRAMA in front of the syllable.
4. Cleanup of virama artifacts left over from the rewrites.

``classify`` is a heuristic, not a proof. Mixed text with few Devanagari
code points and a common Krutidev word fragment (``ds``, ``ls``, ``ij``...)
is treated as legacy-encoded. False positives and negatives are an accepted
limitation; the encoding has no formal grammar to check against.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Tuple

VIRAMA = "्"
RA = "र"
SIGN_I = "ि"
ANUSVARA = "ं"

PRE_BASE_MARKER = "f"
NASAL_PRE_BASE_MARKER = "fa"
REPH_MARKER = "Z"

# Line breaks end a syllable; a marker followed by one of these has no right
# neighbour to swap with.
_LINE_TERMINATORS = frozenset("\n\r\u2028\u2029")

GlyphRule = Tuple[str, str]

# Space before a conjunct-forming glyph belongs to the previous syllable.
_PRE_RULES: Tuple[GlyphRule, ...] = (
    (" \xaa", "\xaa"),
    (" ~j", "~j"),
    (" z", "z"),
)

# Ordered literal rewrite table. Do not sort or deduplicate: several entries
# only make sense after an earlier, overlapping entry has already fired.
GLYPH_MAPPING: Tuple[GlyphRule, ...] = (
    ("\xf1", "॰"),
    ("Q+Z", "QZ+"),
    ("sas", "sa"),
    ("aa", "a"),
    (")Z", "र्द्ध"),
    ("ZZ", "Z"),
    ("‘", '"'),
    ("’", '"'),
    ("“", "'"),
    ("”", "'"),
    ("\xe5", "०"),
    ("ƒ", "१"),
    ("„", "२"),
    ("…", "३"),
    ("†", "४"),
    ("‡", "५"),
    ("ˆ", "६"),
    ("‰", "७"),
    ("Š", "८"),
    ("‹", "९"),
    ("\xb6+", "फ़्"),
    ("d+", "क़"),
    ("[+k", "ख़"),
    ("[+", "ख़्"),
    ("x+", "ग़"),
    ("T+", "ज़्"),
    ("t+", "ज़"),
    ("M+", "ड़"),
    ("<+", "ढ़"),
    ("Q+", "फ़"),
    (";+", "य़"),
    ("j+", "ऱ"),
    ("u+", "ऩ"),
    ("\xd9k", "त्त"),
    ("\xd9", "त्त्"),
    ("\xe4", "क्त"),
    ("–", "दृ"),
    ("—", "कृ"),
    ("\xe9", "न्न"),
    ("™", "न्न्"),
    ("=kk", "=k"),
    ("f=k", "f="),
    ("\xe0", "ह्न"),
    ("\xe1", "ह्य"),
    ("\xe2", "हृ"),
    ("\xe3", "ह्म"),
    ("\xbaz", "ह्र"),
    ("\xba", "ह्"),
    ("\xed", "द्द"),
    ("{k", "क्ष"),
    ("{", "क्ष्"),
    ("=", "त्र"),
    ("\xab", "त्र्"),
    ("N\xee", "छ्य"),
    ("V\xee", "ट्य"),
    ("B\xee", "ठ्य"),
    ("M\xee", "ड्य"),
    ("<\xee", "ढ्य"),
    ("|", "द्य"),
    ("K", "ज्ञ"),
    ("}", "द्व"),
    ("J", "श्र"),
    ("V\xaa", "ट्र"),
    ("M\xaa", "ड्र"),
    ("<\xaa\xaa", "ढ्र"),
    ("N\xaa", "छ्र"),
    ("\xd8", "क्र"),
    ("\xdd", "फ्र"),
    ("nzZ", "र्द्र"),
    ("\xe6", "द्र"),
    ("\xe7", "प्र"),
    ("\xc1", "प्र"),
    ("xz", "ग्र"),
    ("#", "रु"),
    (":", "रू"),
    ("v‚", "ऑ"),
    ("vks", "ओ"),
    ("vkS", "औ"),
    ("vk", "आ"),
    ("v", "अ"),
    ("b\xb1", "ईं"),
    ("\xc3", "ई"),
    ("bZ", "ई"),
    ("b", "इ"),
    ("m", "उ"),
    ("\xc5", "ऊ"),
    (",s", "ऐ"),
    (",", "ए"),
    ("_", "ऋ"),
    ("\xf4", "क्क"),
    ("d", "क"),
    ("Dk", "क"),
    ("D", "क्"),
    ("[k", "ख"),
    ("[", "ख्"),
    ("x", "ग"),
    ("Xk", "ग"),
    ("X", "ग्"),
    ("\xc4", "घ"),
    ("?k", "घ"),
    ("?", "घ्"),
    ("\xb3", "ङ"),
    ("pkS", "चै"),
    ("p", "च"),
    ("Pk", "च"),
    ("P", "च्"),
    ("N", "छ"),
    ("t", "ज"),
    ("Tk", "ज"),
    ("T", "ज्"),
    (">", "झ"),
    ("\xf7", "झ्"),
    ("\xa5", "ञ"),
    ("\xea", "ट्ट"),
    ("\xeb", "ट्ठ"),
    ("V", "ट"),
    ("B", "ठ"),
    ("\xec", "ड्ड"),
    ("\xef", "ड्ढ"),
    ("M", "ड"),
    ("<", "ढ"),
    (".k", "ण"),
    (".", "ण्"),
    ("r", "त"),
    ("Rk", "त"),
    ("R", "त्"),
    ("Fk", "थ"),
    ("F", "थ्"),
    (")", "द्ध"),
    ("n", "द"),
    ("/k", "ध"),
    ("/", "ध्"),
    ("\xcb", "ध्"),
    ("\xe8", "ध"),
    ("u", "न"),
    ("Uk", "न"),
    ("U", "न्"),
    ("i", "प"),
    ("Ik", "प"),
    ("I", "प्"),
    ("Q", "फ"),
    ("\xb6", "फ्"),
    ("c", "ब"),
    ("Ck", "ब"),
    ("C", "ब्"),
    ("Hk", "भ"),
    ("H", "भ्"),
    ("e", "म"),
    ("Ek", "म"),
    ("E", "म्"),
    (";", "य"),
    ("\xb8", "य्"),
    ("j", "र"),
    ("y", "ल"),
    ("Yk", "ल"),
    ("Y", "ल्"),
    ("G", "ळ"),
    ("o", "व"),
    ("Ok", "व"),
    ("O", "व्"),
    ("'k", "श"),
    ("'", "श्"),
    ('"k', "ष"),
    ('"', "ष्"),
    ("l", "स"),
    ("Lk", "स"),
    ("L", "स्"),
    ("g", "ह"),
    ("\xc8", "ीं"),
    ("saz", "्रें"),
    ("z", "्र"),
    ("\xcc", "द्द"),
    ("\xcd", "ट्ट"),
    ("\xce", "ट्ठ"),
    ("\xcf", "ड्ड"),
    ("\xd1", "कृ"),
    ("\xd2", "भ"),
    ("\xd3", "्य"),
    ("\xd4", "ड्ढ"),
    ("\xd6", "झ्"),
    ("\xdck", "श"),
    ("\xdc", "श्"),
    ("‚", "ॉ"),
    ("kas", "ों"),
    ("ks", "ो"),
    ("kS", "ौ"),
    ("\xa1k", "ाँ"),
    ("ak", "kं"),
    ("k", "ा"),
    ("ah", "ीं"),
    ("h", "ी"),
    ("aq", "ुं"),
    ("q", "ु"),
    ("aw", "ूं"),
    ("\xa1w", "ूँ"),
    ("w", "ू"),
    ("`", "ृ"),
    ("̀", "ृ"),
    ("as", "ें"),
    ("\xb1s", "s\xb1"),
    ("s", "े"),
    ("aS", "ैं"),
    ("S", "ै"),
    ("a\xaa", "्रं"),
    ("\xaa", "्र"),
    ("fa", "ंf"),
    ("a", "ं"),
    ("\xa1", "ँ"),
    ("%", ":"),
    ("W", "ॅ"),
    ("•", "ऽ"),
    ("\xb7", "ऽ"),
    ("∙", "ऽ"),
    ("~j", "्र"),
    ("~", "्"),
    ("\\", "?"),
    ("+", "़"),
    ("^", "‘"),
    ("*", "’"),
    ("\xde", "“"),
    ("\xdf", "”"),
    ("(", ";"),
    ("\xbc", "("),
    ("\xbd", ")"),
    ("\xc0", "}"),
    ("\xbe", "="),
    ("A", "।"),
    ("-", "."),
    ("&", "-"),
    ("μ", "-"),
    ("Œ", "॰"),
    ("]", ","),
    ("~ ", "् "),
    ("@", "/"),
    ("\xae", "ैं"),
)

# Independent vowels, dependent vowel signs and nasal marks: the reph walks
# left over any run of these to find the start of its syllable.
VOWELS_UNICODE = frozenset(
    (
        "अ", "आ", "इ", "ई", "उ", "ऊ",
        "ए", "ऐ", "ओ", "औ",
        "ा", "ि", "ी", "ु", "ू", "ृ",
        "े", "ै", "ो", "ौ",
        "ं", "ः", "ँ", "ॅ",
    )
)

# Vowel signs that cannot stand alone after a space, comma or virama.
UNATTACHED_UNICODE: Tuple[str, ...] = (
    "ा", "ि", "ी", "ु", "ू", "ृ",
    "े", "ै", "ो", "ौ",
    "ं", "ः", "ँ", "ॅ",
)

# Independent vowels carry their own syllable; a virama in front of one is an
# artifact of a half-form glyph meeting a vowel glyph.
INDEPENDENT_VOWELS: Tuple[str, ...] = (
    "अ", "आ", "इ", "ई", "उ", "ऊ", "ऋ",
    "ए", "ऐ", "ओ", "औ", "ऑ",
)
_VIRAMA_BEFORE_VOWEL_RE = re.compile(VIRAMA + "+(?=[" + "".join(INDEPENDENT_VOWELS) + "])")

_CLEANUP_RULES: Tuple[GlyphRule, ...] = (
    (VIRAMA + VIRAMA + RA, VIRAMA + RA),
    (VIRAMA + RA + VIRAMA, RA + VIRAMA),
    (VIRAMA + VIRAMA, VIRAMA),
    (VIRAMA + " ", " "),
)

_DEVANAGARI_RE = re.compile(r"[ऀ-ॿ]")
_KRUTIDEV_MARKERS_RE = re.compile(
    r"(?:fd;k|x;k|gSA|gS|dh|ds|dk|esa|vkSj|;g|ls|ij|dks|ugha|gks|;k|Fkk|Fkh|Fks|x;h|x;s|fd|vk|,d|Hkh)"
)

DEVANAGARI_THRESHOLD = 0.3
MIN_CLASSIFY_LENGTH = 5


@dataclass(frozen=True)
class TranscodedText:
    """Result of a conversion attempt, with the input retained for audit."""

    text: str
    original: str

    @property
    def converted(self) -> bool:
        return self.text != self.original


def _apply_rules(text: str, rules: Tuple[GlyphRule, ...]) -> str:
    for source, target in rules:
        text = text.replace(source, target)
    return text


def _relocate_pre_base(text: str, marker: str, sign: str) -> str:
    """Swap every ``marker`` with its right neighbour, emitting ``sign`` after it.

    The first remaining marker is handled on each pass until none are left;
    a swap can expose a fresh marker to the left of the consumed neighbour.
    """

    while True:
        index = text.find(marker)
        if index < 0:
            return text
        end = index + len(marker)
        follower = text[end:end + 1]
        if follower in _LINE_TERMINATORS:
            follower = ""
        text = text[:index] + follower + sign + text[end + len(follower):]


def _relocate_half_form_sign(text: str) -> str:
    """Move a short-i sign that landed before a virama to after the next letter."""

    marker = SIGN_I + VIRAMA
    while True:
        index = text.find(marker)
        if index < 0:
            return text
        end = index + len(marker)
        follower = text[end:end + 1]
        if follower in _LINE_TERMINATORS:
            follower = ""
        text = text[:index] + VIRAMA + follower + SIGN_I + text[end + len(follower):]


def _relocate_reph(text: str) -> str:
    """Rewrite each reph marker as RA + VIRAMA in front of its syllable."""

    while True:
        marker_index = text.find(REPH_MARKER)
        if marker_index < 0:
            return text

        start = marker_index
        if marker_index > 0 and text[marker_index - 1] not in _LINE_TERMINATORS:
            start = marker_index - 1
            while start > 0 and text[start] in VOWELS_UNICODE:
                start -= 1

        text = (
            text[:start]
            + RA
            + VIRAMA
            + text[start:marker_index]
            + text[marker_index + 1:]
        )


def _cleanup(text: str) -> str:
    for matra in UNATTACHED_UNICODE:
        text = text.replace(" " + matra, matra)
        text = text.replace("," + matra, matra + ",")
        text = text.replace(VIRAMA + matra, matra)
    text = _VIRAMA_BEFORE_VOWEL_RE.sub("", text)
    return _apply_rules(text, _CLEANUP_RULES)


def transcode(text: Optional[str]) -> Optional[str]:
    """Convert Krutidev-encoded ``text`` to Unicode Devanagari.

    Empty or ``None`` input is returned unchanged.
    """

    if not text:
        return text

    converted = _apply_rules(text, _PRE_RULES)
    converted = _apply_rules(converted, GLYPH_MAPPING)

    converted = converted.replace("\xb1", REPH_MARKER + ANUSVARA)
    converted = converted.replace("\xc6", RA + VIRAMA + PRE_BASE_MARKER)
    converted = _relocate_pre_base(converted, PRE_BASE_MARKER, SIGN_I)

    converted = converted.replace("\xc7", NASAL_PRE_BASE_MARKER)
    converted = converted.replace("\xaf", NASAL_PRE_BASE_MARKER)
    converted = converted.replace("\xc9", RA + VIRAMA + NASAL_PRE_BASE_MARKER)
    converted = _relocate_pre_base(converted, NASAL_PRE_BASE_MARKER, SIGN_I + ANUSVARA)

    converted = converted.replace("\xca", "ी" + REPH_MARKER)
    converted = _relocate_half_form_sign(converted)

    converted = converted.replace(VIRAMA + REPH_MARKER, REPH_MARKER)
    converted = _relocate_reph(converted)

    return _cleanup(converted).strip()


def classify(text: Optional[str]) -> bool:
    """Return ``True`` when ``text`` looks Krutidev-encoded rather than Unicode."""

    if not text or len(text) < MIN_CLASSIFY_LENGTH:
        return False

    devanagari_count = len(_DEVANAGARI_RE.findall(text))
    if devanagari_count > len(text) * DEVANAGARI_THRESHOLD:
        return False

    return _KRUTIDEV_MARKERS_RE.search(text) is not None


def autoconvert(text: Optional[str]) -> Optional[str]:
    """Transcode ``text`` only when :func:`classify` says it is legacy-encoded."""

    if not text:
        return text
    if classify(text):
        return transcode(text)
    return text


def autoconvert_audited(text: str) -> TranscodedText:
    """Like :func:`autoconvert` but keeps the input alongside the output."""

    return TranscodedText(text=autoconvert(text) or "", original=text or "")


__all__ = [
    "GLYPH_MAPPING",
    "TranscodedText",
    "transcode",
    "classify",
    "autoconvert",
    "autoconvert_audited",
]
