"""Named character-set presets.

The registry is built once at import time and never mutated afterwards, so
concurrent requests can read it without locking.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType

# Basic symbol sets
DIGITS = "0123456789"
LATIN_BASIC = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
PUNCTUATION_BASIC = ",.?!;:'\"-()[]{}<>/\\|`~@#$%^&*+=_"

# Language sets (Google Fonts subset compatible)
LATIN = (
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"
    ".,;:!?'\"\\/|_-+=()<>[]{}#%^*~`@&$€£¥¢¤°©®™§¶†‡•…‰←↑→↓◊"
    "ÆæÐðØøÞþßÀÁÂÃÄÅÇÈÉÊËÌÍÎÏÑÒÓÔÕÖÙÚÛÜÝàáâãäåçèéêëìíîïñòóôõöùúûüýÿ"
)
LATIN_EXT = (
    "ĀāĂăĄąĆćĈĉĊċČčĎďĐđĒēĔĕĖėĘęĚěĜĝĞğĠġĢģĤĥĦħĨĩĪīĬĭĮįİıĲĳĴĵĶķĸĹĺĻļĽľĿŀŁł"
    "ŃńŅņŇňŉŊŋŌōŎŏŐőŒœŔŕŖŗŘřŚśŜŝŞşŠšŢţŤťŦŧŨũŪūŬŭŮůŰűŲųŴŵŶŷŸŹźŻżŽžſƒǰ"
    "ǺǻǼǽǾǿȘșȚțȷʼˆˇˉ˘˙˚˛˜˝ẀẁẂẃẄẅỲỳ"
)
CYRILLIC = (
    "АБВГДЕЖЗИЙКЛМНОПРСТУФХЦЧШЩЪЫЬЭЮЯабвгдежзийклмнопрстуфхцчшщъыьэюя"
    "ЁёЂђЃѓЄєЅѕІіЇїЈјЉљЊњЋћЌќЍѝЎўЏџҐґ"
)
CYRILLIC_EXT = "ҐґҒғҖҗҚқҢңҮүҰұҲҳҶҷӘәӨөӮӯ"
GREEK = (
    "ΑΒΓΔΕΖΗΘΙΚΛΜΝΞΟΠΡΣΤΥΦΧΨΩαβγδεζηθικλμνξοπρςστυφχψω"
    "άέήίόύώΆΈΉΊΌΎΏΐΰϊϋΪΫ"
)
VIETNAMESE = (
    "ẠạẢảẤấẦầẨẩẪẫẬậẮắẰằẲẳẴẵẶặẸẹẺẻẼẽẾếỀềỂểỄễỆệỈỉỊịỌọỎỏỐốỒồỔổỖỗỘộỚớỜờỞởỠỡỢợ"
    "ỤụỦủỨứỪừỬửỮữỰựỲỳỴỵỶỷỸỹ"
)

# Chinese sets (abridged)
CHINESE_LEVEL1 = "一二三四五六七八九十百千万亿元年月日时分秒"
CHINESE_COMMON = (
    "的一是在不了有和人这中大为上个国我以要他时来用们生到作地于出就分对成会可主发年动同工"
    "也能下过子说产种面而方后多定行学法所民得经十三之进着等部度家电力里如水化高自二理起小"
    "物现实加量都两体制机当使点从业本去把性好应开它合还因由其些然前外天政四日那社义事平"
)

# Symbol sets
MATH = "±×÷≠≈≤≥∑∏√∞∫∆∂∇∥∠∟∣∥∦∧∨∩∪∈∉⊂⊃⊆⊇⊕⊗⊥⋅⌈⌉⌊⌋"
CURRENCY = "¤$¢£¥€₽₨₩₪₫₭₮₯₱₲₳₴₵₸₹₺₼₽₾"
ARROWS = "←↑→↓↔↕↖↗↘↙⇐⇒⇔⇧⇩⇦⇨"

STANDARD_CHARSETS: Mapping[str, str] = MappingProxyType(
    {
        "digits": DIGITS,
        "latin_basic": LATIN_BASIC,
        "punctuation_basic": PUNCTUATION_BASIC,
        "latin": LATIN,
        "latin_ext": LATIN_EXT,
        "cyrillic": CYRILLIC,
        "cyrillic_ext": CYRILLIC_EXT,
        "greek": GREEK,
        "vietnamese": VIETNAMESE,
        "chinese_level1": CHINESE_LEVEL1,
        "chinese_common": CHINESE_COMMON,
        "math": MATH,
        "currency": CURRENCY,
        "arrows": ARROWS,
    }
)

COMBINED_CHARSETS: Mapping[str, str] = MappingProxyType(
    {
        "basic": DIGITS + LATIN_BASIC + PUNCTUATION_BASIC,
        "web_safe": LATIN,
        "european": LATIN + LATIN_EXT,
        "pan-european": LATIN + LATIN_EXT + CYRILLIC + GREEK,
    }
)


def _candidates(charset_id: str) -> tuple[str, ...]:
    """Return the id plus its '-'/'_' spelling variants, original first."""
    seen: list[str] = []
    for name in (charset_id, charset_id.replace("-", "_"), charset_id.replace("_", "-")):
        if name not in seen:
            seen.append(name)
    return tuple(seen)


class CharsetRegistry:
    """Read-only table of standard and combined character sets."""

    def __init__(
        self,
        standard: Mapping[str, str] = STANDARD_CHARSETS,
        combined: Mapping[str, str] = COMBINED_CHARSETS,
    ):
        self._standard = MappingProxyType(dict(standard))
        self._combined = MappingProxyType(dict(combined))

    def resolve(self, charset_id: str) -> str | None:
        """Return the characters of a set, or None when the id is unknown.

        Lookup is case-sensitive. Both ``latin-ext`` and ``latin_ext`` find
        the same set; standard sets win over combined sets.
        """
        if not isinstance(charset_id, str) or not charset_id:
            return None
        names = _candidates(charset_id)
        for table in (self._standard, self._combined):
            for name in names:
                if name in table:
                    return table[name]
        return None

    def __contains__(self, charset_id: object) -> bool:
        return isinstance(charset_id, str) and self.resolve(charset_id) is not None

    def list_available(self) -> dict[str, list[str]]:
        return {"standard": list(self._standard), "combined": list(self._combined)}

    def combine(self, charset_ids: Iterable[str]) -> str:
        """Concatenate the characters of several sets; unknown ids add nothing."""
        return "".join(self.resolve(name) or "" for name in charset_ids)


DEFAULT_REGISTRY = CharsetRegistry()
