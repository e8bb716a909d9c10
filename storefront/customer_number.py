"""
Customer numbers: a two-letter city code followed by six random digits,
e.g. ``WD482913``. Assigned once at signup; uniqueness is not checked.
"""

import random
import re
import unicodedata
from typing import Optional

CITY_CODES = {
    "warendorf": "WD",
    "munster": "MS",
    "berlin": "BE",
    "hamburg": "HH",
    "munich": "MU",
    "munchen": "MU",
    "cologne": "CO",
    "koln": "CO",
    "frankfurt": "FR",
    "stuttgart": "ST",
    "dusseldorf": "DU",
    "dortmund": "DO",
    "essen": "ES",
    "leipzig": "LE",
    "bremen": "BR",
    "dresden": "DR",
    "hannover": "HA",
    "nuremberg": "NU",
    "nurnberg": "NU",
    "duisburg": "DB",
    "bochum": "BO",
    "wuppertal": "WU",
    "bielefeld": "BI",
    "bonn": "BN",
    "mannheim": "MA",
}

FALLBACK_CODE = "XX"

_WORD_SPLIT = re.compile(r"[\s,]+")


def strip_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def city_code(address: Optional[str]) -> str:
    """Two-letter code for the city named in ``address``.

    Known cities come from ``CITY_CODES``; otherwise the first two letters of
    the first word with at least two characters, non-letters replaced by ``X``.
    """
    if not address or not address.strip():
        return FALLBACK_CODE
    words = [w for w in _WORD_SPLIT.split(strip_diacritics(address.strip())) if w]

    for word in words:
        normalized = re.sub(r"[^a-z]", "", word.lower())
        if normalized in CITY_CODES:
            return CITY_CODES[normalized]

    for word in words:
        if len(word) >= 2:
            return re.sub(r"[^A-Z]", "X", word.upper()[:2])
    return FALLBACK_CODE


def generate_customer_number(address: Optional[str], rng: Optional[random.Random] = None) -> str:
    rng = rng or random.SystemRandom()
    return f"{city_code(address)}{rng.randint(100000, 999999)}"
