"""Classifier code lists used on the GTD form."""

from __future__ import annotations

INCOTERMS_CODES = frozenset(
    {"EXW", "FCA", "FAS", "FOB", "CFR", "CIF", "CPT", "CIP", "DAP", "DPU", "DDP", "DAT"}
)

TRANSPORT_MODE_CODES = frozenset({"10", "20", "30", "40", "50", "71", "72", "80", "90"})

# Letter codes (UN/ECE Rec. 20) and the numeric national classifier codes.
UNIT_CODES = frozenset(
    {
        "KGM", "GRM", "TNE", "MTR", "MTK", "MTQ", "LTR", "PCE", "SET", "PR", "KWH", "CTM",
        "006", "055", "112", "113", "166", "168", "625", "657", "704", "715", "736",
        "778", "796", "839", "868", "876",
    }
)

CURRENCY_CODES = frozenset(
    {"UZS", "USD", "EUR", "RUB", "CNY", "GBP", "JPY", "KZT", "TRY", "KRW", "AED", "CHF"}
)

COUNTRY_NAMES: dict[str, str] = {
    "UZ": "УЗБЕКИСТАН",
    "CN": "КИТАЙ",
    "RU": "РОССИЯ",
    "KZ": "КАЗАХСТАН",
    "KR": "КОРЕЯ",
    "DE": "ГЕРМАНИЯ",
    "US": "США",
    "TR": "ТУРЦИЯ",
    "KG": "КЫРГЫЗСТАН",
    "TJ": "ТАДЖИКИСТАН",
    "BY": "БЕЛАРУСЬ",
    "AM": "АРМЕНИЯ",
    "AZ": "АЗЕРБАЙДЖАН",
    "TM": "ТУРКМЕНИСТАН",
    "AF": "АФГАНИСТАН",
    "IN": "ИНДИЯ",
    "IT": "ИТАЛИЯ",
    "JP": "ЯПОНИЯ",
    "AE": "ОАЭ",
    "GB": "ВЕЛИКОБРИТАНИЯ",
    "FR": "ФРАНЦИЯ",
    "PL": "ПОЛЬША",
    "LV": "ЛАТВИЯ",
    "IR": "ИРАН",
}


def country_name(code: str | None) -> str:
    """Printed country name, falling back to the code itself."""

    if not code:
        return ""
    return COUNTRY_NAMES.get(code.strip().upper(), code)
