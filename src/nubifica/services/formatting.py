"""Peso formatting helpers handed to the print/PDF surface."""
from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

_UNITS = ["", "UN", "DOS", "TRES", "CUATRO", "CINCO", "SEIS", "SIETE", "OCHO", "NUEVE"]
_TEENS = ["DIEZ", "ONCE", "DOCE", "TRECE", "CATORCE", "QUINCE", "DIECISÉIS", "DIECISIETE", "DIECIOCHO", "DIECINUEVE"]
_TENS = ["", "DIEZ", "VEINTE", "TREINTA", "CUARENTA", "CINCUENTA", "SESENTA", "SETENTA", "OCHENTA", "NOVENTA"]
_HUNDREDS = [
    "", "CIENTO", "DOSCIENTOS", "TRESCIENTOS", "CUATROCIENTOS",
    "QUINIENTOS", "SEISCIENTOS", "SETECIENTOS", "OCHOCIENTOS", "NOVECIENTOS",
]


def _whole_pesos(amount: float) -> int:
    return int(Decimal(str(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_cop(amount: float) -> str:
    """``1666000`` -> ``$ 1.666.000`` (es-CO grouping, no decimals)."""
    value = _whole_pesos(amount)
    grouped = f"{abs(value):,}".replace(",", ".")
    return f"-$ {grouped}" if value < 0 else f"$ {grouped}"


def _group_words(num: int) -> str:
    if num == 100:
        return "CIEN"
    out = []
    if num > 100:
        out.append(_HUNDREDS[num // 100])
        num %= 100
    if 10 <= num < 20:
        out.append(_TEENS[num - 10])
    elif num >= 20:
        tens = _TENS[num // 10]
        if num % 10:
            tens += " Y " + _UNITS[num % 10]
        out.append(tens)
    elif num > 0:
        out.append(_UNITS[num])
    return " ".join(out)


def _below_million(num: int) -> str:
    thousands, rest = divmod(num, 1000)
    out = []
    if thousands == 1:
        out.append("MIL")
    elif thousands > 1:
        out.append(f"{_group_words(thousands)} MIL")
    if rest:
        out.append(_group_words(rest))
    return " ".join(out)


def amount_in_words(amount: float) -> str:
    """Spanish upper-case words for a peso amount, e.g. ``UN MILLON QUINIENTOS MIL``."""
    n = _whole_pesos(amount)
    if n == 0:
        return "CERO"
    prefix = "MENOS " if n < 0 else ""
    n = abs(n)

    millions, rest = divmod(n, 1_000_000)
    out = []
    if millions == 1:
        out.append("UN MILLON")
    elif millions > 1:
        out.append(f"{_below_million(millions)} MILLONES")
    if rest:
        out.append(_below_million(rest))
    return prefix + " ".join(out)


def format_es_co_timestamp(moment: datetime) -> str:
    """``19/10/2026, 3:05:09 p. m.``, the way es-CO locales print a date and time."""
    hour = moment.hour % 12 or 12
    suffix = "a. m." if moment.hour < 12 else "p. m."
    return f"{moment.day}/{moment.month}/{moment.year}, {hour}:{moment.minute:02d}:{moment.second:02d} {suffix}"
