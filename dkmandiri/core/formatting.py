"""
Rupiah and weight formatting shared by receipts, notifications and the assistant.

Weights are stored in grams throughout the system; prices are per kilogram.
"""
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

GRAMS_PER_KG = Decimal('1000')
GRAMS_PER_KWINTAL = Decimal('100000')
GRAMS_PER_TON = Decimal('1000000')

_NUMBER_RE = re.compile(r'^[-+]?\d+(?:[.,]\d+)?')


def to_decimal(value, default=None):
    """Convert user input to Decimal, returning default when it is not a number"""
    if value is None or isinstance(value, bool):
        return default
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return default
    if not result.is_finite():
        return default
    return result


def _plain(value, places):
    """Whole numbers without decimals, otherwise rounded to the given places"""
    if value == value.to_integral_value():
        return str(int(value))
    quantum = Decimal(1).scaleb(-places)
    return str(value.quantize(quantum, rounding=ROUND_HALF_UP))


def format_idr(value):
    """Format an amount with dot thousands separators: 1250000 -> '1.250.000'"""
    amount = to_decimal(value)
    if amount is None:
        return '0'
    amount = amount.quantize(Decimal('1'), rounding=ROUND_HALF_UP)
    sign = '-' if amount < 0 else ''
    return sign + f"{abs(int(amount)):,}".replace(',', '.')


def unformat_idr(value):
    """Strip thousands separators: '1.250.000' -> '1250000'"""
    return (value or '').replace('.', '')


def format_weight(grams):
    """Human readable weight: 500 g, 1.5 kg, 2 kwintal, 1.25 ton"""
    weight = to_decimal(grams)
    if weight is None:
        return '0 g'

    if weight >= GRAMS_PER_TON:
        return f"{_plain(weight / GRAMS_PER_TON, 2)} ton"
    if weight >= GRAMS_PER_KWINTAL:
        return f"{_plain(weight / GRAMS_PER_KWINTAL, 2)} kwintal"
    if weight >= GRAMS_PER_KG:
        return f"{_plain(weight / GRAMS_PER_KG, 1)} kg"
    return f"{_plain(weight, 2)} g"


def unformat_weight(text):
    """Parse a formatted weight back to grams: '1.5 kg' -> Decimal('1500')"""
    if not text:
        return Decimal('0')

    trimmed = str(text).strip().lower()
    multiplier = Decimal('1')
    # kg must be checked before g
    for suffix, factor in (('ton', GRAMS_PER_TON), ('kwintal', GRAMS_PER_KWINTAL),
                           ('kg', GRAMS_PER_KG), ('g', Decimal('1'))):
        if trimmed.endswith(suffix):
            trimmed = trimmed[:-len(suffix)].strip()
            multiplier = factor
            break

    match = _NUMBER_RE.match(trimmed)
    if not match:
        return Decimal('0')
    return Decimal(match.group(0).replace(',', '.')) * multiplier


def line_total(weight_grams, price_per_kg):
    """Price of a weighed line: grams / 1000 * price per kg, rounded to 2 places"""
    total = Decimal(weight_grams) / GRAMS_PER_KG * Decimal(price_per_kg)
    return total.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
