"""
Validadores y formateadores para datos colombianos (teléfono, NIT, moneda).
"""
import re
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

_PHONE_PATTERNS = (
    r'^(\+?57)?3[0-9]{9}$',      # móvil
    r'^(\+?57)?[1-8][0-9]{7}$',  # fijo
)

NIT_WEIGHTS = [3, 7, 13, 17, 19, 23, 29, 37, 41, 43, 47, 53, 59, 67, 71]


def _clean(value: str, chars: str) -> str:
    return re.sub(f'[{chars}]', '', value or '')


def validate_colombia_phone(phone: str) -> bool:
    """Acepta móviles (3XXXXXXXXX) y fijos, con o sin prefijo 57/+57."""
    cleaned = _clean(phone, r'\s\-\(\)')
    return any(re.match(p, cleaned) for p in _PHONE_PATTERNS)


def format_colombia_phone(phone: str) -> str:
    """Normaliza a +57XXXXXXXXXX; si no es válido lo retorna sin cambios."""
    if not validate_colombia_phone(phone):
        return phone
    cleaned = _clean(phone, r'\s\-\(\)').lstrip('+')
    if cleaned.startswith('57') and len(cleaned) in (10, 12):
        return '+' + cleaned
    return '+57' + cleaned


def nit_check_digit(base: str) -> int:
    """Dígito de verificación DIAN para un NIT base."""
    total = sum(int(d) * NIT_WEIGHTS[i] for i, d in enumerate(reversed(base)))
    remainder = total % 11
    return remainder if remainder < 2 else 11 - remainder


def validate_colombia_nit(nit: str) -> bool:
    """
    Valida un NIT colombiano.
    - Base de 8 a 10 dígitos sin cero inicial: 900123456
    - Con dígito de verificación separado por guión: 900123456-8 (se verifica)
    """
    value = _clean(nit, r'\.\s')
    if '-' in value:
        base, _, dv = value.partition('-')
        if not (base.isdigit() and dv.isdigit() and len(dv) == 1):
            return False
        return validate_colombia_nit(base) and nit_check_digit(base) == int(dv)
    return value.isdigit() and 8 <= len(value) <= 10 and not value.startswith('0')


def format_colombia_nit(nit: str) -> str:
    """Quita puntos y espacios del NIT."""
    if not validate_colombia_nit(nit):
        return nit
    return _clean(nit, r'\.\s')


CENT = Decimal("0.01")


def money(value: Union[Decimal, float, int, str, None]) -> Decimal:
    """Decimal redondeado a centavos (half up)."""
    return Decimal(str(value or 0)).quantize(CENT, rounding=ROUND_HALF_UP)


def format_currency_co(amount: Union[Decimal, float, int, None], symbol: str = "$") -> str:
    """
    Formato de moneda es-CO: $ 1.234.567,89
    """
    value = Decimal(str(amount or 0)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    integer, _, decimals = f"{abs(value):.2f}".partition(".")
    grouped = f"{int(integer):,}".replace(",", ".")
    return f"{sign}{symbol} {grouped},{decimals}"
