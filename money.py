from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union

from errors import Err, ErrorKind, Ok, Result

AmountInput = Union[str, int, float, Decimal, None]

_CURRENCY_MARKERS = ("₹", "Rs.", "Rs", "INR")


def parse_amount(value: AmountInput) -> Result[int]:
    """Parse a form or store amount into integer paise.

    Accepts strings with an optional rupee marker and en-IN thousands separators
    ("₹1,23,456.50"), plain numbers and Decimals. The amount must be positive.
    """
    if value is None or isinstance(value, bool):
        return Err(ErrorKind.invalid_input, "Amount is required")
    if isinstance(value, float):
        value = repr(value)
    clean = str(value).strip()
    for marker in _CURRENCY_MARKERS:
        clean = clean.replace(marker, "")
    clean = clean.replace(",", "").replace(" ", "")
    if not clean:
        return Err(ErrorKind.invalid_input, "Amount is required")
    try:
        amount = Decimal(clean)
    except InvalidOperation:
        return Err(ErrorKind.invalid_input, "Amount must be a number")
    if not amount.is_finite():
        return Err(ErrorKind.invalid_input, "Amount must be a number")
    paise = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if paise <= 0:
        return Err(ErrorKind.invalid_input, "Amount must be a positive number")
    return Ok(paise)


def _group_en_in(digits: str) -> str:
    # 1234567 -> 12,34,567: last three digits, then pairs
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    pairs: list[str] = []
    while len(head) > 2:
        pairs.insert(0, head[-2:])
        head = head[:-2]
    if head:
        pairs.insert(0, head)
    return ",".join(pairs + [tail])


def format_inr(
    paise: int, *, include_paise: bool = True, symbol: Optional[str] = "₹"
) -> str:
    sign = "-" if paise < 0 else ""
    whole, frac = divmod(abs(paise), 100)
    if not include_paise:
        whole = int(
            (Decimal(abs(paise)) / 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        )
    text = _group_en_in(str(whole))
    if include_paise:
        text = f"{text}.{frac:02d}"
    return f"{sign}{symbol or ''}{text}"
