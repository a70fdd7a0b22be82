from dataclasses import dataclass, field
from typing import List, Optional, Tuple
import math
import sys

from . import config

FLOAT_DIG = sys.float_info.dig

Pair = Tuple[float, float]


@dataclass
class DecimalDigits:
    """
    Decimal scientific form of a float: (-1)**negative * d0.d1d2... * 10**exponent.

    digits holds plain ints 0-9, most significant first.
    """

    negative: bool
    digits: List[int] = field(default_factory=list)
    exponent: int = 0

    @staticmethod
    def from_float(x: float, ndigits: int = FLOAT_DIG) -> "DecimalDigits":
        """Format x with ndigits significant digits and split it into a buffer."""
        if ndigits < 1:
            raise ValueError("ndigits must be >= 1")
        s = f"{abs(x):.{ndigits - 1}e}"
        mant, exp = s.split("e", 1)
        digits = [int(c) for c in mant if c != "."]
        return DecimalDigits(negative=math.copysign(1.0, x) < 0, digits=digits, exponent=int(exp))

    def round_to(self, ndigits: int) -> "DecimalDigits":
        """
        Keep ndigits digits, rounding half-up on the first dropped digit.

        The carry runs right to left through nines. If every kept digit was a
        nine the result is a leading 1 followed by zeros, one decade higher.
        """
        if ndigits < 1:
            raise ValueError("ndigits must be >= 1")
        if ndigits >= len(self.digits):
            return DecimalDigits(self.negative, list(self.digits), self.exponent)

        kept = self.digits[:ndigits]
        exponent = self.exponent
        if self.digits[ndigits] >= 5:
            i = ndigits - 1
            while i >= 0 and kept[i] == 9:
                kept[i] = 0
                i -= 1
            if i >= 0:
                kept[i] += 1
            else:
                kept.insert(0, 1)
                kept.pop()
                exponent += 1
        return DecimalDigits(self.negative, kept, exponent)

    def __str__(self) -> str:
        sign = "-" if self.negative else ""
        head = str(self.digits[0]) if self.digits else "0"
        tail = "".join(str(d) for d in self.digits[1:])
        mant = f"{head}.{tail}" if tail else head
        return f"{sign}{mant}e{self.exponent}"

    def to_float(self) -> float:
        return float(str(self))


def exponent10(x: float, ndigits: int = FLOAT_DIG) -> int:
    """Decimal exponent of x as written with ndigits significant digits."""
    return DecimalDigits.from_float(x, ndigits).exponent


def round_uncertainty(u: float) -> Tuple[float, int]:
    """
    Round a positive uncertainty to one significant figure.

    Returns (u1, e_u). When the second significant digit of u is 5 the
    uncertainty is nudged up by one unit of the second digit first, so the
    half-way case always rounds away from zero. The digit is read from the
    full-precision buffer; 0.146 rounds to 0.1, not via 0.15 to 0.2.

    A result that would overflow is clamped to the largest finite float.
    """
    full = DecimalDigits.from_float(u)
    if full.digits[1] == 5:
        u = u + 10.0 ** (full.exponent - 1)
    one = DecimalDigits.from_float(u, 1)
    u1 = one.to_float()
    if math.isinf(u1):
        u1 = sys.float_info.max
    return u1, one.exponent


def simplify(value: float, uncertainty: float) -> Pair:
    """
    Round value to the decimal place of one significant figure of uncertainty.

    (nan, nan) for non-finite input, (value, 0) for an exact value. A value
    smaller than its rounded uncertainty's leading digit becomes 0. An
    uncertainty too many decades below the value to touch any representable
    digit is dropped to 0 and the value kept untouched.
    """
    if not (math.isfinite(value) and math.isfinite(uncertainty)):
        return math.nan, math.nan

    u = abs(uncertainty)
    if u == 0:
        return value, 0.0

    u1, e_u = round_uncertainty(u)
    buf = DecimalDigits.from_float(value)
    e_v = buf.exponent

    if e_u > e_v:
        return 0.0, abs(u1)
    if e_v - e_u > FLOAT_DIG:
        return value, 0.0

    return buf.round_to(e_v - e_u + 1).to_float(), abs(u1)


def sigfig_count(s: str, separators: Optional[str] = None) -> int:
    """
    Count significant digits in a decimal numeral.

    "100" -> 1, "100.0" -> 4, "0.0012" -> 2. A second separator or any other
    character makes the numeral invalid and the count 0.
    """
    if separators is None:
        separators = config.CONFIG.decimal_separators

    count = 0
    zero_run = 0
    seen_separator = False
    for c in s or "":
        if c in separators:
            if seen_separator:
                return 0
            seen_separator = True
        elif c == "0":
            if count == 0:
                continue
            if seen_separator:
                count += zero_run + 1
                zero_run = 0
            else:
                zero_run += 1
        elif "1" <= c <= "9":
            count += zero_run + 1
            zero_run = 0
        else:
            return 0
    return count
