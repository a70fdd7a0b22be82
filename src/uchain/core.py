from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple, Union
import logging
import math
import sys

from mpmath import iv

from . import config
from .sigfig import FLOAT_DIG, round_uncertainty, simplify

logger = logging.getLogger(__name__)

Number = Union[int, float]

# Uncertainty reported when a quotient's denominator interval reaches zero.
UNBOUNDED_UNCERTAINTY = sys.float_info.max


@dataclass(frozen=True)
class NumberPair:
    """A value with its (always non-negative) absolute uncertainty."""

    value: float = 0.0
    uncertainty: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", float(self.value))
        object.__setattr__(self, "uncertainty", abs(float(self.uncertainty)))

    def __iter__(self) -> Iterator[float]:
        yield self.value
        yield self.uncertainty

    def is_nan(self) -> bool:
        return math.isnan(self.value) or math.isnan(self.uncertainty)

    def simplified(self) -> "NumberPair":
        return NumberPair(*simplify(self.value, self.uncertainty))

    def interval(self):
        """[value - u, value + u] as an mpmath interval."""
        return iv.mpf([self.value - self.uncertainty, self.value + self.uncertainty])


INVALID_PAIR = NumberPair(math.nan, math.nan)
ZERO_PAIR = NumberPair(0.0, 0.0)


class OperationKind(Enum):
    """How a row combines its operand with the cumulative of the rows above it."""

    START = "start"
    ADD = "add"
    SUB = "sub"
    SUB_REVERSED = "rsub"
    MUL = "mul"
    DIV = "div"
    DIV_REVERSED = "rdiv"
    POW = "pow"
    POW_REVERSED = "rpow"
    MUL_BY_CONSTANT = "mulc"
    MUL_BY_CONSTANT_REVERSED = "rmulc"
    DIV_BY_CONSTANT = "divc"
    DIV_BY_CONSTANT_REVERSED = "rdivc"
    INVALID = "invalid"

    @property
    def token(self) -> str:
        return self.value

    @property
    def symbol(self) -> str:
        return _KIND_SYMBOLS.get(self, self.value)

    @staticmethod
    def parse(token: Union[str, "OperationKind"]) -> "OperationKind":
        """Accept a member, its token, its name, or an operator alias like '+' or '**'."""
        if isinstance(token, OperationKind):
            return token
        t = (token or "").strip()
        if t in _KIND_ALIASES:
            return _KIND_ALIASES[t]
        low = t.lower()
        for kind in OperationKind:
            if low == kind.value or t.upper() == kind.name:
                return kind
        raise ValueError(
            f"Unknown operation {token!r}. Choose from: {[k.value for k in OperationKind]}"
        )


_KIND_ALIASES: Dict[str, OperationKind] = {
    "+": OperationKind.ADD,
    "-": OperationKind.SUB,
    "*": OperationKind.MUL,
    "/": OperationKind.DIV,
    "^": OperationKind.POW,
    "**": OperationKind.POW,
}

_KIND_SYMBOLS: Dict[OperationKind, str] = {
    OperationKind.START: "=",
    OperationKind.ADD: "+",
    OperationKind.SUB: "-",
    OperationKind.SUB_REVERSED: "r-",
    OperationKind.MUL: "*",
    OperationKind.DIV: "/",
    OperationKind.DIV_REVERSED: "r/",
    OperationKind.POW: "^",
    OperationKind.POW_REVERSED: "r^",
    OperationKind.MUL_BY_CONSTANT: "*c",
    OperationKind.MUL_BY_CONSTANT_REVERSED: "r*c",
    OperationKind.DIV_BY_CONSTANT: "/c",
    OperationKind.DIV_BY_CONSTANT_REVERSED: "r/c",
    OperationKind.INVALID: "!",
}


def _c_pow(x: float, y: float) -> float:
    """x ** y with C semantics: inf/nan instead of exceptions or complex results."""
    try:
        return math.pow(x, y)
    except ValueError:
        # 0 to a negative power, or a negative base with a fractional exponent
        return math.inf if x == 0 else math.nan
    except OverflowError:
        if x < 0 and float(y).is_integer() and int(y) % 2:
            return -math.inf
        return math.inf


def _mul(v: float, u: float, cv: float, cu: float) -> Tuple[float, float]:
    res = v * cv
    if v == 0 and cv == 0:
        return res, u * cu
    if v == 0:
        return res, (cu + cv) * u
    if cv == 0:
        return res, (v + u) * cu
    return res, res * (cu / cv + u / v)


def _div(num: float, num_u: float, den: float, den_u: float) -> Tuple[float, float]:
    if den == 0:
        return math.nan, math.nan
    res = num / den
    if num == 0:
        spread = den + den_u
        return res, UNBOUNDED_UNCERTAINTY if spread == 0 else num_u / spread
    return res, res * (num_u / num + den_u / den)


def _pow(base: float, base_u: float, exp: float) -> Tuple[float, float]:
    # Linearised relative uncertainty, not a min/max interval bound.
    res = math.nan if base == 0 and exp == 0 else _c_pow(base, exp)
    if math.isnan(res):
        return res, math.nan
    if base == 0:
        return res, _c_pow(base_u, exp)
    return res, res * ((base_u / base) * exp)


def _combine(kind: OperationKind, v: float, u: float, cv: float, cu: float) -> Tuple[float, float]:
    if kind is OperationKind.START:
        return v, u
    if kind is OperationKind.ADD:
        return v + cv, u + cu
    if kind is OperationKind.SUB:
        return cv - v, u + cu
    if kind is OperationKind.SUB_REVERSED:
        return v - cv, u + cu
    if kind is OperationKind.MUL:
        return _mul(v, u, cv, cu)
    if kind is OperationKind.DIV:
        return _div(cv, cu, v, u)
    if kind is OperationKind.DIV_REVERSED:
        return _div(v, u, cv, cu)
    if kind is OperationKind.POW:
        return _pow(cv, cu, v)
    if kind is OperationKind.POW_REVERSED:
        return _pow(v, u, cv)
    if kind is OperationKind.MUL_BY_CONSTANT:
        return cv * v, cu * v
    if kind is OperationKind.MUL_BY_CONSTANT_REVERSED:
        return cv * v, cv * u
    if kind is OperationKind.DIV_BY_CONSTANT:
        if v == 0:
            return math.nan, math.nan
        return cv / v, cu / v
    if kind is OperationKind.DIV_BY_CONSTANT_REVERSED:
        if cv == 0:
            return math.nan, math.nan
        return v / cv, u / cv
    return cv, cu


def _coerce_pair(value: Union[Number, NumberPair], uncertainty: Number = 0.0) -> NumberPair:
    if isinstance(value, NumberPair):
        return value
    if isinstance(value, tuple):
        if len(value) != 2:
            raise ValueError("Expected (value, uncertainty).")
        return NumberPair(value[0], value[1])
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"Expected a number or NumberPair, got {type(value).__name__}.")
    return NumberPair(value, uncertainty)


@dataclass
class Element:
    """
    One row of an UncertaintyChain: an operation applied between the
    cumulative of the rows above and this row's own operand.

    cumulative_in is written by the chain during recomputation. A poisoned
    element reads as kind INVALID with NaN operand and cumulative, but keeps
    the caller's kind and operand so a clean recomputation brings them back.
    """

    operation: OperationKind
    operand: NumberPair = ZERO_PAIR
    cumulative: NumberPair = ZERO_PAIR
    poisoned: bool = field(default=False, compare=False)

    @staticmethod
    def of(kind: Union[str, OperationKind], value: Union[Number, NumberPair] = 0.0,
           uncertainty: Number = 0.0) -> "Element":
        return Element(OperationKind.parse(kind), _coerce_pair(value, uncertainty))

    @staticmethod
    def invalid() -> "Element":
        return Element(OperationKind.INVALID, INVALID_PAIR, INVALID_PAIR)

    @property
    def kind(self) -> OperationKind:
        return OperationKind.INVALID if self.poisoned else self.operation

    @property
    def value(self) -> float:
        return math.nan if self.poisoned else self.operand.value

    @property
    def uncertainty(self) -> float:
        return math.nan if self.poisoned else self.operand.uncertainty

    @property
    def cumulative_in(self) -> NumberPair:
        return INVALID_PAIR if self.poisoned else self.cumulative

    def set_cumulative(self, pair: NumberPair) -> None:
        self.cumulative = pair
        self.poisoned = False

    def poison(self) -> None:
        self.poisoned = True

    def set_value(self, value: float, uncertainty: Optional[float] = None) -> None:
        u = self.operand.uncertainty if uncertainty is None else uncertainty
        self.operand = NumberPair(value, u)

    def set_uncertainty(self, uncertainty: float) -> None:
        self.operand = NumberPair(self.operand.value, uncertainty)

    def compute(self, cumulative: Optional[NumberPair] = None) -> NumberPair:
        """
        Combine the simplified operand with the simplified cumulative per kind.

        NaN in the result marks an undefined value (division by zero, 0 ** 0).
        """
        if cumulative is None:
            cumulative = self.cumulative_in
        cv, cu = simplify(cumulative.value, cumulative.uncertainty)
        v, u = simplify(self.operand.value, self.operand.uncertainty)
        value, uncertainty = _combine(self.kind, v, u, cv, cu)
        return NumberPair(*simplify(value, abs(uncertainty)))

    def copy(self) -> "Element":
        return Element(self.operation, self.operand, self.cumulative, self.poisoned)


class UncertaintyChain:
    """
    Ordered rows of uncertainty-aware arithmetic starting from a measured value.

    Row 0 is the START row and holds the starting value. Every mutator
    recomputes cached cumulatives from the earliest row it affects, so the
    cached result is consistent whenever a public call returns. Bad rows are
    silent no-ops; undefined arithmetic shows up as NaN and poisons the rows
    after it.
    """

    def __init__(self, capacity: Optional[int] = None, value: Number = 0.0,
                 uncertainty: Number = 0.0):
        self._capacity = config.CONFIG.default_capacity if capacity is None else max(1, int(capacity))
        self._elements: List[Element] = [Element(OperationKind.START, NumberPair(value, uncertainty))]
        self._result = ZERO_PAIR
        self._compute(0)

    # -- queries --------------------------------------------------------

    @property
    def capacity(self) -> int:
        return max(self._capacity, len(self._elements))

    def count(self) -> int:
        return len(self._elements)

    def __len__(self) -> int:
        return len(self._elements)

    def __iter__(self) -> Iterator[Element]:
        return iter(self._elements)

    def _valid(self, row: int) -> bool:
        return 0 <= row < len(self._elements)

    def get_element(self, row: int) -> Element:
        if not self._valid(row):
            return Element.invalid()
        return self._elements[row].copy()

    def get_value(self, row: int) -> float:
        return self._elements[row].value if self._valid(row) else math.nan

    def get_uncertainty(self, row: int) -> float:
        return self._elements[row].uncertainty if self._valid(row) else math.nan

    def get_type(self, row: int) -> OperationKind:
        return self._elements[row].kind if self._valid(row) else OperationKind.INVALID

    def get_pair(self, row: int) -> NumberPair:
        if not self._valid(row) or self._elements[row].poisoned:
            return INVALID_PAIR
        return self._elements[row].operand

    def get_starting_value(self) -> float:
        return self._elements[0].value

    def get_starting_uncertainty(self) -> float:
        return self._elements[0].uncertainty

    @property
    def starting(self) -> NumberPair:
        return self.get_pair(0)

    @property
    def result(self) -> NumberPair:
        return self._result

    def get_result(self) -> float:
        return self._result.value

    def get_resulting_uncertainty(self) -> float:
        return self._result.uncertainty

    def rows(self) -> Iterator[Tuple[int, OperationKind, NumberPair, NumberPair]]:
        """Yield (row, kind, operand, result) without touching the cache."""
        for i, el in enumerate(self._elements):
            out = INVALID_PAIR if el.poisoned else el.compute()
            yield i, el.kind, self.get_pair(i), out

    # -- structural mutations ------------------------------------------

    def _accepts(self, kind: OperationKind) -> bool:
        if kind in (OperationKind.START, OperationKind.INVALID):
            logger.debug("rejected %s row outside row 0", kind.name)
            return False
        return True

    def add(self, kind: Union[str, OperationKind], value: Union[Number, NumberPair] = 0.0,
            uncertainty: Number = 0.0) -> None:
        self.add_element(Element.of(kind, value, uncertainty))

    def add_element(self, element: Element) -> None:
        if not self._accepts(element.kind):
            return
        self._elements.append(element.copy())
        self._compute(len(self._elements) - 2)

    def add_at(self, row: int, kind: Union[str, OperationKind],
               value: Union[Number, NumberPair] = 0.0, uncertainty: Number = 0.0) -> None:
        self.add_element_at(row, Element.of(kind, value, uncertainty))

    def add_element_at(self, row: int, element: Element) -> None:
        if row <= 0:
            logger.debug("rejected insert at row %d", row)
            return
        if row >= len(self._elements):
            self.add_element(element)
            return
        if not self._accepts(element.kind):
            return
        self._elements.insert(row, element.copy())
        self._compute(row - 1)

    def remove(self, row: int) -> None:
        if row <= 0 or row >= len(self._elements):
            logger.debug("rejected remove of row %d", row)
            return
        del self._elements[row]
        self._compute(row - 1)

    def swap(self, row1: int, row2: int) -> None:
        n = len(self._elements)
        if row1 <= 0 or row2 <= 0 or row1 >= n or row2 >= n:
            logger.debug("rejected swap of rows %d and %d", row1, row2)
            return
        els = self._elements
        els[row1], els[row2] = els[row2], els[row1]
        self._compute(min(row1, row2) - 1)

    def clear(self) -> None:
        self._elements = [Element(OperationKind.START)]
        self._compute(0)

    # -- in-place edits --------------------------------------------------

    def set(self, row: int, value: Union[Number, NumberPair],
            uncertainty: Optional[Number] = None) -> None:
        if not self._valid(row):
            logger.debug("rejected set of row %d", row)
            return
        if isinstance(value, NumberPair):
            value, uncertainty = value.value, value.uncertainty
        self._elements[row].set_value(value, uncertainty)
        self._compute(row)

    def set_uncertainty(self, row: int, uncertainty: Number) -> None:
        if not self._valid(row):
            logger.debug("rejected set of row %d", row)
            return
        self._elements[row].set_uncertainty(uncertainty)
        self._compute(row)

    def set_element(self, row: int, element: Element) -> None:
        """Replace a whole row. Row 0 always stays a START row."""
        if not self._valid(row):
            logger.debug("rejected replacement of row %d", row)
            return
        el = element.copy()
        if row == 0:
            el.operation = OperationKind.START
            el.poisoned = False
        elif not self._accepts(el.kind):
            return
        self._elements[row] = el
        self._compute(max(row - 1, 0))

    def set_starting_value(self, value: Union[Number, NumberPair],
                           uncertainty: Optional[Number] = None) -> None:
        self.set(0, value, uncertainty)

    def set_starting_uncertainty(self, uncertainty: Number) -> None:
        self.set_uncertainty(0, uncertainty)

    def recompute(self, from_row: int = 0) -> None:
        self._compute(from_row)

    # -- recomputation ---------------------------------------------------

    def _compute(self, start: int) -> None:
        if not self._valid(start):
            return
        els = self._elements
        current = els[start].compute()
        for i in range(start + 1, len(els)):
            if current.is_nan():
                logger.debug("row %d undefined, poisoning rows %d..%d", i - 1, i, len(els) - 1)
                for el in els[i:]:
                    el.poison()
                break
            els[i].set_cumulative(current)
            current = els[i].compute()
        self._result = current
        logger.debug("recomputed rows %d..%d -> %r", start, len(els) - 1, current)

    def __str__(self) -> str:
        return format_pair(*self._result)

    def __repr__(self) -> str:
        return f"UncertaintyChain(rows={len(self._elements)}, result={self._result})"


def fmt_place(x: float, exponent: int) -> str:
    """Format x to the decimal place 10**exponent, keeping trailing zeros."""
    dp = max(0, -exponent)
    return f"{x:.{dp}f}"


def format_pair(value: float, uncertainty: float) -> str:
    """Render value ± uncertainty to the precision its uncertainty supports."""
    v, u = simplify(value, uncertainty)
    if math.isnan(v) or math.isnan(u):
        return "undefined"
    if u == 0:
        return f"{v:.{FLOAT_DIG}g} ± 0"
    _u1, e_u = round_uncertainty(u)
    return f"{fmt_place(v, e_u)} ± {fmt_place(u, e_u)}"


def _first_poisoned(chain: UncertaintyChain) -> Optional[int]:
    for i, el in enumerate(chain):
        if el.poisoned:
            return i
    return None


def trace_str(chain: UncertaintyChain) -> str:
    """Return the multiline row-by-row report as a string (no printing)."""
    if not isinstance(chain, UncertaintyChain):
        raise TypeError("trace_str(chain) requires an UncertaintyChain")

    lines: List[str] = []
    lines.append(f"TRACE: {len(chain)} row(s)")
    bad = _first_poisoned(chain)

    for i, kind, operand, out in chain.rows():
        lines.append(f"{i:>3} {kind.symbol:<4}{format_pair(*operand)}")
        if i > 0 and kind is not OperationKind.INVALID:
            lines.append(f"      in       {format_pair(*chain.get_element(i).cumulative_in)}")
        lines.append(f"      report   {format_pair(*out)}")
        if config.CONFIG.show_interval_in_print and not out.is_nan():
            I = out.interval()
            lines.append(f"      iv       [{float(I.a):.6g}, {float(I.b):.6g}]")
        if bad is not None and i == bad and config.CONFIG.show_poison_warning:
            lines.append(
                f"      WARNING: row {i - 1} is undefined; rows {i}..{len(chain) - 1} "
                "are invalid until it is fixed."
            )

    lines.append(f"RESULT: {format_pair(*chain.result)}")
    return "\n".join(lines)


def trace(chain: UncertaintyChain) -> None:
    """Print the trace."""
    print(trace_str(chain))


__all__ = [
    "Element",
    "INVALID_PAIR",
    "NumberPair",
    "OperationKind",
    "UNBOUNDED_UNCERTAINTY",
    "UncertaintyChain",
    "format_pair",
    "trace",
    "trace_str",
]
