from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ChainConfig:
    default_capacity: int = 10
    decimal_separators: str = ".,"
    show_interval_in_print: bool = True
    show_poison_warning: bool = True


CONFIG = ChainConfig()


def set_config(
    *,
    default_capacity: Optional[int] = None,
    decimal_separators: Optional[str] = None,
    show_interval_in_print: Optional[bool] = None,
    show_poison_warning: Optional[bool] = None,
) -> None:
    """Update global CONFIG flags."""
    global CONFIG
    if default_capacity is not None and default_capacity < 1:
        raise ValueError("default_capacity must be >= 1")
    if decimal_separators is not None:
        if not decimal_separators or any(c.isdigit() for c in decimal_separators):
            raise ValueError("decimal_separators must be a non-empty string of non-digit characters")
    CONFIG = ChainConfig(
        default_capacity=CONFIG.default_capacity
        if default_capacity is None
        else default_capacity,
        decimal_separators=CONFIG.decimal_separators
        if decimal_separators is None
        else decimal_separators,
        show_interval_in_print=CONFIG.show_interval_in_print
        if show_interval_in_print is None
        else show_interval_in_print,
        show_poison_warning=CONFIG.show_poison_warning
        if show_poison_warning is None
        else show_poison_warning,
    )


def reset_config() -> None:
    global CONFIG
    CONFIG = ChainConfig()
