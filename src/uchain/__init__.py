from .config import (
    ChainConfig,
    reset_config,
    set_config,
)
from .sigfig import (
    DecimalDigits,
    simplify,
    sigfig_count,
)
from .core import (
    INVALID_PAIR,
    UNBOUNDED_UNCERTAINTY,
    Element,
    NumberPair,
    OperationKind,
    UncertaintyChain,
    format_pair,
    trace,
    trace_str,
)

__version__ = "0.1.0"


def __getattr__(name: str):
    # CONFIG is rebound by set_config(); serve the live object.
    if name == "CONFIG":
        from . import config

        return config.CONFIG
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
