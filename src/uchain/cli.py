"""
uchain command line interface.
"""

import argparse
import logging
import sys
from typing import List, Optional, TextIO

from .core import OperationKind, UncertaintyChain, format_pair, trace_str
from .sigfig import sigfig_count, simplify

REPL_HELP = """\
Commands (one per line):
  OP VALUE [UNCERTAINTY]            append a row (OP: add sub rsub mul div rdiv
                                    pow rpow mulc rmulc divc rdivc, or + - * / ^)
  insert ROW OP VALUE [UNCERTAINTY] insert a row before ROW
  rm [ROW]                          remove ROW (default: last row)
  swap ROW1 ROW2                    exchange two rows
  set ROW VALUE [UNCERTAINTY]       change a row's operand
  start VALUE [UNCERTAINTY]         change the starting value
  clear                             reset to a single 0 ± 0 row
  show                              print the row-by-row trace
  help                              print this text
  quit                              leave
"""


class CommandError(ValueError):
    """A REPL line that could not be understood."""


def _float(s: str) -> float:
    try:
        return float(s.replace(",", "."))
    except ValueError:
        raise CommandError(f"not a number: {s!r}") from None


def _row(s: str) -> int:
    try:
        return int(s)
    except ValueError:
        raise CommandError(f"not a row number: {s!r}") from None


def _value_args(args: List[str]) -> List[float]:
    if not 1 <= len(args) <= 2:
        raise CommandError("expected VALUE [UNCERTAINTY]")
    return [_float(a) for a in args]


def run_command(chain: UncertaintyChain, line: str) -> Optional[str]:
    """
    Apply one REPL line to chain.

    Returns the text to print, or None when the line asks to quit.
    """
    words = line.split()
    if not words:
        return ""
    cmd, args = words[0].lower(), words[1:]

    if cmd in ("quit", "exit", "q"):
        return None
    if cmd == "help":
        return REPL_HELP
    if cmd == "show":
        return trace_str(chain)
    if cmd == "clear":
        chain.clear()
    elif cmd == "rm":
        if len(args) > 1:
            raise CommandError("expected rm [ROW]")
        chain.remove(_row(args[0]) if args else chain.count() - 1)
    elif cmd == "swap":
        if len(args) != 2:
            raise CommandError("expected swap ROW1 ROW2")
        chain.swap(_row(args[0]), _row(args[1]))
    elif cmd == "set":
        if len(args) < 2:
            raise CommandError("expected set ROW VALUE [UNCERTAINTY]")
        chain.set(_row(args[0]), *_value_args(args[1:]))
    elif cmd == "start":
        chain.set_starting_value(*_value_args(args))
    elif cmd == "insert":
        if len(args) < 3:
            raise CommandError("expected insert ROW OP VALUE [UNCERTAINTY]")
        chain.add_at(_row(args[0]), OperationKind.parse(args[1]), *_value_args(args[2:]))
    else:
        chain.add(OperationKind.parse(cmd), *_value_args(args))

    return f"= {format_pair(*chain.result)}"


def repl(chain: UncertaintyChain, stdin: TextIO, stdout: TextIO, stderr: TextIO,
         prompt: str = "") -> int:
    """Read commands until EOF or quit. Returns the number of rejected lines."""
    errors = 0
    print(f"= {format_pair(*chain.result)}", file=stdout)
    while True:
        if prompt:
            stdout.write(prompt)
            stdout.flush()
        line = stdin.readline()
        if not line:
            break
        try:
            out = run_command(chain, line)
        except ValueError as e:
            errors += 1
            print(f"ERROR: {e}", file=stderr)
            continue
        if out is None:
            break
        if out:
            print(out, file=stdout)
    return errors


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="uchain",
        description="Uncertainty propagation and significant figures",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  uchain round 12.3456 0.25
  uchain count 100.0
  uchain run --start 1.5 0.1
  echo "add 3.2 0.3" | uchain run --start 1.5 0.1 --trace
        """
    )
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Log chain recomputation at DEBUG level')

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    round_parser = subparsers.add_parser('round', help='Round a value to its uncertainty')
    round_parser.add_argument('value', type=float)
    round_parser.add_argument('uncertainty', type=float)

    count_parser = subparsers.add_parser('count', help='Count significant figures in a numeral')
    count_parser.add_argument('numeral')

    run_parser = subparsers.add_parser('run', help='Build a chain interactively',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=REPL_HELP)
    run_parser.add_argument('--start', nargs=2, type=float, default=[0.0, 0.0],
                            metavar=('VALUE', 'UNCERTAINTY'),
                            help='Starting value and uncertainty (default: 0 0)')
    run_parser.add_argument('--trace', action='store_true',
                            help='Print the row-by-row trace on exit')

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == 'round':
        v, u = simplify(args.value, args.uncertainty)
        print(f"{v!r} {u!r}  ({format_pair(args.value, args.uncertainty)})")
        return 0

    if args.command == 'count':
        print(sigfig_count(args.numeral))
        return 0

    chain = UncertaintyChain(value=args.start[0], uncertainty=args.start[1])
    prompt = "> " if sys.stdin.isatty() else ""
    errors = repl(chain, sys.stdin, sys.stdout, sys.stderr, prompt=prompt)
    if args.trace:
        print(trace_str(chain))
    return 1 if errors else 0


if __name__ == '__main__':
    sys.exit(main())
