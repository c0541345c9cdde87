"""Command line entry point: load an alpha binary and run it."""

from __future__ import annotations

import argparse
import sys

from .errors import AVMError, BinaryFormatError
from .library import default_library
from .loader import load_program
from .machine import VirtualMachine


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="alphavm", description="Run an alpha binary.")
    parser.add_argument("-i", dest="input_file", metavar="FILE", help="binary to execute")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the binary named by ``-i``; return the process exit status."""
    args = _parser().parse_args(argv)
    if not args.input_file:
        print("input file not set", file=sys.stderr)
        return 1

    try:
        program = load_program(args.input_file)
    except BinaryFormatError as exc:
        print(exc.message, file=sys.stderr)
        return 1

    print()
    print(program.describe())
    print()

    status = 0
    try:
        vm = VirtualMachine(program, default_library(), sys.stdout, sys.stderr)
        vm.run()
    except AVMError:
        status = 1

    print("ended execution")
    return status


if __name__ == "__main__":
    sys.exit(main())