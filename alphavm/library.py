"""Library functions available to alpha programs."""

from __future__ import annotations

import math
import re
import sys
from typing import TYPE_CHECKING, Callable, TextIO

from .memcell import CellType, MemCell

if TYPE_CHECKING:
    from .machine import VirtualMachine

AVM_STACKENV_SIZE = 4
_NUMACTUALS_OFFSET = 4
_SAVEDTOPSP_OFFSET = 1

_NUMBER_PREFIX = re.compile(
    r"\s*[+-]?(?:(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|inf(?:inity)?|nan)",
    re.IGNORECASE,
)


def _set_retval(vm: VirtualMachine, kind: CellType, data: object = None) -> None:
    vm.retval.clear()
    vm.retval.type = kind
    vm.retval.data = data


def _single_argument(vm: VirtualMachine, name: str) -> MemCell:
    count = vm.total_actuals()
    if count != 1:
        vm.error(f"one argument (not {count}) expected in '{name}'!")
    return vm.get_actual(0)


def _typed_argument(vm: VirtualMachine, name: str, kind: CellType) -> MemCell:
    cell = _single_argument(vm, name)
    if cell.type is not kind:
        vm.error(f"type cannot be {cell.type.type_name} in '{name}'!")
    return cell


def _read_token(stream: TextIO) -> str:
    """Read one whitespace-delimited word from ``stream``."""
    chars: list[str] = []
    while True:
        char = stream.read(1)
        if not char:
            break
        if char.isspace():
            if chars:
                break
            continue
        chars.append(char)
    return "".join(chars)


def libfunc_print(vm: VirtualMachine) -> None:
    """Write every argument, without separators, to the output stream."""
    for index in range(vm.total_actuals()):
        vm.out.write(vm.get_actual(index).to_string())


def libfunc_input(vm: VirtualMachine) -> None:
    """Read one word from standard input and return it as the matching value."""
    word = _read_token(sys.stdin)
    if not word:
        vm.error("input: nothing left to read!")
    if word.isascii() and word.isdigit():
        _set_retval(vm, CellType.NUMBER, float(word))
    elif word == "true":
        _set_retval(vm, CellType.BOOL, True)
    elif word == "false":
        _set_retval(vm, CellType.BOOL, False)
    elif word == "nil":
        _set_retval(vm, CellType.NIL)
    else:
        _set_retval(vm, CellType.STRING, word)


def libfunc_objectmemberkeys(vm: VirtualMachine) -> None:
    """Return a table of the argument table's keys, indexed from 0."""
    cell = _typed_argument(vm, "objectmemberkeys", CellType.TABLE)
    _set_retval(vm, CellType.TABLE, cell.data.member_keys())


def libfunc_objecttotalmembers(vm: VirtualMachine) -> None:
    """Return the number of elements in the argument table."""
    cell = _typed_argument(vm, "objecttotalmembers", CellType.TABLE)
    _set_retval(vm, CellType.NUMBER, float(cell.data.total_members()))


def libfunc_objectcopy(vm: VirtualMachine) -> None:
    """Return a shallow copy of the argument table."""
    cell = _typed_argument(vm, "objectcopy", CellType.TABLE)
    _set_retval(vm, CellType.TABLE, cell.data.copy())


def libfunc_totalarguments(vm: VirtualMachine) -> None:
    """Return how many arguments the calling user function received."""
    caller_topsp = vm.get_envvalue(vm.topsp - _SAVEDTOPSP_OFFSET)
    vm.retval.clear()
    if not caller_topsp:
        _set_retval(vm, CellType.NIL)
        vm.error("'totalarguments' called outside of a function!")
    count = vm.get_envvalue(caller_topsp - _NUMACTUALS_OFFSET)
    _set_retval(vm, CellType.NUMBER, float(count))


def libfunc_argument(vm: VirtualMachine) -> None:
    """Return the calling user function's argument at the given index."""
    caller_topsp = vm.get_envvalue(vm.topsp - _SAVEDTOPSP_OFFSET)
    count = vm.total_actuals()
    vm.retval.clear()
    if not caller_topsp:
        _set_retval(vm, CellType.NIL)
        vm.error("'argument' called outside of a function!")
    if count != 1:
        vm.error(f"one argument (not {count}) expected in 'argument'!")
    position = vm.get_actual(0)
    if position.type is not CellType.NUMBER:
        vm.error(f"type cannot be {position.type.type_name} in 'argument'!")
    index = caller_topsp - AVM_STACKENV_SIZE - 1 - int(position.data)
    if not 0 <= index < len(vm.stack):
        vm.error(f"argument {int(position.data)} is out of range!")
    source = vm.stack[index]
    _set_retval(vm, source.type, source.data)


def libfunc_typeof(vm: VirtualMachine) -> None:
    """Return the name of the argument's type."""
    cell = _single_argument(vm, "typeof")
    _set_retval(vm, CellType.STRING, cell.type.type_name)


def libfunc_strtonum(vm: VirtualMachine) -> None:
    """Return the number a string starts with, or nil when it has none."""
    cell = _typed_argument(vm, "strtnum", CellType.STRING)
    match = _NUMBER_PREFIX.match(cell.data)
    if match is None:
        _set_retval(vm, CellType.NIL)
    else:
        _set_retval(vm, CellType.NUMBER, float(match.group().strip()))


def libfunc_sqrt(vm: VirtualMachine) -> None:
    """Return the square root, or nil for a negative argument."""
    cell = _typed_argument(vm, "sqrt", CellType.NUMBER)
    value = float(cell.data)
    if value < 0:
        _set_retval(vm, CellType.NIL)
    else:
        _set_retval(vm, CellType.NUMBER, math.sqrt(value))


def libfunc_cos(vm: VirtualMachine) -> None:
    """Return the cosine of the argument (radians)."""
    cell = _typed_argument(vm, "cos", CellType.NUMBER)
    _set_retval(vm, CellType.NUMBER, math.cos(float(cell.data)))


def libfunc_sin(vm: VirtualMachine) -> None:
    """Return the sine of the argument (radians)."""
    cell = _typed_argument(vm, "sin", CellType.NUMBER)
    _set_retval(vm, CellType.NUMBER, math.sin(float(cell.data)))


def default_library() -> dict[str, Callable[[VirtualMachine], None]]:
    """The standard library, keyed by the names programs call."""
    return {
        "print": libfunc_print,
        "input": libfunc_input,
        "objectmemberkeys": libfunc_objectmemberkeys,
        "objecttotalmembers": libfunc_objecttotalmembers,
        "objectcopy": libfunc_objectcopy,
        "totalarguments": libfunc_totalarguments,
        "argument": libfunc_argument,
        "typeof": libfunc_typeof,
        "strtonum": libfunc_strtonum,
        "sqrt": libfunc_sqrt,
        "cos": libfunc_cos,
        "sin": libfunc_sin,
    }