"""Instruction set of the alpha virtual machine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

from .errors import BinaryFormatError


class Opcode(IntEnum):
    """Virtual machine opcodes."""

    ASSIGN = 0
    ADD = 1
    SUB = 2
    MUL = 3
    DIV = 4
    MOD = 5
    JUMP = 6
    JEQ = 7
    JNE = 8
    JLE = 9
    JGE = 10
    JLT = 11
    JGT = 12
    CALL = 13
    PUSHARG = 14
    FUNCENTER = 15
    FUNCEXIT = 16
    NEWTABLE = 17
    TABLEGETELEM = 18
    TABLESETELEM = 19
    NOP = 20


class ArgType(IntEnum):
    """Kinds of instruction operands."""

    LABEL = 0
    GLOBAL = 1
    FORMAL = 2
    LOCAL = 3
    NUMBER = 4
    STRING = 5
    BOOL = 6
    NIL = 7
    USERFUNC = 8
    LIBFUNC = 9
    RETVAL = 10


@dataclass(frozen=True)
class VMArg:
    """An instruction operand: its kind and an index or immediate value."""

    type: ArgType
    val: int = 0


@dataclass(frozen=True)
class Instruction:
    """One virtual machine instruction."""

    opcode: Opcode
    result: VMArg
    arg1: VMArg
    arg2: VMArg
    src_line: int = 0


@dataclass
class UserFunc:
    """Description of a user-defined function in the program."""

    id: str
    address: int
    local_size: int


_OPCODE_NAMES = {
    "assign": Opcode.ASSIGN,
    "add": Opcode.ADD,
    "sub": Opcode.SUB,
    "mul": Opcode.MUL,
    "div": Opcode.DIV,
    "mod": Opcode.MOD,
    "if_eq": Opcode.JEQ,
    "if_not_eq": Opcode.JNE,
    "if_less_eq": Opcode.JLE,
    "if_greater_eq": Opcode.JGE,
    "if_less": Opcode.JLT,
    "if_greater": Opcode.JGT,
    "jump": Opcode.JUMP,
    "call": Opcode.CALL,
    "param": Opcode.PUSHARG,
    "funcstart": Opcode.FUNCENTER,
    "funcend": Opcode.FUNCEXIT,
    "newtable": Opcode.NEWTABLE,
    "tablegetelem": Opcode.TABLEGETELEM,
    "tablesetelem": Opcode.TABLESETELEM,
    "nop": Opcode.NOP,
}

_ARG_TYPE_NAMES = {
    "label_a": ArgType.LABEL,
    "global_a": ArgType.GLOBAL,
    "formal_a": ArgType.FORMAL,
    "local_a": ArgType.LOCAL,
    "number_a": ArgType.NUMBER,
    "string_a": ArgType.STRING,
    "bool_a": ArgType.BOOL,
    "nil_a": ArgType.NIL,
    "userfunc_a": ArgType.USERFUNC,
    "libfunc_a": ArgType.LIBFUNC,
    "retval_a": ArgType.RETVAL,
}


def opcode_from_name(name: str) -> Opcode:
    """Return the opcode written as ``name`` in a binary file."""
    try:
        return _OPCODE_NAMES[name]
    except KeyError:
        raise BinaryFormatError(f"unknown opcode {name!r}") from None


def arg_type_from_name(name: str) -> ArgType:
    """Return the operand kind written as ``name`` in a binary file."""
    try:
        return _ARG_TYPE_NAMES[name]
    except KeyError:
        raise BinaryFormatError(f"unknown operand type {name!r}") from None