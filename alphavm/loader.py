"""Reading alpha binaries: constants, function tables and code."""

from __future__ import annotations

from dataclasses import dataclass, field
from os import PathLike
from pathlib import Path

from .errors import BinaryFormatError
from .instructions import (
    Instruction,
    UserFunc,
    VMArg,
    arg_type_from_name,
    opcode_from_name,
)

MAGIC_NUMBER = 69420

LIBRARY_NAMES: tuple[str, ...] = (
    "print",
    "input",
    "objectmemberkeys",
    "objecttotalmembers",
    "objectcopy",
    "totalarguments",
    "argument",
    "typeof",
    "strtonum",
    "sqrt",
    "cos",
    "sin",
)


@dataclass
class Program:
    """Everything an alpha binary holds, ready for the virtual machine."""

    str_consts: list[str] = field(default_factory=list)
    num_consts: list[float] = field(default_factory=list)
    user_funcs: list[UserFunc] = field(default_factory=list)
    library_funcs: list[str] = field(default_factory=lambda: list(LIBRARY_NAMES))
    globals_count: int = 0
    code: list[Instruction] = field(default_factory=list)

    @property
    def code_size(self) -> int:
        return len(self.code)

    def describe(self) -> str:
        """A summary of the program's tables, one item per line."""
        lines = [
            "===== INFO =====",
            f"str: {len(self.str_consts)}",
            f"num: {len(self.num_consts)}",
            f"user functions: {len(self.user_funcs)}",
        ]
        if self.user_funcs:
            lines.append("id, address, local size")
        lines.extend(
            f"{index}: {func.id}, {func.address}, {func.local_size}"
            for index, func in enumerate(self.user_funcs)
        )
        lines.extend(
            [
                f"library functions: {len(self.library_funcs)}",
                f"globals count: {self.globals_count}",
                f"instructions count: {len(self.code)}",
                "================",
            ]
        )
        return "\n".join(lines)


class _Scanner:
    """Reads whitespace-separated tokens and quoted strings from text."""

    def __init__(self, text: str) -> None:
        self._text = text
        self._pos = 0

    def _skip_space(self) -> None:
        text, pos = self._text, self._pos
        while pos < len(text) and text[pos].isspace():
            pos += 1
        self._pos = pos

    def token(self) -> str | None:
        self._skip_space()
        start = self._pos
        text = self._text
        end = start
        while end < len(text) and not text[end].isspace():
            end += 1
        self._pos = end
        return text[start:end] if end > start else None

    def string_constant(self) -> str | None:
        """A quoted string (quotes removed) or a bare token."""
        self._skip_space()
        if self._pos >= len(self._text):
            return None
        if self._text[self._pos] != '"':
            return self.token()
        closing = self._text.find('"', self._pos + 1)
        if closing < 0:
            return None
        value = self._text[self._pos + 1 : closing]
        self._pos = closing + 1
        return value


def _unsigned(token: str | None) -> int | None:
    if token is None or not token.isdigit():
        return None
    return int(token)


def _section(scanner: _Scanner, label: str, message: str) -> int:
    count = _unsigned(scanner.token())
    if count is None or scanner.token() != label:
        raise BinaryFormatError(message)
    return count


def _check_magic(scanner: _Scanner) -> None:
    magic = scanner.token()
    tag = scanner.token()
    try:
        valid = int(magic) == MAGIC_NUMBER if magic is not None else False
    except ValueError:
        valid = False
    if not valid or tag != "magic_number":
        raise BinaryFormatError("file is not an alpha binary")


def _read_strings(scanner: _Scanner) -> list[str]:
    message = "Could not read constant strings"
    count = _section(scanner, "constant_strings", message)
    strings = []
    for _ in range(count):
        value = scanner.string_constant()
        if value is None:
            raise BinaryFormatError(message)
        strings.append(value)
    return strings


def _read_numbers(scanner: _Scanner) -> list[float]:
    message = "Could not read constant numbers"
    count = _section(scanner, "constant_numbers", message)
    numbers = []
    for _ in range(count):
        token = scanner.token()
        try:
            numbers.append(float(token))
        except (TypeError, ValueError):
            raise BinaryFormatError(message) from None
    return numbers


def _read_user_funcs(scanner: _Scanner) -> list[UserFunc]:
    message = "Could not read user functions"
    count = _section(scanner, "user_functions", message)
    funcs = []
    for _ in range(count):
        name = scanner.token()
        address = _unsigned(scanner.token())
        local_size = _unsigned(scanner.token())
        if name is None or address is None or local_size is None:
            raise BinaryFormatError(message)
        funcs.append(UserFunc(name, address, local_size))
    return funcs


def _read_library_funcs(scanner: _Scanner) -> list[str]:
    message = "Could not read library functions"
    count = _section(scanner, "library_functions", message)
    if count != len(LIBRARY_NAMES):
        raise BinaryFormatError(message)
    names = []
    for expected in LIBRARY_NAMES:
        name = scanner.token()
        if name is None:
            raise BinaryFormatError(message)
        if name != expected:
            raise BinaryFormatError(
                f"library function {name!r} found where {expected!r} was expected"
            )
        names.append(name)
    return names


def _read_instructions(scanner: _Scanner) -> list[Instruction]:
    message = "Could not read instructions"
    count = _section(scanner, "instructions", message)
    code = []
    for _ in range(count):
        fields = [scanner.token() for _ in range(7)]
        if any(item is None for item in fields):
            raise BinaryFormatError(message)
        opcode, result_type, result_val, arg1_type, arg1_val, arg2_type, arg2_val = fields
        values = [_unsigned(v) for v in (result_val, arg1_val, arg2_val)]
        if any(v is None for v in values):
            raise BinaryFormatError(message)
        code.append(
            Instruction(
                opcode=opcode_from_name(opcode),
                result=VMArg(arg_type_from_name(result_type), values[0]),
                arg1=VMArg(arg_type_from_name(arg1_type), values[1]),
                arg2=VMArg(arg_type_from_name(arg2_type), values[2]),
            )
        )
    return code


def parse_program(text: str) -> Program:
    """Parse the text of an alpha binary into a Program."""
    scanner = _Scanner(text)
    _check_magic(scanner)
    str_consts = _read_strings(scanner)
    num_consts = _read_numbers(scanner)
    user_funcs = _read_user_funcs(scanner)
    library_funcs = _read_library_funcs(scanner)
    globals_count = _section(scanner, "num_of_globals", "Could not read instructions")
    code = _read_instructions(scanner)
    return Program(
        str_consts=str_consts,
        num_consts=num_consts,
        user_funcs=user_funcs,
        library_funcs=library_funcs,
        globals_count=globals_count,
        code=code,
    )


def load_program(path: str | PathLike[str]) -> Program:
    """Read and parse the alpha binary stored at ``path``."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise BinaryFormatError("error opening the file") from exc
    return parse_program(text)