"""The alpha virtual machine: stack, registers and the execution cycle."""

from __future__ import annotations

import math
import operator
import sys
from typing import Callable, Mapping, Optional, TextIO

from .errors import AVMError
from .instructions import ArgType, Instruction, Opcode, UserFunc, VMArg
from .loader import Program
from .memcell import CellType, MemCell, Table

AVM_STACK_SIZE = 4096
AVM_STACKENV_SIZE = 4

NUMACTUALS_OFFSET = 4
SAVEDPC_OFFSET = 3
SAVEDTOP_OFFSET = 2
SAVEDTOPSP_OFFSET = 1

LibraryFunc = Callable[["VirtualMachine"], None]

_STACK_OPERANDS = (ArgType.GLOBAL, ArgType.LOCAL, ArgType.FORMAL)

_COMPARISONS: dict[Opcode, Callable[[float, float], bool]] = {
    Opcode.JLE: operator.le,
    Opcode.JGE: operator.ge,
    Opcode.JLT: operator.lt,
    Opcode.JGT: operator.gt,
}


def _load(cell: MemCell, kind: CellType, data: object) -> MemCell:
    cell.type = kind
    cell.data = data
    return cell


class VirtualMachine:
    """Executes a loaded Program one instruction at a time."""

    def __init__(
        self,
        program: Program,
        library: Optional[Mapping[str, LibraryFunc]] = None,
        out: Optional[TextIO] = None,
        err: Optional[TextIO] = None,
    ) -> None:
        self.program = program
        self.library: dict[str, LibraryFunc] = dict(library) if library is not None else {}
        self.out = out if out is not None else sys.stdout
        self.err = err if err is not None else sys.stderr
        self.trace = True

        self.stack = [MemCell() for _ in range(AVM_STACK_SIZE)]
        self.ax = MemCell()
        self.bx = MemCell()
        self.cx = MemCell()
        self.retval = MemCell()

        self.pc = 0
        self.current_line = 0
        self.topsp = 0
        self.top = program.globals_count + 1
        self.execution_finished = False
        self._pending_actuals = 0

        if self.top >= AVM_STACK_SIZE:
            raise AVMError("too many globals for the stack")

        self._dispatch: dict[Opcode, Callable[[Instruction], None]] = {
            Opcode.ASSIGN: self._execute_assign,
            Opcode.ADD: self._execute_arithmetic,
            Opcode.SUB: self._execute_arithmetic,
            Opcode.MUL: self._execute_arithmetic,
            Opcode.DIV: self._execute_arithmetic,
            Opcode.MOD: self._execute_arithmetic,
            Opcode.JUMP: self._execute_jump,
            Opcode.JEQ: self._execute_jeq,
            Opcode.JNE: self._execute_jne,
            Opcode.JLE: self._execute_comparison,
            Opcode.JGE: self._execute_comparison,
            Opcode.JLT: self._execute_comparison,
            Opcode.JGT: self._execute_comparison,
            Opcode.CALL: self._execute_call,
            Opcode.PUSHARG: self._execute_pusharg,
            Opcode.FUNCENTER: self._execute_funcenter,
            Opcode.FUNCEXIT: self._execute_funcexit,
            Opcode.NEWTABLE: self._execute_newtable,
            Opcode.TABLEGETELEM: self._execute_tablegetelem,
            Opcode.TABLESETELEM: self._execute_tablesetelem,
            Opcode.NOP: self._execute_nop,
        }

    # ----- diagnostics -------------------------------------------------

    def _say(self, text: str) -> None:
        self.out.write(text + "\n")

    def warning(self, message: str) -> None:
        """Report a non-fatal problem on the output stream."""
        self._say(message)

    def error(self, message: str) -> None:
        """Report a fatal problem, stop execution and raise AVMError."""
        self.err.write(message + "\n")
        self.execution_finished = True
        raise AVMError(message, self.current_line)

    # ----- execution loop ----------------------------------------------

    def run(self) -> None:
        """Execute instructions until the program ends."""
        while not self.execution_finished:
            self.execute_cycle()

    def execute_cycle(self) -> None:
        """Fetch, decode and execute one instruction."""
        if self.execution_finished:
            self._say("execution is already done")
            return
        code_size = self.program.code_size
        if self.pc == code_size:
            self.execution_finished = True
            self._say(
                "pc reached the end of the program, setting exectionFinished to true"
            )
            return
        if self.pc > code_size:
            self.error(f"pc {self.pc} is past the end of the program")

        instr = self.program.code[self.pc]
        if instr.src_line:
            self.current_line = instr.src_line
        old_pc = self.pc
        if self.trace:
            self._say(f"will execute opcode: {int(instr.opcode)} pc: {self.pc}")
        self._dispatch[instr.opcode](instr)
        if self.pc == old_pc:
            self.pc += 1
        if self.trace:
            self._say("cycle complete")

    # ----- operands ----------------------------------------------------

    def _stack_index(self, arg: VMArg) -> int:
        kind = arg.type
        if kind is ArgType.GLOBAL:
            index = arg.val
        elif kind is ArgType.LOCAL:
            if not (arg.val > 0 and self.topsp + arg.val < self.top):
                self.error(f"invalid local operand {arg.val}")
            index = self.topsp + arg.val
        else:
            index = self.topsp - AVM_STACKENV_SIZE - 1 - arg.val
            if index < 0:
                self.error(f"invalid formal operand {arg.val}")
        if not 0 <= index < AVM_STACK_SIZE:
            self.error(f"operand outside the stack: {index}")
        return index

    def translate_operand(self, arg: VMArg, register: Optional[MemCell] = None) -> MemCell:
        """The memory cell an operand denotes; constants are loaded into ``register``."""
        kind = arg.type
        if kind is ArgType.LABEL:
            self.error("a label operand has no value")
        if kind in _STACK_OPERANDS:
            return self.stack[self._stack_index(arg)]
        if kind is ArgType.RETVAL:
            return self.retval
        if register is None:
            self.error(f"no register for {kind.name.lower()} operand")
        program = self.program
        try:
            if kind is ArgType.NUMBER:
                return _load(register, CellType.NUMBER, float(program.num_consts[arg.val]))
            if kind is ArgType.STRING:
                return _load(register, CellType.STRING, program.str_consts[arg.val])
            if kind is ArgType.LIBFUNC:
                return _load(register, CellType.LIBFUNC, program.library_funcs[arg.val])
        except IndexError:
            self.error(f"{kind.name.lower()} constant {arg.val} does not exist")
        if kind is ArgType.BOOL:
            return _load(register, CellType.BOOL, bool(arg.val))
        if kind is ArgType.NIL:
            return _load(register, CellType.NIL, None)
        if kind is ArgType.USERFUNC:
            return _load(register, CellType.USERFUNC, arg.val)
        self.error(f"unknown operand type {kind!r}")
        raise AssertionError("unreachable")

    def _lvalue(self, arg: VMArg) -> MemCell:
        if arg.type is ArgType.RETVAL:
            return self.retval
        if arg.type not in _STACK_OPERANDS:
            self.error(f"{arg.type.name.lower()} operand cannot be assigned to")
        index = self._stack_index(arg)
        if index >= self.top:
            self.error(f"assignment target {index} is above the stack top")
        return self.stack[index]

    def _table_operand(self, arg: VMArg) -> MemCell:
        if arg.type not in _STACK_OPERANDS:
            self.error(f"{arg.type.name.lower()} operand cannot hold a table")
        index = self._stack_index(arg)
        if index >= self.top:
            self.error(f"table operand {index} is above the stack top")
        return self.stack[index]

    # ----- memory helpers ----------------------------------------------

    def assign(self, target: MemCell, source: MemCell) -> None:
        """Copy ``source`` into ``target``; tables are shared, not copied."""
        if target is source:
            return
        if (
            target.type is CellType.TABLE
            and source.type is CellType.TABLE
            and target.data is source.data
        ):
            return
        if source.type is CellType.UNDEF:
            self.warning("assigning from 'undef' content!")
        kind, data = source.type, source.data
        target.clear()
        _load(target, kind, data)

    def _inc_top(self) -> None:
        if self.top == AVM_STACK_SIZE - 1:
            self.error("stack overflow")
        self.top += 1

    def _push_envvalue(self, value: int) -> None:
        _load(self.stack[self.top], CellType.NUMBER, value)
        self._inc_top()

    def _save_environment(self) -> None:
        self._push_envvalue(self._pending_actuals)
        if self.program.code[self.pc].opcode is not Opcode.CALL:
            self.error("environment saved outside of a call")
        self._push_envvalue(self.pc + 1)
        self._push_envvalue(self.top + self._pending_actuals + 2)
        self._push_envvalue(self.topsp)

    def _push_table_arg(self, table: Table) -> None:
        _load(self.stack[self.top], CellType.TABLE, table)
        self._pending_actuals += 1
        self._inc_top()

    def _enter_user_function(self, address: object) -> None:
        self.pc = int(address)
        if not (
            self.pc < self.program.code_size
            and self.program.code[self.pc].opcode is Opcode.FUNCENTER
        ):
            self.error(f"address {self.pc} is not the start of a function")

    def get_envvalue(self, index: int) -> int:
        """A saved environment value stored at stack position ``index``."""
        if not 0 <= index < AVM_STACK_SIZE:
            self.error(f"environment value outside the stack: {index}")
        cell = self.stack[index]
        if cell.type is not CellType.NUMBER:
            self.error(f"stack entry {index} is not an environment value")
        value = int(cell.data)
        if value != cell.data:
            self.error(f"stack entry {index} is not an environment value")
        return value

    def total_actuals(self) -> int:
        """Number of arguments passed to the running function."""
        return self.get_envvalue(self.topsp - NUMACTUALS_OFFSET)

    def get_actual(self, index: int) -> MemCell:
        """The ``index``-th argument of the running function."""
        if not 0 <= index < self.total_actuals():
            self.error(f"argument {index} does not exist")
        return self.stack[self.topsp - AVM_STACKENV_SIZE - 1 - index]

    def funcinfo(self, address: int) -> UserFunc:
        """The user function that starts at ``address``."""
        for func in self.program.user_funcs:
            if func.address == address:
                return func
        self.error(f"no user function at address {address}")
        raise AssertionError("unreachable")

    # ----- calls -------------------------------------------------------

    def call_library(self, name: str) -> None:
        """Call the library function registered as ``name``."""
        func = self.library.get(name)
        if func is None:
            self.error(f"unsupported lib func {name} called!")
        self._save_environment()
        self.topsp = self.top
        self._pending_actuals = 0
        func(self)
        if not self.execution_finished:
            self._execute_funcexit(None)

    def call_functor(self, table: Table) -> None:
        """Call a table through its '()' element."""
        _load(self.cx, CellType.STRING, "()")
        func = table.get(self.cx)
        if func is None:
            self.error("in calling table: no '()' element found!")
        elif func.type is CellType.TABLE:
            self.call_functor(func.data)
        elif func.type is CellType.USERFUNC:
            self._push_table_arg(table)
            self._save_environment()
            self._enter_user_function(func.data)
        else:
            self.error("in calling table: illegal '()' element value!")

    # ----- instruction handlers ----------------------------------------

    def _execute_assign(self, instr: Instruction) -> None:
        target = self._lvalue(instr.result)
        source = self.translate_operand(instr.arg1, self.ax)
        self.assign(target, source)

    def _execute_nop(self, instr: Instruction) -> None:
        pass

    def _arith(self, opcode: Opcode, x: float, y: float) -> float:
        if opcode is Opcode.ADD:
            return x + y
        if opcode is Opcode.SUB:
            return x - y
        if opcode is Opcode.MUL:
            return x * y
        if opcode is Opcode.DIV:
            if y == 0.0:
                self.error("Cannot divide with 0!")
            return x / y
        divisor = int(y) % 2**32
        if divisor == 0:
            self.error("Cannot modulo with 0!")
        return float((int(x) % 2**32) % divisor)

    def _execute_arithmetic(self, instr: Instruction) -> None:
        target = self._lvalue(instr.result)
        rv1 = self.translate_operand(instr.arg1, self.ax)
        rv2 = self.translate_operand(instr.arg2, self.bx)
        if rv1.type is not CellType.NUMBER or rv2.type is not CellType.NUMBER:
            self.error("Not a number in arithmetic!")
        value = self._arith(instr.opcode, float(rv1.data), float(rv2.data))
        target.clear()
        _load(target, CellType.NUMBER, value)

    def _require_label(self, instr: Instruction) -> None:
        if instr.result.type is not ArgType.LABEL:
            self.error("jump target is not a label")

    def _equality(self, instr: Instruction, symbol: str, word: str) -> bool:
        self._require_label(instr)
        rv1 = self.translate_operand(instr.arg1, self.ax)
        rv2 = self.translate_operand(instr.arg2, self.bx)
        if rv1.type is CellType.UNDEF or rv2.type is CellType.UNDEF:
            self.error(f"'undef' involved in {word}!")
        if rv1.type is CellType.NIL or rv2.type is CellType.NIL:
            return rv1.type is CellType.NIL and rv2.type is CellType.NIL
        if rv1.type is CellType.BOOL or rv2.type is CellType.BOOL:
            return rv1.to_bool() == rv2.to_bool()
        if rv1.type is not rv2.type:
            self.error(
                f"{rv1.type.type_name} {symbol} {rv2.type.type_name} is illegal!"
            )
        return rv1.to_bool() == rv2.to_bool()

    def _execute_jeq(self, instr: Instruction) -> None:
        if self._equality(instr, "==", "equality"):
            self.pc = instr.result.val

    def _execute_jne(self, instr: Instruction) -> None:
        if not self._equality(instr, "!=", "unequality"):
            self.pc = instr.result.val

    def _execute_comparison(self, instr: Instruction) -> None:
        self._require_label(instr)
        rv1 = self.translate_operand(instr.arg1, self.ax)
        rv2 = self.translate_operand(instr.arg2, self.bx)
        if rv1.type is not CellType.NUMBER or rv2.type is not CellType.NUMBER:
            self.error("Not a number in comparison!")
        if _COMPARISONS[instr.opcode](float(rv1.data), float(rv2.data)):
            self.pc = instr.result.val

    def _execute_jump(self, instr: Instruction) -> None:
        self._require_label(instr)
        self.pc = instr.result.val

    def _execute_call(self, instr: Instruction) -> None:
        func = self.translate_operand(instr.result, self.ax)
        if func.type is CellType.USERFUNC:
            self._save_environment()
            self._enter_user_function(func.data)
        elif func.type in (CellType.STRING, CellType.LIBFUNC):
            self.call_library(func.data)
        elif func.type is CellType.TABLE:
            self.call_functor(func.data)
        else:
            self.error(f"call: cannot bind {func.to_string()} to function!")

    def _execute_funcenter(self, instr: Instruction) -> None:
        func = self.translate_operand(instr.result, self.ax)
        if func.data != self.pc:
            self.error("function entered at the wrong address")
        self._pending_actuals = 0
        info = self.funcinfo(self.pc)
        self.topsp = self.top
        if self.top + info.local_size >= AVM_STACK_SIZE:
            self.error("stack overflow")
        self.top += info.local_size

    def _execute_funcexit(self, instr: Optional[Instruction]) -> None:
        old_top = self.top
        self.top = self.get_envvalue(self.topsp - SAVEDTOP_OFFSET)
        self.pc = self.get_envvalue(self.topsp - SAVEDPC_OFFSET)
        self.topsp = self.get_envvalue(self.topsp - SAVEDTOPSP_OFFSET)
        for index in reversed(range(self.top, old_top)):
            self.stack[index].clear()

    def _execute_pusharg(self, instr: Instruction) -> None:
        arg = self.translate_operand(instr.result, self.ax)
        self.assign(self.stack[self.top], arg)
        self._pending_actuals += 1
        self._inc_top()

    def _execute_newtable(self, instr: Instruction) -> None:
        target = self._lvalue(instr.result)
        target.clear()
        _load(target, CellType.TABLE, Table())

    def _execute_tablegetelem(self, instr: Instruction) -> None:
        target = self._lvalue(instr.result)
        table = self._table_operand(instr.arg1)
        key = self.translate_operand(instr.arg2, self.ax)
        target.clear()
        target.type = CellType.NIL
        if table.type is not CellType.TABLE:
            self.error(f"illegal use of type {table.type.type_name} as table!")
        content = table.data.get(key)
        if content is not None:
            self.assign(target, content)
        else:
            self.warning(f"{table.to_string()}[{key.to_string()}] not found!")

    def _execute_tablesetelem(self, instr: Instruction) -> None:
        table = self._table_operand(instr.result)
        key = self.translate_operand(instr.arg1, self.ax)
        value = self.translate_operand(instr.arg2, self.bx)
        if table.type is not CellType.TABLE:
            self.error(f"illegal use of type {table.type.type_name} as table!")
        table.data.set(key, value)