import io
import re

import pytest

from alphavm.errors import AVMError
from alphavm.instructions import ArgType, Instruction, Opcode, UserFunc, VMArg
from alphavm.library import default_library
from alphavm.loader import LIBRARY_NAMES, Program
from alphavm.machine import VirtualMachine
from alphavm.memcell import CellType, MemCell

NONE = VMArg(ArgType.LABEL, 0)
GLOBAL0 = VMArg(ArgType.GLOBAL, 0)
GLOBAL1 = VMArg(ArgType.GLOBAL, 1)
RETVAL = VMArg(ArgType.RETVAL, 0)


def _instr(opcode, result=NONE, arg1=NONE, arg2=NONE):
    return Instruction(opcode, result, arg1, arg2)


def _lib(name):
    return VMArg(ArgType.LIBFUNC, LIBRARY_NAMES.index(name))


def _operand(value, nums, strs):
    if value is None:
        return VMArg(ArgType.NIL, 0)
    if isinstance(value, bool):
        return VMArg(ArgType.BOOL, int(value))
    if isinstance(value, (int, float)):
        nums.append(float(value))
        return VMArg(ArgType.NUMBER, len(nums) - 1)
    strs.append(value)
    return VMArg(ArgType.STRING, len(strs) - 1)


def _execute(program):
    out = io.StringIO()
    vm = VirtualMachine(program, default_library(), out, io.StringIO())
    vm.trace = False
    vm.run()
    return vm, out.getvalue()


def _run_call(name, *args, keep_result=True):
    nums, strs, code = [], [], []
    for value in reversed(args):
        code.append(_instr(Opcode.PUSHARG, _operand(value, nums, strs)))
    code.append(_instr(Opcode.CALL, _lib(name)))
    if keep_result:
        code.append(_instr(Opcode.ASSIGN, GLOBAL0, RETVAL))
    program = Program(str_consts=strs, num_consts=nums, globals_count=1, code=code)
    vm, output = _execute(program)
    return vm.stack[0], output


def _run_table_call(name, entries):
    nums, strs = [], []
    code = [_instr(Opcode.NEWTABLE, GLOBAL1)]
    for key, value in entries:
        code.append(
            _instr(
                Opcode.TABLESETELEM,
                GLOBAL1,
                _operand(key, nums, strs),
                _operand(value, nums, strs),
            )
        )
    code.append(_instr(Opcode.PUSHARG, GLOBAL1))
    code.append(_instr(Opcode.CALL, _lib(name)))
    code.append(_instr(Opcode.ASSIGN, GLOBAL0, RETVAL))
    program = Program(str_consts=strs, num_consts=nums, globals_count=2, code=code)
    vm, _ = _execute(program)
    return vm


def _function_program(body, num_consts):
    """Call a user function with num_consts[0], num_consts[1]; its body ends in a call."""
    end = 4 + 1 + len(body) + 2
    func = VMArg(ArgType.USERFUNC, 4)
    code = [
        _instr(Opcode.PUSHARG, VMArg(ArgType.NUMBER, 0)),
        _instr(Opcode.PUSHARG, VMArg(ArgType.NUMBER, 1)),
        _instr(Opcode.CALL, func),
        _instr(Opcode.JUMP, VMArg(ArgType.LABEL, end)),
        _instr(Opcode.FUNCENTER, func),
        *body,
        _instr(Opcode.ASSIGN, GLOBAL0, RETVAL),
        _instr(Opcode.FUNCEXIT, func),
    ]
    return Program(
        num_consts=num_consts,
        user_funcs=[UserFunc("f", 4, 0)],
        globals_count=1,
        code=code,
    )


def test_default_library_covers_every_library_name():
    assert list(default_library()) == list(LIBRARY_NAMES)


def test_print_writes_arguments_in_order():
    _, output = _run_call("print", "a", "b", keep_result=False)
    assert output.startswith("ab")


def test_print_formats_values():
    _, output = _run_call("print", 3, True, None, keep_result=False)
    assert output.startswith("3truenil")


@pytest.mark.parametrize(
    "text, kind, data",
    [
        ("42\n", CellType.NUMBER, 42.0),
        ("true\n", CellType.BOOL, True),
        ("false\n", CellType.BOOL, False),
        ("hello\n", CellType.STRING, "hello"),
        ("-3\n", CellType.STRING, "-3"),
        ("3.5\n", CellType.STRING, "3.5"),
    ],
)
def test_input_classifies_words(monkeypatch, text, kind, data):
    monkeypatch.setattr("sys.stdin", io.StringIO(text))
    result, _ = _run_call("input")
    assert result.type is kind
    assert result.data == data


def test_input_nil(monkeypatch):
    monkeypatch.setattr("sys.stdin", io.StringIO("  nil  "))
    result, _ = _run_call("input")
    assert result.type is CellType.NIL


def test_input_empty_raises(monkeypatch):
    monkeypatch.setattr("sys.stdin", io.StringIO(""))
    with pytest.raises(AVMError):
        _run_call("input")


def test_typeof_names_types():
    assert _run_call("typeof", "x")[0] == MemCell.string("string")
    assert _run_call("typeof", 1)[0] == MemCell.string("number")
    assert _run_call("typeof", None)[0] == MemCell.string("nil")


def test_typeof_requires_one_argument():
    with pytest.raises(AVMError, match=re.escape("one argument (not 2) expected in 'typeof'!")):
        _run_call("typeof", 1, 2)


@pytest.mark.parametrize("text, expected", [("12.5", 12.5), ("3abc", 3.0), ("  7", 7.0)])
def test_strtonum_parses_leading_number(text, expected):
    result, _ = _run_call("strtonum", text)
    assert result == MemCell.number(expected)


def test_strtonum_without_number_gives_nil():
    result, _ = _run_call("strtonum", "abc")
    assert result.type is CellType.NIL


def test_strtonum_rejects_non_string():
    with pytest.raises(AVMError, match="type cannot be number"):
        _run_call("strtonum", 5)


def test_sqrt_of_square():
    assert _run_call("sqrt", 16)[0] == MemCell.number(4.0)


def test_sqrt_of_negative_is_nil():
    assert _run_call("sqrt", -1)[0].type is CellType.NIL


def test_cos_and_sin_of_zero():
    assert _run_call("cos", 0)[0] == MemCell.number(1.0)
    assert _run_call("sin", 0)[0] == MemCell.number(0.0)


def test_trig_rejects_strings():
    with pytest.raises(AVMError, match=re.escape("type cannot be string in 'cos'!")):
        _run_call("cos", "x")


def test_objecttotalmembers_counts_entries():
    vm = _run_table_call("objecttotalmembers", [("a", 1), ("b", 2)])
    assert vm.stack[0] == MemCell.number(2)


def test_objecttotalmembers_rejects_non_table():
    with pytest.raises(
        AVMError, match=re.escape("type cannot be number in 'objecttotalmembers'!")
    ):
        _run_call("objecttotalmembers", 1)


def test_objecttotalmembers_argument_count():
    with pytest.raises(
        AVMError, match=re.escape("one argument (not 0) expected in 'objecttotalmembers'!")
    ):
        _run_call("objecttotalmembers")


def test_objectmemberkeys_lists_keys():
    vm = _run_table_call("objectmemberkeys", [("a", 1)])
    keys = vm.stack[0].data
    assert keys.total_members() == 1
    assert keys.get(MemCell.number(0)) == MemCell.string("a")


def test_objectcopy_is_new_table_with_same_contents():
    vm = _run_table_call("objectcopy", [("a", 1), ("b", "x")])
    original, duplicate = vm.stack[1].data, vm.stack[0].data
    assert duplicate is not original
    assert duplicate.total_members() == original.total_members()
    for key in (MemCell.string("a"), MemCell.string("b")):
        assert duplicate.get(key) == original.get(key)


def test_totalarguments_outside_function_fails():
    with pytest.raises(
        AVMError, match=re.escape("'totalarguments' called outside of a function!")
    ):
        _run_call("totalarguments")


def test_totalarguments_inside_function():
    program = _function_program([_instr(Opcode.CALL, _lib("totalarguments"))], [7.0, 8.0])
    vm, _ = _execute(program)
    assert vm.stack[0] == MemCell.number(2)


@pytest.mark.parametrize("const_index, expected", [(2, 8.0), (3, 7.0)])
def test_argument_inside_function(const_index, expected):
    body = [
        _instr(Opcode.PUSHARG, VMArg(ArgType.NUMBER, const_index)),
        _instr(Opcode.CALL, _lib("argument")),
    ]
    vm, _ = _execute(_function_program(body, [7.0, 8.0, 0.0, 1.0]))
    assert vm.stack[0] == MemCell.number(expected)


def test_argument_outside_function_fails():
    with pytest.raises(AVMError, match=re.escape("'argument' called outside of a function!")):
        _run_call("argument", 0)