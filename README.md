# alphavm

A stack-based virtual machine for programs compiled from the alpha language.
It reads a text bytecode file, loads its constant pools, user function table and
instructions, and executes them until the program counter reaches the end of
the code.

## Installation

```
pip install .
```

For the tests:

```
pip install .[test]
pytest
```

## Running a program

```
alphavm -i program.abc
```

Before the program runs, the command prints a short summary of the loaded file:
how many string and number constants it has, the user functions with their
addresses and local sizes, the library function count, the number of globals and
the number of instructions. While running, the machine traces every cycle on
standard output (`will execute opcode: <n> pc: <pc>` followed by
`cycle complete`). Runtime warnings go to standard output, runtime errors to
standard error; a runtime error stops execution. `ended execution` is printed
when the machine stops.

The exit status is 0 when the program ran to its end, and 1 when `-i` was not
given, the file could not be read or parsed, or a runtime error occurred.

## The bytecode file

The file is made of whitespace-separated tokens, in this order:

1. `69420 magic_number`
2. `<n> constant_strings`, then `n` strings, each in double quotes (or a bare word)
3. `<n> constant_numbers`, then `n` numbers
4. `<n> user_functions`, then `n` entries of `id address localsize`
5. `12 library_functions`, then the twelve library function names in order:
   `print input objectmemberkeys objecttotalmembers objectcopy totalarguments
   argument typeof strtonum sqrt cos sin`
6. `<n> num_of_globals`
7. `<n> instructions`, then `n` entries of
   `opcode result_type result_val arg1_type arg1_val arg2_type arg2_val`

Opcode names are `assign add sub mul div mod if_eq if_not_eq if_less_eq
if_greater_eq if_less if_greater jump call param funcstart funcend newtable
tablegetelem tablesetelem nop`. Argument types are `label_a global_a formal_a
local_a number_a string_a bool_a nil_a userfunc_a libfunc_a retval_a`.

Anything that does not follow this layout, including an unknown opcode or
argument type, is rejected with `alphavm.errors.BinaryFormatError`.

## Using it from Python

```python
from alphavm.loader import load_program
from alphavm.machine import VirtualMachine
from alphavm.library import default_library

program = load_program("program.abc")
print(program.describe())

vm = VirtualMachine(program, default_library(), None, None)
vm.trace = False          # silence the per-cycle trace
vm.run()
```

- `alphavm.loader.parse_program(text)` parses bytecode already in memory;
  `load_program(path)` reads a file and does the same. Both return a `Program`
  holding `str_consts`, `num_consts`, `user_funcs`, `library_funcs`,
  `globals_count` and `code`.
- `VirtualMachine(program, library, out, err)` takes a mapping of library
  function names to callables receiving the machine; `None` for `out` or `err`
  means standard output or standard error. `run()` executes to the end,
  `execute_cycle()` executes one instruction.
- A runtime error is written to `err` and raised as `alphavm.errors.AVMError`.
- Values live in `alphavm.memcell.MemCell` objects (with constructors such as
  `MemCell.number`, `MemCell.string`, `MemCell.table`), and tables are
  `alphavm.memcell.Table` instances. Tables are shared by reference when
  assigned; a table holding a user function under the key `"()"` can be called.
- `alphavm.library.default_library()` returns the twelve standard library
  functions. `input` reads one word from standard input and returns a number,
  boolean, nil or string according to its content.

## What it does not do

The package only runs bytecode files. It has no compiler: alpha source code
must be turned into a bytecode file by some other tool before `alphavm` can run
it. The bytecode format carries no source line numbers, so runtime errors
cannot point back to a line of alpha source.