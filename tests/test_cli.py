from alphavm.cli import main
from alphavm.loader import LIBRARY_NAMES


def _binary(strings, numbers, globals_count, instructions):
    lines = ["69420 magic_number", f"{len(strings)} constant_strings"]
    lines.extend(f'"{s}"' for s in strings)
    lines.append(f"{len(numbers)} constant_numbers")
    lines.extend(str(n) for n in numbers)
    lines.append("0 user_functions")
    lines.append(f"{len(LIBRARY_NAMES)} library_functions")
    lines.append(" ".join(LIBRARY_NAMES))
    lines.append(f"{globals_count} num_of_globals")
    lines.append(f"{len(instructions)} instructions")
    lines.extend(instructions)
    return "\n".join(lines) + "\n"


def _write(tmp_path, text):
    path = tmp_path / "program.abc"
    path.write_text(text)
    return str(path)


def test_runs_hello_program(tmp_path, capsys):
    path = _write(
        tmp_path,
        _binary(
            ["hello"],
            [],
            0,
            [
                "param string_a 0 label_a 0 label_a 0",
                "call libfunc_a 0 label_a 0 label_a 0",
            ],
        ),
    )
    assert main(["-i", path]) == 0
    out = capsys.readouterr().out
    assert "hello" in out
    assert "===== INFO =====" in out
    assert "instructions count: 2" in out
    assert out.rstrip().endswith("ended execution")


def test_missing_input_option(capsys):
    assert main([]) == 1
    assert "input file not set" in capsys.readouterr().err


def test_missing_file(tmp_path, capsys):
    assert main(["-i", str(tmp_path / "absent.abc")]) == 1
    assert "error opening the file" in capsys.readouterr().err


def test_not_an_alpha_binary(tmp_path, capsys):
    path = _write(tmp_path, "12 magic_number\n")
    assert main(["-i", path]) == 1
    assert "file is not an alpha binary" in capsys.readouterr().err


def test_runtime_error_is_reported(tmp_path, capsys):
    path = _write(
        tmp_path,
        _binary([], [1, 0], 1, ["div global_a 0 number_a 0 number_a 1"]),
    )
    assert main(["-i", path]) == 1
    captured = capsys.readouterr()
    assert "Cannot divide with 0!" in captured.err
    assert "ended execution" in captured.out