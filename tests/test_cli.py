import io
import json
from pathlib import Path
import sys

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import cli  # noqa: E402

SQUARE = "AC D\nAN SQUARE\nAH FL100\nAL GND\nDP 0N 0E\nDP 0N 1E\nDP 1N 1E\n"
BOWTIE = "AC D\nAN BOWTIE\nAH FL100\nAL GND\nDP 0N 0E\nDP 1N 1E\nDP 0N 1E\nDP 1N 0E\n"


@pytest.fixture
def openair_file(tmp_path):
    def write(text, name="airspace.txt", encoding="utf-8"):
        path = tmp_path / name
        path.write_text(text, encoding=encoding)
        return path

    return write


def test_convert_to_stdout(openair_file, capsys):
    path = openair_file(SQUARE)
    assert cli.main([str(path)]) == 0
    out, err = capsys.readouterr()
    data = json.loads(out)
    assert data["type"] == "FeatureCollection"
    assert data["features"][0]["properties"]["name"] == "SQUARE"
    assert "1 airspace(s) converted, 0 failed" in err


def test_convert_to_file(openair_file, tmp_path, capsys):
    path = openair_file(SQUARE)
    output = tmp_path / "out.geojson"
    assert cli.main([str(path), "-o", str(output), "--json-indent", "2", "-q"]) == 0
    out, err = capsys.readouterr()
    assert out == ""
    assert err == ""
    data = json.loads(output.read_text(encoding="utf-8"))
    assert len(data["features"]) == 1


def test_windows_line_endings_and_bom(openair_file, capsys):
    path = openair_file("\ufeff" + SQUARE.replace("\n", "\r\n"))
    assert cli.main([str(path)]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["features"][0]["properties"]["class"] == "D"


def test_invalid_geometry_exit_code(openair_file, capsys):
    path = openair_file(SQUARE + "\n" + BOWTIE)
    assert cli.main([str(path)]) == 1
    out, err = capsys.readouterr()
    assert len(json.loads(out)["features"]) == 1
    assert "Error in airspace #1" in err
    assert "self intersection" in err


def test_fix_option(openair_file, capsys):
    path = openair_file(BOWTIE)
    assert cli.main([str(path), "--fix"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["features"][0]["geometry"]["type"] == "Polygon"


def test_no_validate_option(openair_file, capsys):
    path = openair_file(BOWTIE)
    assert cli.main([str(path), "--no-validate"]) == 0


def test_include_openair_option(openair_file, capsys):
    path = openair_file(SQUARE)
    assert cli.main([str(path), "--include-openair"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["features"][0]["properties"]["openair"].startswith("AC D\nAN SQUARE")


def test_grammar_error_exit_code(openair_file, capsys):
    path = openair_file("AC D\nDP 0N 0E\n")
    assert cli.main([str(path)]) == 1
    _, err = capsys.readouterr()
    assert err.startswith("Parse error: ")


def test_classes_option(openair_file, capsys):
    path = openair_file(SQUARE.replace("AC D", "AC XY"))
    assert cli.main([str(path), "--classes", "xy,z"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["features"][0]["properties"]["class"] == "XY"


def test_invalid_workers(openair_file, capsys):
    path = openair_file(SQUARE)
    assert cli.main([str(path), "--workers", "0"]) == 2
    assert "max_workers" in capsys.readouterr().err


def test_missing_file(tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        cli.main([str(tmp_path / "missing.txt")])
    assert excinfo.value.code == 2


def test_read_from_stdin(monkeypatch, capsys):
    monkeypatch.setattr(sys, "stdin", io.StringIO(SQUARE))
    assert cli.main(["-"]) == 0
    assert json.loads(capsys.readouterr().out)["features"]


def test_empty_stdin(monkeypatch):
    monkeypatch.setattr(sys, "stdin", io.StringIO(""))
    with pytest.raises(SystemExit) as excinfo:
        cli.main([])
    assert excinfo.value.code == 2


def test_normalize_openair_text():
    assert cli._normalize_openair_text("\ufeffAC D\r\nAN X\rAH FL10") == "AC D\nAN X\nAH FL10"
