import csv
import json
import pathlib
import sys

import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

import draw_source
from codec_bridge import wchar_width
from config import Config
from distribution import build_distribution
from draw_source import DrawSource
from errors import ArgumentError, SamplerError
from main import build_occurrences, generate, main


@pytest.fixture(autouse=True)
def fresh_draw_source(monkeypatch, tmp_path):
    monkeypatch.setattr(draw_source, "_instance", None)
    # keep any conf/config.yaml of the working tree out of the CLI runs
    monkeypatch.chdir(tmp_path)


def test_alphabet_end_to_end(tmp_path):
    out = tmp_path / "out.txt"
    row = generate("alphabet", "xy", 10, out, Config(), draw_source=DrawSource("mt19937", seed=1))
    text = out.read_text(encoding="utf-8")
    assert len(text) == 10
    assert set(text) <= {"x", "y"}
    assert row["n_chars"] == 10
    assert row["unique_chars"] == 2
    assert row["bytes_written"] == 10


def test_range_of_five_table():
    table = build_occurrences("range", 5, Config(), wchar_width())
    assert len(table) == 5
    assert all(c == 1 for _, c in table.items())
    assert build_distribution(table).keys.tolist() == [1, 2, 3, 4, 5]


def test_range_end_to_end(tmp_path):
    out = tmp_path / "out.txt"
    generate("range", 5, 200, out, Config(), draw_source=DrawSource("libc", seed=4))
    assert set(out.read_text(encoding="utf-8")) <= set("!\"#$%")


def test_input_file_end_to_end(tmp_path):
    src = tmp_path / "in.txt"
    src.write_text("ééééé€", encoding="utf-8")
    cfg = Config()
    cfg.generation.block_size = 4
    cfg.generation.output_encoding = "utf-16-le"
    out = tmp_path / "out.txt"
    row = generate("input", str(src), 50, out, cfg, draw_source=DrawSource("mt19937", seed=9))
    text = out.read_bytes().decode("utf-16-le")
    assert len(text) == 50
    assert set(text) <= {"é", "€"}
    assert row["input_encoding"] == "utf-8"
    assert row["output_encoding"] == "utf-16-le"


def test_empty_alphabet_rejected(tmp_path):
    with pytest.raises(ArgumentError):
        generate("alphabet", "", 10, tmp_path / "out.txt", Config(), draw_source=DrawSource("mt19937", seed=1))


def test_empty_input_has_no_distribution(tmp_path):
    src = tmp_path / "empty.txt"
    src.write_bytes(b"")
    with pytest.raises(SamplerError):
        generate("input", str(src), 10, tmp_path / "out.txt", Config(),
                 draw_source=DrawSource("mt19937", seed=1))


def test_cli_alphabet(tmp_path, capsys):
    out = tmp_path / "out.txt"
    assert main(["-a", "abc", "-n", "25", "--seed", "3", "-v", str(out)]) == 0
    text = out.read_text(encoding="utf-8")
    assert len(text) == 25
    assert set(text) <= set("abc")
    assert "[write]" in capsys.readouterr().out


def test_cli_rejects_bad_length(tmp_path):
    with pytest.raises(SystemExit) as exc:
        main(["-a", "ab", "-n", "0", str(tmp_path / "out.txt")])
    assert exc.value.code == 2


def test_cli_modes_are_exclusive(tmp_path):
    with pytest.raises(SystemExit) as exc:
        main(["-a", "ab", "-r", "3", "-n", "5", str(tmp_path / "out.txt")])
    assert exc.value.code == 2


def test_cli_reports_generation_errors(tmp_path, capsys):
    src = tmp_path / "bad.txt"
    src.write_bytes(b"ab\xff")
    assert main(["-i", str(src), "-n", "5", str(tmp_path / "out.txt")]) == 1
    assert "[error]" in capsys.readouterr().err


def test_cli_writes_manifest(tmp_path):
    conf = tmp_path / "rsgen.yaml"
    conf.write_text(
        "generation:\n  backend: libc\n  block_size: 16\n"
        f"paths:\n  manifest_dir: {tmp_path / 'results'}\n",
        encoding="utf-8")
    for name in ("a.txt", "b.txt"):
        assert main(["-r", "3", "-n", "40", "--config", str(conf), str(tmp_path / name)]) == 0

    with (tmp_path / "results" / "manifest.csv").open(newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    assert [pathlib.Path(r["path"]).name for r in rows] == ["a.txt", "b.txt"]
    assert rows[0]["backend"] == "libc"
    assert rows[0]["unique_chars"] == "3"

    meta = json.loads((tmp_path / "results" / "rsgen.meta.json").read_text(encoding="utf-8"))
    assert meta["last_run"]["path"].endswith("b.txt")


def test_cli_refuses_non_text_output_encoding(tmp_path, capsys):
    out = tmp_path / "out.txt"
    with pytest.raises(SystemExit) as exc:
        main(["-a", "ab", "-n", "5", "--output-encoding", "hex", str(out)])
    assert exc.value.code == 2
    assert "generation.output_encoding" in capsys.readouterr().err
    assert not out.exists()


def test_cli_malformed_config(tmp_path):
    conf = tmp_path / "broken.yaml"
    conf.write_text("generation: [unclosed\n", encoding="utf-8")
    with pytest.raises(SystemExit) as exc:
        main(["-a", "ab", "-n", "5", "--config", str(conf), str(tmp_path / "out.txt")])
    assert exc.value.code == 2


def test_cli_small_block_reads_multibyte_input(tmp_path):
    src = tmp_path / "in.txt"
    src.write_text("€€", encoding="utf-8")
    conf = tmp_path / "rsgen.yaml"
    conf.write_text("generation:\n  block_size: 2\n", encoding="utf-8")
    out = tmp_path / "out.txt"
    assert main(["-i", str(src), "-n", "7", "--config", str(conf), str(out)]) == 0
    assert out.read_text(encoding="utf-8") == "€" * 7
