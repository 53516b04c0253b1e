from pathlib import Path

from tracksynth import main


def write_score(tmp_path: Path, text: str) -> str:
    target = tmp_path / "partitur.txt"
    target.write_text(text, encoding="utf-8")
    return str(target)


def test_main_renders_score(tmp_path: Path, capsys) -> None:
    path = write_score(tmp_path, "track a {\n[0, 440, 100]\n}\ntrack b {\n[0, 220, 200]\n}\n")

    assert main([path]) == 0

    out = capsys.readouterr().out
    assert "2 Spuren gefunden (2 Noten)." in out
    assert "8820 Samples (0.20 s) bei 44100 Hz erzeugt." in out


def test_main_without_arguments(capsys) -> None:
    assert main([]) == 1
    assert "usage:" in capsys.readouterr().err


def test_main_with_too_many_arguments(tmp_path: Path) -> None:
    path = write_score(tmp_path, "track a {\n[0, 440, 100]\n}\n")

    assert main([path, path]) == 1


def test_main_missing_file(tmp_path: Path, capsys) -> None:
    assert main([str(tmp_path / "fehlt.txt")]) == 1
    assert "FEHLER" in capsys.readouterr().err


def test_main_empty_score(tmp_path: Path, capsys) -> None:
    path = write_score(tmp_path, "# nur ein Kommentar\n")

    assert main([path]) == 1
    assert "Keine gültigen Spuren gefunden!" in capsys.readouterr().err


def test_main_reports_parse_diagnostics(tmp_path: Path, capsys) -> None:
    path = write_score(tmp_path, "track a {\n[1,2]\n[0, 440, 10]\n}\n")

    assert main([path]) == 0
    assert "Note konnte nicht gelesen werden: [1,2]" in capsys.readouterr().err


def test_main_tolerates_non_utf8_bytes(tmp_path: Path, capsys) -> None:
    target = tmp_path / "latin1.txt"
    target.write_bytes(b"# Kommentar \xff\xfe\ntrack a {\n[0, 440, 100]\n}\n")

    assert main([str(target)]) == 0
    assert "1 Spuren gefunden (1 Noten)." in capsys.readouterr().out


def test_main_empty_score_does_not_start_synthesis(tmp_path: Path, capsys) -> None:
    path = write_score(tmp_path, "track leer {\n}\n")

    assert main([path]) == 1

    captured = capsys.readouterr()
    assert "Synthetisiere" not in captured.out
    assert "Keine gültigen Spuren gefunden!" in captured.err
