import os

import pytest

from manage import export_all, gen_cert, inspect_pdf

ROSTER_CSV = "USN,Name,Course,Score\n1RV21CS001,Asha Rao,Data Structures,92\n1RV21CS002,Ravi Kumar,Networks,70\n"


@pytest.fixture
def runner(app, tmp_path):
    for command in (gen_cert, export_all, inspect_pdf):
        app.cli.add_command(command)
    roster = tmp_path / "roster.csv"
    roster.write_text(ROSTER_CSV)
    return app.test_cli_runner(), str(roster)


def test_gen_cert_cli(runner, tmp_path):
    cli, roster = runner
    out = tmp_path / "out"
    result = cli.invoke(args=["gen_cert", "--csv", roster, "--usn", "1rv21cs002", "--out", str(out)])
    assert result.exit_code == 0, result.output
    assert result.output.strip() == os.path.join(str(out), "Certificate_1RV21CS002.pdf")

    result = cli.invoke(args=["inspect_pdf", result.output.strip()])
    assert result.exit_code == 0, result.output
    assert "page: 841.89 x 595.28 pt" in result.output
    assert "image: 1120 x 790 px" in result.output


def test_gen_cert_unknown_usn(runner, tmp_path):
    cli, roster = runner
    result = cli.invoke(args=["gen_cert", "--csv", roster, "--usn", "NOPE", "--out", str(tmp_path)])
    assert result.exit_code == 1


def test_export_all_cli(runner, tmp_path):
    cli, roster = runner
    out = tmp_path / "bulk"
    result = cli.invoke(args=["export_all", "--csv", roster, "--out", str(out)])
    assert result.exit_code == 0, result.output
    assert "2 exported, 0 failed" in result.output
    assert sorted(os.listdir(out)) == ["Certificate_1RV21CS001.pdf", "Certificate_1RV21CS002.pdf"]


def test_inspect_pdf_rejects_garbage(runner, tmp_path):
    cli, _ = runner
    bogus = tmp_path / "bogus.pdf"
    bogus.write_bytes(b"not a pdf")
    result = cli.invoke(args=["inspect_pdf", str(bogus)])
    assert result.exit_code != 0
