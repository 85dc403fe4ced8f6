"""Integration tests: tmcore command line against a temporary store."""
import pytest

from tmcore import cli
from tmcore.database import SQLiteBackend
from tmcore.engine import TMEngine


@pytest.fixture
def cli_engine(tmp_path, monkeypatch):
    """Point the CLI at a fresh engine per invocation, all sharing one database file."""
    engines = []

    def make_engine():
        backend = SQLiteBackend(tmp_path / "cli.db", pool_size=2, max_overflow=2, pool_timeout=1.0)
        engine = TMEngine(backend=backend, archive_dir=tmp_path / "archive")
        engines.append(engine)
        return engine

    async def close():
        await engines[-1].close()

    monkeypatch.setattr(cli, "get_engine", make_engine)
    monkeypatch.setattr(cli, "close_engine", close)
    return engines


class TestCli:

    def test_import_then_export(self, cli_engine, tmp_path, capsys):
        source = tmp_path / "terms.csv"
        source.write_text("term,definition,do_not_translate\nAPI,Interface,true\nwidget,,false\n", encoding="utf-8")
        output = tmp_path / "out.csv"

        assert cli.main(["import-terms", "p1", str(source)]) == 0
        assert "'imported': 2" in capsys.readouterr().out

        assert cli.main(["export-terms", "p1", "--output", str(output)]) == 0
        exported = output.read_text(encoding="utf-8")
        assert exported.splitlines()[0] == "term,definition,do_not_translate"
        assert "API,Interface,true" in exported

    def test_import_with_row_errors(self, cli_engine, tmp_path, capsys):
        source = tmp_path / "terms.csv"
        source.write_text("term,do_not_translate\nAPI,maybe\n", encoding="utf-8")

        assert cli.main(["import-terms", "p1", str(source)]) == 1
        assert "[do_not_translate]" in capsys.readouterr().out

    def test_missing_column_fails(self, cli_engine, tmp_path):
        source = tmp_path / "terms.csv"
        source.write_text("name\nAPI\n", encoding="utf-8")
        assert cli.main(["import-terms", "p1", str(source)]) == 2

    def test_archive_commands(self, cli_engine, tmp_path, capsys):
        source = tmp_path / "terms.csv"
        source.write_text("term\nAPI\n", encoding="utf-8")
        cli.main(["import-terms", "p1", str(source)])

        assert cli.main(["archive-refresh", "p1"]) == 0
        assert (tmp_path / "archive" / "p1" / "terms.parquet").exists()

        assert cli.main(["archive-optimize", "p1"]) == 0
        assert "terms: removed 0 duplicate rows" in capsys.readouterr().out

        assert cli.main(["archive-list"]) == 0
        assert "p1/terms" in capsys.readouterr().out

    def test_archive_list_empty(self, cli_engine, capsys):
        assert cli.main(["archive-list", "--project", "nope"]) == 0
        assert "No archive files found." in capsys.readouterr().out
