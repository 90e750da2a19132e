from pathlib import Path

import pytest
from typer.testing import CliRunner

from linkpub import cli
from linkpub.extractor import ArticleExtractionError
from linkpub.models import Article

runner = CliRunner()


def test_convert_writes_single_article_epub(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, read_epub
) -> None:
    def fake_fetch(url: str, **_: object) -> Article:
        return Article(title="Original", content="<p>Body</p>", site_name="example.com", url=url)

    monkeypatch.setattr(cli, "fetch_article", fake_fetch)
    output = tmp_path / "single.epub"

    result = runner.invoke(
        cli.app, ["convert", "https://example.com/a", "--output", str(output), "--title", "Renamed"]
    )

    assert result.exit_code == 0, result.output
    files = read_epub(output.read_bytes())
    assert b"<dc:title>Renamed</dc:title>" in files["OEBPS/content.opf"]
    assert b"<dc:source>example.com</dc:source>" in files["OEBPS/content.opf"]


def test_convert_reports_extraction_failure(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def failing_fetch(url: str, **_: object) -> Article:
        raise ArticleExtractionError("blocked")

    monkeypatch.setattr(cli, "fetch_article", failing_fetch)

    result = runner.invoke(cli.app, ["convert", "https://example.com/a", "--output", str(tmp_path / "x.epub")])

    assert result.exit_code == 1
    assert not (tmp_path / "x.epub").exists()


def test_build_reports_invalid_url_file(tmp_path: Path) -> None:
    url_file = tmp_path / "urls.txt"
    url_file.write_text("# nothing\n", encoding="utf-8")

    result = runner.invoke(cli.app, ["build", "--url-file", str(url_file), "--output", str(tmp_path / "out.epub")])

    assert result.exit_code == 1
