"""Tests for the command-line interface."""

from pathlib import Path

import pytest

from mdflow.cli import batch_item, build_config, create_parser, main, output_path
from mdflow.models.tasks import PayloadKind

PAGE = """
<html>
<head><title>Local Page</title></head>
<body><article><h1>Local Page</h1><p>Converted from a <strong>local</strong> file.</p></article></body>
</html>
"""


class TestParser:
    """Tests for argument parsing and config building."""

    def test_defaults(self):
        """Test that no flags keep the configured defaults."""
        config = build_config(create_parser().parse_args(["https://example.com"]))

        assert config.preset is None
        assert config.options.enable_math is True
        assert config.queue.concurrency == 3
        assert config.storage.enabled is True

    def test_overrides(self):
        """Test that flags override configuration values."""
        args = create_parser().parse_args(
            [
                "page.html",
                "--preset",
                "blog",
                "-o",
                "notes",
                "-f",
                "text",
                "--no-math",
                "--no-metadata",
                "--concurrency",
                "5",
                "--no-history",
                "--no-frontmatter",
                "--proxy",
                "http://proxy:8080",
                "--max-retries",
                "1",
                "-v",
            ]
        )

        config = build_config(args)

        assert config.preset == "blog"
        assert config.output.directory == Path("notes")
        assert config.output.add_frontmatter is False
        assert config.options.format == "text"
        assert config.options.enable_math is False
        assert config.options.include_metadata is False
        assert config.queue.concurrency == 5
        assert config.storage.enabled is False
        assert config.network.proxy == "http://proxy:8080"
        assert config.network.max_retries == 1
        assert config.log_level == "DEBUG"

    def test_config_file_is_base(self, tmp_path):
        """Test that the YAML file provides values flags do not set."""
        path = tmp_path / "mdflow.yaml"
        path.write_text("preset: academic\nqueue:\n  concurrency: 2\n", encoding="utf-8")

        config = build_config(create_parser().parse_args(["x.html", "-c", str(path), "-q"]))

        assert config.preset == "academic"
        assert config.queue.concurrency == 2
        assert config.log_level == "ERROR"

    def test_history_flag(self):
        parser = create_parser()

        assert parser.parse_args(["--history"]).history == 10
        assert parser.parse_args(["--history", "3"]).history == 3
        assert parser.parse_args([]).history is None

    def test_unknown_preset_rejected(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["x.html", "--preset", "fancy"])


class TestHelpers:
    """Tests for CLI helpers."""

    @pytest.mark.parametrize(
        "source,kind",
        [
            ("https://example.com", PayloadKind.URL),
            ("http://example.com", PayloadKind.URL),
            ("docs/page.html", PayloadKind.FILE),
        ],
    )
    def test_batch_item(self, source, kind):
        assert batch_item(source).kind == kind

    def test_output_path_is_unique(self, tmp_path):
        """Test that repeated names get a numeric suffix."""
        (tmp_path / "page.md").write_text("existing", encoding="utf-8")
        used = set()

        first = output_path(tmp_path, "page.md", used)
        second = output_path(tmp_path, "page.md", used)

        assert first == tmp_path / "page_2.md"
        assert second == tmp_path / "page_3.md"


class TestMain:
    """Tests for the main entry point."""

    @pytest.fixture
    def page(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        path = tmp_path / "page.html"
        path.write_text(PAGE, encoding="utf-8")
        return path

    def test_writes_markdown_file(self, page, tmp_path):
        """Test converting a local file into the output directory."""
        exit_code = main([str(page), "-o", "out", "-q", "--no-history"])

        assert exit_code == 0
        output = tmp_path / "out" / "Local_Page.md"
        assert output.exists()
        content = output.read_text(encoding="utf-8")
        assert content.startswith("---\n")
        assert "Converted from a **local** file." in content

    def test_stdout(self, page, capsys):
        """Test printing the result instead of writing files."""
        exit_code = main([str(page), "--stdout", "--no-frontmatter", "-q", "--no-history"])

        captured = capsys.readouterr()
        assert exit_code == 0
        assert "# Local Page" in captured.out
        assert "Converted from a **local** file." in captured.out
        assert "---" not in captured.out

    def test_failed_source_returns_error(self, page, tmp_path):
        """Test that an unsupported file fails the run."""
        exit_code = main([str(tmp_path / "paper.pdf"), "-o", "out", "-q", "--no-history"])

        assert exit_code == 1
        assert not (tmp_path / "out").exists()

    def test_no_sources(self, page):
        assert main(["-q"]) == 1

    def test_invalid_config(self, page, tmp_path):
        """Test that an invalid config file is reported."""
        config = tmp_path / "bad.yaml"
        config.write_text("queue:\n  concurrency: 0\n", encoding="utf-8")

        assert main([str(page), "-c", str(config), "-q"]) == 1

    def test_history_disabled(self, page):
        assert main(["--history", "--no-history", "-q"]) == 1
