"""Tests for the code, table and math formatters."""

from unittest.mock import patch

import pytest

from mdflow.conversion import CodeFormatter, MathFormatter, TableFormatter
from mdflow.conversion.code import DEFAULT_LANGUAGE
from mdflow.conversion.tables import TABLE_PLACEHOLDER_TAG, cell_text
from mdflow.models.document import parse_html


class TestCodeFormatter:
    """Tests for CodeFormatter."""

    @pytest.fixture
    def formatter(self):
        return CodeFormatter()

    def test_detects_python(self, formatter):
        """Test detection of Python source."""
        assert formatter.detect_language("def hello():\n    print('hi')") == "python"

    def test_detects_javascript(self, formatter):
        """Test detection of JavaScript source."""
        code = "const total = await fetch(url);\nconsole.log(total);"
        assert formatter.detect_language(code) == "javascript"

    def test_detects_sql(self, formatter):
        """Test detection of SQL."""
        assert formatter.detect_language("SELECT name FROM users WHERE id = 1") == "sql"

    def test_unrecognized_code_is_text(self, formatter):
        """Test the fallback language."""
        assert formatter.detect_language("hello world") == DEFAULT_LANGUAGE == "text"

    @pytest.mark.parametrize(
        "classes,expected",
        [
            ("language-go", "go"),
            ("hljs lang-ruby", "ruby"),
            (["highlight", "py"], "python"),
            ("lang-c language-rust", "rust"),
            ("plain", ""),
            (None, ""),
        ],
    )
    def test_language_from_class(self, formatter, classes, expected):
        """Test class-name hints in priority order."""
        assert formatter.language_from_class(classes) == expected

    def test_process_code_blocks_normalizes_structure(self, formatter):
        """Test that every pre ends up as pre > code.language-x."""
        soup = parse_html(
            '<pre class="highlight" data-line="1">\n\ndef f():\n    return 1\n\n</pre>'
            '<pre><code class="language-go">package main</code></pre>'
        )

        processed = formatter.process_code_blocks(soup)

        blocks = processed.find_all("pre")
        assert blocks[0].attrs == {}
        assert blocks[0].code["class"] == ["language-python"]
        assert blocks[0].code.get_text() == "def f():\n    return 1"
        assert blocks[1].code["class"] == ["language-go"]

    def test_process_code_blocks_without_language(self, formatter):
        """Test that assign_language=False leaves code unclassed."""
        soup = parse_html("<pre><code class='language-go'>package main</code></pre>")

        processed = formatter.process_code_blocks(soup, assign_language=False)

        assert not processed.find("code").has_attr("class")

    def test_data_language_attribute(self, formatter):
        """Test the data-language hint."""
        soup = parse_html('<pre data-language="sh">ls -la</pre>')

        blocks = formatter.extract_code_blocks(soup)

        assert blocks[0].language == "bash"
        assert blocks[0].has_explicit_language_hint is True

    def test_code_statistics(self, formatter):
        """Test block and line counts."""
        soup = parse_html(
            "<pre><code class='language-python'>a = 1\nb = 2</code></pre>"
            "<pre><code class='language-python'>c = 3</code></pre>"
        )

        stats = formatter.code_statistics(soup)

        assert stats["total_blocks"] == 2
        assert stats["total_lines"] == 3
        assert stats["languages"] == {"python": 2}
        assert stats["average_lines"] == 1.5


class TestTableFormatter:
    """Tests for TableFormatter."""

    @pytest.fixture
    def formatter(self):
        return TableFormatter()

    def table(self, html):
        return parse_html(html).find("table")

    def test_simple_table(self, formatter):
        """Test a header row and one body row."""
        table = self.table("<table><tr><th>A</th><th>B</th></tr><tr><td>1</td><td>2</td></tr></table>")

        markdown = formatter.render(formatter.parse(table))

        assert markdown == "| A | B |\n|---|---|\n| 1 | 2 |"

    def test_colspan_widens_row(self, formatter):
        """Test that a colspan of 2 occupies two columns."""
        table = self.table(
            "<table><tr><th colspan='2'>Wide</th><th>C</th></tr><tr><td>1</td><td>2</td><td>3</td></tr></table>"
        )

        model = formatter.parse(table)
        lines = formatter.render(model).split("\n")

        assert model.columns == 3
        assert lines[1] == "|---|---|---|"
        assert lines[0].count("|") == 4
        assert lines[2] == "| 1 | 2 | 3 |"

    def test_short_rows_are_padded(self, formatter):
        """Test that ragged rows are padded to the widest row."""
        table = self.table("<table><tr><th>A</th><th>B</th></tr><tr><td>only</td></tr></table>")

        lines = formatter.render(formatter.parse(table)).split("\n")

        assert lines[2] == "| only |  |"

    def test_thead_row_becomes_header(self, formatter):
        """Test that thead rows are headers even with td cells."""
        table = self.table(
            "<table><tbody><tr><td>1</td></tr></tbody><thead><tr><td>Head</td></tr></thead></table>"
        )

        lines = formatter.render(formatter.parse(table)).split("\n")

        assert lines[0] == "| Head |"
        assert lines[2] == "| 1 |"

    def test_alignment_and_pipe_escaping(self, formatter):
        """Test alignment separators and escaped pipes."""
        table = self.table(
            '<table><tr><th style="text-align: center">Mid</th><th align="right">R</th></tr>'
            "<tr><td>a|b</td><td>2</td></tr></table>"
        )

        lines = formatter.render(formatter.parse(table)).split("\n")

        assert lines[1] == "|:---:|---:|"
        assert lines[2] == "| a\\|b | 2 |"

    def test_process_tables_replaces_with_placeholder(self, formatter):
        """Test that tables become pre-rendered placeholders."""
        soup = parse_html("<div><table><tr><th>A</th></tr><tr><td>1</td></tr></table></div>")

        processed = formatter.process_tables(soup)

        assert processed.find("table") is None
        assert processed.find(TABLE_PLACEHOLDER_TAG).get_text() == "| A |\n|---|\n| 1 |"

    def test_nested_table_becomes_cell_text(self, formatter):
        """Test that an inner table is flattened into its cell, not rendered as pipes."""
        soup = parse_html(
            "<div><table><tr><th>Outer</th></tr>"
            "<tr><td><table><tr><td>in</td><td>side</td></tr></table></td></tr></table></div>"
        )

        processed = formatter.process_tables(soup)

        placeholders = processed.find_all(TABLE_PLACEHOLDER_TAG)
        assert len(placeholders) == 1
        assert placeholders[0].get_text() == "| Outer |\n|---|\n| in side |"

    def test_malformed_cell_rendered_empty(self, formatter):
        """Test that a cell that fails to parse keeps its column but loses its text."""
        table = self.table("<table><tr><th>A</th><th>B</th></tr><tr><td>bad</td><td>2</td></tr></table>")

        def failing_cell_text(cell):
            if cell.get_text() == "bad":
                raise ValueError("unreadable cell")
            return cell_text(cell)

        with patch("mdflow.conversion.tables.cell_text", side_effect=failing_cell_text):
            markdown = formatter.render(formatter.parse(table))

        assert markdown == "| A | B |\n|---|---|\n|  | 2 |"

    def test_malformed_row_skipped(self, formatter):
        """Test that a row that fails to parse is left out."""
        table = self.table(
            "<table><tr><th>A</th></tr><tr class='bad'><td>x</td></tr><tr><td>1</td></tr></table>"
        )
        parse_row = formatter._parse_row

        def failing_parse_row(tr):
            if tr.get("class") == ["bad"]:
                raise ValueError("unreadable row")
            return parse_row(tr)

        with patch.object(formatter, "_parse_row", side_effect=failing_parse_row):
            markdown = formatter.render(formatter.parse(table))

        assert markdown == "| A |\n|---|\n| 1 |"

    def test_empty_table_removed(self, formatter):
        """Test that a table without cells disappears."""
        processed = formatter.process_tables(parse_html("<div><table></table><p>x</p></div>"))

        assert processed.find("table") is None
        assert processed.find(TABLE_PLACEHOLDER_TAG) is None

    def test_optimize_drops_empty_columns(self, formatter):
        """Test that columns empty in every row are removed."""
        table = self.table(
            "<table><tr><th>A</th><th></th></tr><tr><td>1</td><td></td></tr><tr><td></td><td></td></tr></table>"
        )

        optimized = formatter.optimize(formatter.parse(table))

        assert optimized.columns == 1
        assert len(optimized.rows) == 2

    def test_validate_reports_inconsistent_rows(self, formatter):
        """Test validation of ragged tables."""
        table = self.table("<table><tr><td>1</td><td>2</td></tr><tr><td>3</td></tr></table>")

        validation = formatter.validate(formatter.parse(table))

        assert validation.valid is False
        assert "inconsistent" in validation.errors[0]

    def test_rows_to_markdown(self, formatter):
        """Test rendering a plain grid."""
        markdown = formatter.rows_to_markdown([["1", "2"]], headers=["x", "y"])

        assert markdown == "| x | y |\n|---|---|\n| 1 | 2 |"

    def test_extract_table_data(self, formatter):
        """Test grid extraction with spans expanded."""
        table = self.table("<table><tr><td colspan='2'>a</td></tr><tr><td>b</td><td>c</td></tr></table>")

        assert formatter.extract_table_data(table) == [["a", ""], ["b", "c"]]


class TestMathFormatter:
    """Tests for MathFormatter."""

    @pytest.fixture
    def formatter(self):
        return MathFormatter()

    def test_inline_formula_round_trip(self, formatter):
        """Test that $...$ is replaced by a token and restored verbatim."""
        soup = parse_html("<p>Energy $E=mc^2$ here</p>")

        tree, placeholders = formatter.extract_with_replacement(soup)

        assert "$" not in tree.get_text()
        assert [p.formula for p in placeholders] == ["E=mc^2"]
        assert formatter.restore(tree.get_text(), placeholders) == "Energy $E=mc^2$ here"

    def test_display_formula_kept_separate(self, formatter):
        """Test that $$...$$ is recognized before $...$."""
        formulas = formatter.extract_formulas("<p>$$x + y$$ and $z$</p>")

        assert formulas == ["x + y", "z"]

    def test_long_command_formula_restored_as_block(self, formatter):
        """Test that long formulas with commands restore as display math."""
        formula = r"\int_0^1 \frac{x^2 + 2x + 1}{\sqrt{x + 1}} \, dx = \alpha + \beta"
        soup = parse_html(f"<p>${formula}$</p>")

        tree, placeholders = formatter.extract_with_replacement(soup)

        assert placeholders[0].is_block is True
        assert formatter.restore(tree.get_text(), placeholders) == f"\n$$\n{formula}\n$$\n"

    def test_skips_code(self, formatter):
        """Test that dollars inside code are left alone."""
        assert formatter.extract_formulas("<pre><code>echo $HOME $PATH</code></pre>") == []

    def test_math_class_elements(self, formatter):
        """Test elements whose class starts with math."""
        formulas = formatter.extract_formulas(
            '<p><span class="math-inline">a^2</span> <img class="math" alt="b_1" src="f.png"></p>'
        )

        assert formulas == ["a^2", "b_1"]

    def test_mathml_fraction(self, formatter):
        """Test MathML to LaTeX conversion."""
        soup = parse_html("<math><mfrac><mi>a</mi><mi>b</mi></mfrac></math>")

        assert formatter.mathml_to_latex(soup.find("math")) == r"\frac{a}{b}"

    def test_mathml_tex_annotation_wins(self, formatter):
        """Test that a TeX annotation is used verbatim."""
        soup = parse_html(
            "<math><semantics><mi>x</mi>"
            '<annotation encoding="application/x-tex">x^{2}</annotation></semantics></math>'
        )

        assert formatter.mathml_to_latex(soup.find("math")) == "x^{2}"

    def test_mathml_symbols(self, formatter):
        """Test mapping of Greek letters and operators."""
        soup = parse_html("<math><mi>α</mi><mo>×</mo><mi>β</mi></math>")

        assert formatter.mathml_to_latex(soup.find("math")) == r"\alpha \times \beta"

    def test_contains_math(self, formatter):
        """Test quick detection."""
        assert formatter.contains_math("<p>$x$</p>") is True
        assert formatter.contains_math("<p>$5 only</p>") is False

    def test_normalize_latex(self, formatter):
        """Test whitespace and delimiter normalization."""
        assert formatter.normalize_latex(r"\(a+b\)") == "$a + b$"
