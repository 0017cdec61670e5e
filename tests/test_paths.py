import os

import pytest

from workspace_mcp.host import TextDocument
from workspace_mcp.paths import PathSecurityError, relative_display, validate_path


def test_relative_paths_resolve_against_root(workspace):
    root = workspace.resolve()
    assert validate_path("src/a.py", root) == root / "src" / "a.py"
    assert validate_path(".", root) == root


@pytest.mark.parametrize("raw", ["../outside.txt", "src/../../outside.txt", "/etc/passwd"])
def test_escapes_are_rejected(workspace, raw):
    with pytest.raises(PathSecurityError):
        validate_path(raw, workspace.resolve())


def test_symlink_escape_rejected(workspace, tmp_path):
    target = tmp_path / "secret.txt"
    target.write_text("secret")
    link = workspace / "link.txt"
    try:
        os.symlink(target, link)
    except OSError:
        pytest.skip("Symlinks not supported")
    with pytest.raises(PathSecurityError):
        validate_path("link.txt", workspace.resolve())


def test_null_byte_rejected(workspace):
    with pytest.raises(PathSecurityError, match="null bytes"):
        validate_path("a\x00b", workspace.resolve())


def test_relative_display(workspace):
    root = workspace.resolve()
    assert relative_display(root / "a" / "b.txt", root) == "a/b.txt"
    assert relative_display(root, root) == "."


class TestTextDocument:
    def test_line_model(self, tmp_path):
        doc = TextDocument(path=tmp_path / "x", text="a\r\nb\nc\n")
        assert doc.line_count == 4
        assert doc.lines() == ["a", "b", "c", ""]
        assert doc.text_in_lines(0, 1) == "a\r\nb"

    def test_dominant_eol(self, tmp_path):
        assert TextDocument(path=tmp_path / "x", text="a\r\nb\r\nc\n").eol == "\r\n"
        assert TextDocument(path=tmp_path / "x", text="single").eol == "\n"

    def test_empty_document_has_one_line(self, tmp_path):
        doc = TextDocument(path=tmp_path / "x", text="")
        assert doc.line_count == 1
        assert doc.text_in_lines(0, 0) == ""
