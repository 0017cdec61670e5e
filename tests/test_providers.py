"""Python outline and syntax checker providers."""

from workspace_mcp.host import Severity, SymbolKind
from workspace_mcp.providers.python_symbols import python_document_symbols
from workspace_mcp.providers.syntax import CHECKERS, check_json, check_python, check_toml

SOURCE = '''\
from enum import Enum

MAX_SIZE = 10
counter = 0


class Color(Enum):
    RED = 1
    GREEN = 2


class Widget(Base):
    kind = "w"

    def __init__(self, size):
        self.size = size

    @property
    def area(self):
        return self.size ** 2

    async def render(self):
        local = 1


def helper(a, b=2):
    pass
'''


def _by_name(symbols):
    return {s.name: s for s in symbols}


def test_outline_top_level_kinds():
    top = _by_name(python_document_symbols(SOURCE))
    assert top["MAX_SIZE"].kind == SymbolKind.Constant
    assert top["counter"].kind == SymbolKind.Variable
    assert top["Color"].kind == SymbolKind.Enum
    assert top["Widget"].kind == SymbolKind.Class
    assert top["helper"].kind == SymbolKind.Function
    assert top["helper"].detail == "(a, b=2)"


def test_outline_children_and_ranges():
    top = _by_name(python_document_symbols(SOURCE))

    members = _by_name(top["Color"].children)
    assert {m.kind for m in members.values()} == {SymbolKind.EnumMember}

    widget = top["Widget"]
    assert widget.detail == "Base"
    assert widget.range.start.line == 11
    assert widget.selection_range.start.character == len("class ")
    children = _by_name(widget.children)
    assert children["kind"].kind == SymbolKind.Field
    assert children["__init__"].kind == SymbolKind.Constructor
    assert children["area"].kind == SymbolKind.Property
    assert children["render"].kind == SymbolKind.Method
    # Locals are not part of the outline
    assert children["render"].children == []


def test_outline_of_unparseable_source_is_empty():
    assert python_document_symbols("def broken(:\n") == []


def test_check_python_syntax_error_position():
    [record] = check_python("bad.py", "x = 1\ny = (\n")
    assert record.severity == Severity.ERROR
    assert record.source == "python"
    assert record.file_path == "bad.py"
    assert record.range.start.line == 1


def test_check_python_warning():
    records = check_python("warn.py", "assert (1, 'message')\n")
    assert [r.severity for r in records] == [Severity.WARNING]
    assert records[0].code == "SyntaxWarning"


def test_clean_sources_have_no_diagnostics():
    assert check_python("ok.py", "print('ok')\n") == []
    assert check_json("ok.json", '{"a": [1, 2]}') == []
    assert check_toml("ok.toml", 'a = "b"\n') == []


def test_check_json_position():
    [record] = check_json("bad.json", '{\n  "a": ,\n}')
    assert record.range.start.line == 1
    assert record.source == "json"


def test_check_toml_position():
    [record] = check_toml("bad.toml", 'a = 1\nb = \n')
    assert record.range.start.line == 1
    assert "at line" not in record.message


def test_checkers_by_suffix():
    assert set(CHECKERS) == {".py", ".json", ".toml"}
