"""Python symbol outlines built from the ast module."""

from __future__ import annotations

import ast
import re

from workspace_mcp.host import DocumentSymbol, Range, SymbolKind

_DEF_NAME = re.compile(r"\b(?:def|class)\s+(\w+)")


class PythonOutline:
    """Walks a module's definitions into a DocumentSymbol tree."""

    def __init__(self, source: str):
        self.source = source
        self.lines = source.splitlines()

    def build(self) -> list[DocumentSymbol]:
        try:
            tree = ast.parse(self.source)
        except (SyntaxError, ValueError):
            return []
        return self._visit_body(tree.body, scope="module")

    def _visit_body(self, body: list[ast.stmt], scope: str) -> list[DocumentSymbol]:
        symbols: list[DocumentSymbol] = []
        for node in body:
            if isinstance(node, ast.ClassDef):
                symbols.append(self.visit_class(node))
            elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
                symbols.append(self.visit_function(node, scope))
            elif scope != "function" and isinstance(node, (ast.Assign, ast.AnnAssign)):
                symbols.extend(self.visit_assignment(node, scope))
            elif isinstance(node, (ast.If, ast.Try)):
                # Conditional definitions (TYPE_CHECKING blocks, import fallbacks)
                nested = list(node.body) + list(getattr(node, "orelse", []))
                symbols.extend(self._visit_body(nested, scope))
        return symbols

    def visit_class(self, node: ast.ClassDef) -> DocumentSymbol:
        kind = SymbolKind.Class
        for base in node.bases:
            if isinstance(base, ast.Name) and base.id in ("Enum", "IntEnum", "StrEnum"):
                kind = SymbolKind.Enum
            elif isinstance(base, ast.Name) and base.id == "Protocol":
                kind = SymbolKind.Interface
        children = self._visit_body(node.body, scope="enum" if kind == SymbolKind.Enum else "class")
        return DocumentSymbol(
            name=node.name,
            kind=kind,
            range=self._node_range(node),
            selection_range=self._name_range(node, node.name),
            detail=", ".join(ast.unparse(b) for b in node.bases) or None,
            children=children,
        )

    def visit_function(self, node: ast.FunctionDef | ast.AsyncFunctionDef, scope: str) -> DocumentSymbol:
        if scope in ("class", "enum"):
            kind = SymbolKind.Constructor if node.name == "__init__" else SymbolKind.Method
            if any(_decorator_name(d) == "property" for d in node.decorator_list):
                kind = SymbolKind.Property
        else:
            kind = SymbolKind.Function
        return DocumentSymbol(
            name=node.name,
            kind=kind,
            range=self._node_range(node),
            selection_range=self._name_range(node, node.name),
            detail=f"({ast.unparse(node.args)})",
            children=self._visit_body(node.body, scope="function"),
        )

    def visit_assignment(self, node: ast.Assign | ast.AnnAssign, scope: str) -> list[DocumentSymbol]:
        targets = node.targets if isinstance(node, ast.Assign) else [node.target]
        symbols = []
        for target in targets:
            for name_node in _names(target):
                name = name_node.id
                if scope == "enum":
                    kind = SymbolKind.EnumMember
                elif name.isupper():
                    kind = SymbolKind.Constant
                elif scope == "class":
                    kind = SymbolKind.Field
                else:
                    kind = SymbolKind.Variable
                rng = self._node_range(name_node)
                symbols.append(
                    DocumentSymbol(name=name, kind=kind, range=self._node_range(node), selection_range=rng)
                )
        return symbols

    def _node_range(self, node: ast.AST) -> Range:
        end_line = getattr(node, "end_lineno", None) or node.lineno
        end_col = getattr(node, "end_col_offset", None) or 0
        return Range.of(node.lineno - 1, node.col_offset, end_line - 1, end_col)

    def _name_range(self, node: ast.AST, name: str) -> Range:
        line = node.lineno - 1
        text = self.lines[line] if line < len(self.lines) else ""
        match = _DEF_NAME.search(text, node.col_offset)
        col = match.start(1) if match and match.group(1) == name else node.col_offset
        return Range.of(line, col, line, col + len(name))


def _names(target: ast.expr) -> list[ast.Name]:
    if isinstance(target, ast.Name):
        return [target]
    if isinstance(target, (ast.Tuple, ast.List)):
        found: list[ast.Name] = []
        for elt in target.elts:
            found.extend(_names(elt))
        return found
    return []


def _decorator_name(node: ast.expr) -> str:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    if isinstance(node, ast.Call):
        return _decorator_name(node.func)
    return ""


def python_document_symbols(source: str) -> list[DocumentSymbol]:
    """Outline of a Python module; empty when the source does not parse."""
    return PythonOutline(source).build()
