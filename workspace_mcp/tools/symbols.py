"""Symbol tools: ranked workspace search and per-file outlines."""

from __future__ import annotations

from typing import Any

from workspace_mcp.host import DocumentSymbol, SymbolInformation, WorkspaceHost
from workspace_mcp.registry import ToolRegistry, ToolResult, text_result
from workspace_mcp.tools import ToolContext


def match_rank(query: str, name: str) -> int:
    """0 exact, 1 prefix, 2 substring, 3 subsequence (all case-insensitive)."""
    q, n = query.lower(), name.lower()
    if n == q:
        return 0
    if n.startswith(q):
        return 1
    if q in n:
        return 2
    return 3


def rank_symbols(query: str, symbols: list[SymbolInformation]) -> list[SymbolInformation]:
    return sorted(
        symbols,
        key=lambda s: (match_rank(query, s.name), len(s.name), s.path, s.range.start.line),
    )


def format_location(symbol: SymbolInformation) -> str:
    return f"{symbol.path}:{symbol.range.start.line}:{symbol.range.start.character}"


async def search_symbols(host: WorkspaceHost, query: str, max_results: int = 10) -> str:
    ranked = rank_symbols(query, await host.query_workspace_symbols(query))
    total = len(ranked)
    if total == 0:
        return f'No symbols found matching query "{query}".'

    text = f'Found {total} symbols matching query "{query}"'
    if total > max_results:
        text += f" (showing first {max_results})"
    text += ":\n\n"
    for symbol in ranked[:max_results]:
        text += f"{symbol.name} ({symbol.kind.name})"
        if symbol.container_name:
            text += f" in {symbol.container_name}"
        text += f"\nLocation: {format_location(symbol)}\n\n"
    return text.rstrip("\n")


def _count(symbols: list[DocumentSymbol]) -> int:
    return sum(1 + _count(s.children) for s in symbols)


def render_outline(symbols: list[DocumentSymbol], max_depth: int | None, depth: int = 0) -> list[str]:
    lines: list[str] = []
    for s in symbols:
        r = s.range
        span = f"{r.start.line}:{r.start.character}-{r.end.line}:{r.end.character}"
        entry = f"{'  ' * depth}{s.name} ({s.kind.name}) {span}"
        if s.detail:
            entry += f" {s.detail}"
        lines.append(entry)
        if s.children and (max_depth is None or depth < max_depth):
            lines.extend(render_outline(s.children, max_depth, depth + 1))
    return lines


async def get_document_symbols(host: WorkspaceHost, path: str, max_depth: int | None = None) -> str:
    symbols = await host.query_document_symbols(path)
    if not symbols:
        return f"No symbols found in {path}."
    total = _count(symbols)
    header = f"Document symbols for {path} ({total} total):"
    return "\n".join([header, ""] + render_outline(symbols, max_depth))


def register(registry: ToolRegistry, ctx: ToolContext, groups: set[str]) -> None:
    if "symbol" not in groups:
        return

    async def handle_search_symbols(args: dict[str, Any]) -> ToolResult:
        return text_result(await search_symbols(ctx.host, args["query"], args["maxResults"]))

    async def handle_get_document_symbols(args: dict[str, Any]) -> ToolResult:
        return text_result(await get_document_symbols(ctx.host, args["path"], args.get("maxDepth")))

    registry.register(
        "search_symbols",
        "Searches symbols (classes, functions, variables, ...) across the workspace by name. "
        "Matching is fuzzy: 'createW' matches 'createWorkspaceFile'. Exact and prefix matches "
        "rank first. Locations are path:line:character, 0-based.",
        {
            "query": {"type": "string", "required": True, "description": "The search query for symbol names"},
            "maxResults": {
                "type": "integer",
                "minimum": 1,
                "default": 10,
                "description": "Maximum number of results to return",
            },
        },
        handle_search_symbols,
        group="symbol",
    )
    registry.register(
        "get_document_symbols",
        "Returns the hierarchical symbol outline of one file with 0-based ranges.",
        {
            "path": {"type": "string", "required": True, "description": "File to outline"},
            "maxDepth": {
                "type": "integer",
                "minimum": 0,
                "description": "Nesting depth to show (0 = top level only); omit for everything",
            },
        },
        handle_get_document_symbols,
        group="symbol",
    )
