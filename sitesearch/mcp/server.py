from __future__ import annotations

from sitesearch.api.search_service import perform_search
from sitesearch.common.errors import EmptyQueryError

try:
    from fastmcp import FastMCP
except ImportError as exc:  # pragma: no cover - runtime dependency guard
    raise RuntimeError(
        "FastMCP is required to run the MCP server. Install the project's dependencies."
    ) from exc


SERVER_TITLE = "SiteSearch"
SERVER_INSTRUCTIONS = (
    "Use search_pages to search the indexed sites. Pass site to restrict the search "
    "to one root url. Set limit and offset for pagination."
)

mcp = FastMCP(
    name=SERVER_TITLE,
    instructions=SERVER_INSTRUCTIONS,
    version='1',
)


def _bounded(limit: int, offset: int) -> tuple[int, int]:
    return max(1, min(limit, 100)), max(0, offset)


def render_results(query: str, site: str | None, limit: int, offset: int) -> str:
    bounded_limit, bounded_offset = _bounded(limit, offset)
    try:
        response = perform_search(query=query, site=site, offset=bounded_offset, limit=bounded_limit)
    except EmptyQueryError as exc:
        return str(exc)
    if not response.result:
        return response.error or "Search failed"

    llm_results = f"{response.count} matching page(s)\n\n"
    for item in response.data:
        llm_results += f"[{item.site.rstrip('/')}{item.uri}]({item.title})"
        llm_results += '\n'
        llm_results += item.snippet
        llm_results += '\n'
        llm_results += '\n'

    return llm_results.strip()


@mcp.tool(name="search_pages", description="Search pages of the indexed sites.")
def search_pages(query: str, site: str | None = None, limit: int = 10, offset: int = 0) -> str:
    """Run a ranked search against the site index."""
    return render_results(query, site, limit, offset)


if __name__ == "__main__":
    mcp.run("http")
