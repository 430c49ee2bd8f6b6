"""
SearXNG Web Search Tool

Provides web search capabilities via a SearXNG instance.
"""

import logging
from typing import Optional

import requests

from ..models import SearxngConfig
from .registry import ParameterSpec, ToolSpec

logger = logging.getLogger(__name__)


def search(
    query: str,
    categories: Optional[str] = None,
    num_results: int = 5,
    searxng_config: Optional[SearxngConfig] = None,
) -> dict:
    """
    Search the web using SearXNG.

    Args:
        query: The search query
        categories: Optional category filter (e.g., "general", "images", "news")
        num_results: Maximum number of results to return
        searxng_config: Endpoint configuration

    Returns:
        Dictionary with search results

    Raises:
        ValueError: If the query is empty
        requests.RequestException: On transport or HTTP failure
    """
    cfg = searxng_config or SearxngConfig()

    if not query or not query.strip():
        raise ValueError("Search query is empty. Please provide search terms.")

    params = {
        "q": query,
        "format": "json",
    }
    if categories:
        params["categories"] = categories

    logger.debug("Searching %s for %s", cfg.url, query)
    response = requests.get(cfg.url, params=params, timeout=cfg.timeout)
    response.raise_for_status()
    data = response.json()

    results = []
    for result in data.get("results", [])[:num_results]:
        results.append({
            "title": result.get("title", ""),
            "url": result.get("url", ""),
            "content": result.get("content", ""),
            "engine": result.get("engine", ""),
        })

    return {
        "query": query,
        "results": results,
        "total": len(results),
    }


def format_results_for_llm(search_results: dict) -> str:
    """
    Format search results into a string suitable for LLM consumption.

    Args:
        search_results: Results from search()

    Returns:
        Formatted string of search results
    """
    if not search_results.get("results"):
        return "No results found."

    formatted = f"Search results for '{search_results['query']}':\n\n"
    for i, result in enumerate(search_results["results"], 1):
        formatted += f"{i}. {result['title']}\n"
        formatted += f"   URL: {result['url']}\n"
        if result["content"]:
            formatted += f"   {result['content'][:200]}...\n"
        formatted += "\n"

    return formatted


def build_tool(searxng_config: Optional[SearxngConfig] = None) -> ToolSpec:
    """Declare the web_search tool bound to a SearXNG endpoint."""
    cfg = searxng_config or SearxngConfig()

    def _handle_search(params: dict) -> dict:
        return search(
            query=params["query"],
            categories=params.get("categories"),
            num_results=params.get("num_results", 5),
            searxng_config=cfg,
        )

    return ToolSpec(
        name="web_search",
        description="Search the web for current information",
        parameters={
            "query": ParameterSpec("string", "search query"),
            "categories": ParameterSpec(
                "string", "optional category (general, images, news)", required=False
            ),
            "num_results": ParameterSpec(
                "integer", "max results to return (default 5)", required=False
            ),
        },
        handler=_handle_search,
        formatter=format_results_for_llm,
    )
