"""MCP server exposing project questions to coding agents.

Run with ``pyfilesearch mcp``; the server speaks MCP over stdio, so all
logging goes to stderr.
"""

import logging
from typing import Optional

from mcp.server.fastmcp import FastMCP

from .api import FileSearchClient
from .config import config
from .exceptions import FileSearchError
from .query import ask_project as ask_project_query
from .settings import detect_project_name
from .sync.directory import RemoteStoreDirectory

logger = logging.getLogger(__name__)

mcp = FastMCP("pyfilesearch")

_client: Optional[FileSearchClient] = None


def get_client() -> FileSearchClient:
    """Client shared by all tool calls, created on first use."""
    global _client
    if _client is None:
        _client = FileSearchClient(
            api_key=config.api_key,
            api_url=config.api_url,
            model=config.model,
        )
    return _client


def handle_ask_project(
    client: FileSearchClient, query: str, project_name: Optional[str] = None
) -> str:
    """Answer a question, detecting the project from the settings file if needed."""
    name = project_name or detect_project_name()
    if not name:
        return (
            "Could not determine the project. Pass project_name or create a "
            "document-sync.json with a projectName in the project directory."
        )

    try:
        result = ask_project_query(client, RemoteStoreDirectory(client), name, query)
    except FileSearchError as e:
        logger.error(f"ask_project failed for {name}: {e}")
        return f"Error querying project '{name}': {e}"

    text = result.text
    titles = sorted({c.title for c in result.citations if c.title})
    if titles:
        text += "\n\nSources:\n" + "\n".join(f"- {t}" for t in titles)
    return text


def handle_list_projects(client: FileSearchClient) -> str:
    try:
        names = RemoteStoreDirectory(client).list_project_names()
    except FileSearchError as e:
        logger.error(f"list_projects failed: {e}")
        return f"Error listing projects: {e}"
    if not names:
        return "No projects found."
    return "\n".join(names)


@mcp.tool()
def ask_project(query: str, project_name: Optional[str] = None) -> str:
    """Ask a question about the documents of a project.

    Args:
        query: The question
        project_name: Project to ask; detected from document-sync.json
            (starting at PROJECT_PATH or the working directory) if omitted
    """
    try:
        client = get_client()
    except FileSearchError as e:
        return f"Error: {e}"
    return handle_ask_project(client, query, project_name)


@mcp.tool()
def list_projects() -> str:
    """List the projects that have a document store."""
    try:
        client = get_client()
    except FileSearchError as e:
        return f"Error: {e}"
    return handle_list_projects(client)


def run() -> None:
    """Serve over stdio until the client disconnects."""
    logger.info("Starting MCP server")
    mcp.run()
