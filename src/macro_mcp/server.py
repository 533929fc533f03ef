"""
FastMCP server for macro-mcp.

This module provides the main MCP server instance and registers the macro
project tools. Every tool call runs in its own automation session taken from
the host pool; no document or host is kept open between calls.

Entry point: Run with `python -m macro_mcp.server` or via `macro-mcp` command.
"""

from contextlib import asynccontextmanager
from mcp.server.fastmcp import FastMCP

from .logging_config import get_logger
from .session import host_pool

logger = get_logger(__name__)

from .tools.macros import (
    list_macro_modules,
    read_macro_module,
    remove_macro_module,
)
from .tools.monitoring import (
    get_server_health,
)


@asynccontextmanager
async def app_lifespan(server):
    """
    Lifespan context manager for server initialization and cleanup.

    Shutdown tears down any session still active so no Office host process
    outlives the server.
    """
    logger.info("server_starting", name="macro-mcp")
    try:
        yield {}
    finally:
        logger.info("server_shutting_down")

        closed = host_pool.close_all()
        if closed > 0:
            logger.info("sessions_closed_on_shutdown", count=closed)

        logger.info("server_shutdown_complete")


mcp = FastMCP("macro-mcp", lifespan=app_lifespan)


@mcp.tool()
def list_macro_modules_tool(path: str, auto_enable_trust: bool = False) -> str:
    """
    List the VBA components of an Excel, Word or PowerPoint document.

    Opens the document read-only in a hidden Office instance, enumerates its
    VBA project and closes it again without saving.

    Args:
        path: Path to a .xlsm, .xltm, .docm, .dotm, .pptm or .ppsm file
        auto_enable_trust: If "Trust access to the VBA project object model"
            is off, switch it on for this run and restore it afterwards

    Returns:
        One line per component (name, kind, line count), or an error message

    Examples:
        >>> list_macro_modules_tool("C:/Books/Book1.xlsm")
        '''Macro modules in 'Book1.xlsm': 2 component(s)

        [1] Module1 (Standard Module, 12 lines)
        [2] ThisWorkbook (Document, 3 lines)'''

        >>> list_macro_modules_tool("C:/Books/Book1.xlsx")
        "Error: Unsupported file type '.xlsx' for C:\\Books\\Book1.xlsx. ... (exit status 2: UNSUPPORTED_FILE_TYPE)"

    Design notes:
        - Read-only: never saves the document
        - The file must not be open in another program
        - Password-protected projects, documents without macros and a trust
          setting that is not yet in effect all report "not accessible"
    """
    return list_macro_modules(path, auto_enable_trust)


@mcp.tool()
def read_macro_module_tool(path: str, module_name: str, auto_enable_trust: bool = False) -> str:
    """
    Read the complete source code of one VBA component.

    Args:
        path: Path to a macro-enabled Office document
        module_name: Exact (case-sensitive) component name, e.g. "Module1"
        auto_enable_trust: Temporarily enable VBA project access if it is off

    Returns:
        Header line followed by the verbatim source, or an error message
    """
    return read_macro_module(path, module_name, auto_enable_trust)


@mcp.tool()
def remove_macro_module_tool(path: str, module_name: str) -> str:
    """
    Remove a standard, class or form module from a document and save it.

    Document modules (ThisWorkbook, Sheet1, ThisDocument, ...) are part of
    the file's structure and are never removed.

    Args:
        path: Path to a macro-enabled Office document
        module_name: Exact (case-sensitive) component name

    Returns:
        Outcome message, or an error message

    Design notes:
        - Requires "Trust access to the VBA project object model" to be on;
          this tool never changes the setting
        - The document is saved exactly once, and only when a module was removed
    """
    return remove_macro_module(path, module_name)


@mcp.tool()
def get_server_health_tool() -> str:
    """
    Get server health status and resource metrics.

    Returns:
        Formatted health report with status (HEALTHY/DEGRADED/UNHEALTHY),
        memory metrics, host pool metrics, Office host process count and
        any active alerts.
    """
    return get_server_health()


def main():
    """
    Main entry point for macro-mcp server.

    Starts the FastMCP server and begins listening for MCP protocol messages.
    """
    mcp.run()


if __name__ == "__main__":
    main()
