"""
macro-mcp: MCP server for inspecting and removing VBA macro modules.

This package drives Excel, Word and PowerPoint through COM automation to list
the components of a document's VBA project and to remove standard, class and
form modules. Every run is wrapped in an automation session whose teardown
always closes the document and quits the host, and the "Trust access to the
VBA project object model" setting is restored after the run when it had to be
switched on.
"""

__version__ = "0.1.0"
