"""
Macro project tools for macro-mcp.

This module provides MCP tool functions that run the engine and turn its
results into readable text: list modules, read one module's source, and
remove a module.

Every tool returns a message; failures are prefixed with "Error:" and carry
the engine's exit status. Advisories (trust setting, teardown problems) are
appended as "Note:" lines so they are never lost behind the main result.
"""

from pathlib import Path
from typing import List

from .. import engine
from ..remover import RemovalStatus


def _advisory_lines(result) -> List[str]:
    return [f"Note: {advisory}" for advisory in result.advisories]


def _error_text(result) -> str:
    status = result.exit_status
    lines = [f"Error: {result.error.message} (exit status {int(status)}: {status.name})"]
    lines.extend(_advisory_lines(result))
    return "\n".join(lines)


def list_macro_modules(path: str, auto_enable_trust: bool = False) -> str:
    """
    List the VBA components of a document.

    Args:
        path: Path to a macro-enabled Office document
        auto_enable_trust: Temporarily enable VBA project access if it is off

    Returns:
        Component summary or error message prefixed with "Error:"

    Examples:
        >>> list_macro_modules("C:/Books/Book1.xlsm")
        '''Macro modules in 'Book1.xlsm': 2 component(s)

        [1] Module1 (Standard Module, 12 lines)
        [2] ThisWorkbook (Document, 3 lines)'''
    """
    result = engine.inspect_macros(path, auto_enable_trust)
    if result.error is not None:
        return _error_text(result)

    filename = Path(result.path).name
    if not result.project_present:
        lines = [f"No VBA project found in '{filename}'."]
    elif not result.components:
        lines = [f"VBA project in '{filename}' has no components."]
    else:
        lines = [f"Macro modules in '{filename}': {len(result.components)} component(s)", ""]
        for index, component in enumerate(result.components, start=1):
            lines.append(
                f"[{index}] {component.name} ({component.kind.label}, {component.line_count} lines)"
            )

    advisories = _advisory_lines(result)
    if advisories:
        lines.append("")
        lines.extend(advisories)
    return "\n".join(lines)


def read_macro_module(path: str, module_name: str, auto_enable_trust: bool = False) -> str:
    """
    Return the full source of one VBA component.

    Args:
        path: Path to a macro-enabled Office document
        module_name: Exact component name
        auto_enable_trust: Temporarily enable VBA project access if it is off

    Returns:
        Header line followed by the verbatim source, or an "Error:" message
    """
    result = engine.inspect_macros(path, auto_enable_trust)
    if result.error is not None:
        return _error_text(result)

    for component in result.components:
        if component.name == module_name:
            header = f"' {component.name} ({component.kind.label}, {component.line_count} lines)"
            return "\n".join([header, *component.source_lines])

    filename = Path(result.path).name
    lines = [f"Error: Module '{module_name}' not found in '{filename}'."]
    lines.extend(_advisory_lines(result))
    return "\n".join(lines)


def remove_macro_module(path: str, module_name: str) -> str:
    """
    Remove a standard, class or form module and save the document.

    Args:
        path: Path to a macro-enabled Office document
        module_name: Exact component name

    Returns:
        Outcome message or an "Error:" message

    Examples:
        >>> remove_macro_module("C:/Books/Book1.xlsm", "Module1")
        "Removed module 'Module1' from 'Book1.xlsm' and saved the document."

        >>> remove_macro_module("C:/Books/Book1.xlsm", "ThisWorkbook")
        "Error: Module 'ThisWorkbook' is a Document module and cannot be removed. ..."
    """
    result = engine.remove_macro_module(path, module_name)
    if result.error is not None:
        return _error_text(result)

    filename = Path(result.path).name
    outcome = result.outcome
    status = f"(exit status {int(result.exit_status)}: {result.exit_status.name})"

    if outcome.status is RemovalStatus.REMOVED:
        lines = [f"Removed module '{module_name}' from '{filename}' and saved the document."]
    elif outcome.status is RemovalStatus.PROTECTED:
        lines = [
            f"Error: Module '{module_name}' is a {outcome.kind.label} module and cannot be removed. "
            f"Clear its code instead. {status}"
        ]
    elif outcome.status is RemovalStatus.NOT_FOUND:
        lines = [f"Error: Module '{module_name}' not found in '{filename}'. {status}"]
    else:
        lines = [f"Error: No VBA project found in '{filename}'. {status}"]

    lines.extend(_advisory_lines(result))
    return "\n".join(lines)
