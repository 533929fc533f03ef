"""
VBA project inspection for macro-mcp.

Reads the components of an open document's VBA project through the VBIDE
object model. Source text is copied verbatim, line by line.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Iterator, Tuple

from .errors import ProjectAccessFailed, com_error_details
from .file_types import ApplicationKind
from .logging_config import get_logger

logger = get_logger(__name__)

# vbext_ProjectProtection.vbext_pp_locked
PROJECT_LOCKED = 1


class ComponentKind(IntEnum):
    """VBIDE vbext_ComponentType codes."""

    UNKNOWN = 0
    STANDARD_MODULE = 1
    CLASS_MODULE = 2
    FORM = 3
    ACTIVEX_DESIGNER = 11
    DOCUMENT = 100

    @classmethod
    def from_code(cls, code) -> "ComponentKind":
        try:
            return cls(int(code))
        except (TypeError, ValueError):
            return cls.UNKNOWN

    @property
    def label(self) -> str:
        return self.name.replace("_", " ").title()


@dataclass(frozen=True)
class MacroComponent:
    name: str
    kind: ComponentKind
    source_lines: Tuple[str, ...]
    line_count: int

    @property
    def source_text(self) -> str:
        return "\r\n".join(self.source_lines)


def open_project(document, kind: ApplicationKind):
    """
    Get the document's VBA project.

    Excel reports whether a workbook has a project at all (HasVBProject);
    Word and PowerPoint do not, so their project is simply accessed.

    Args:
        document: Open Workbook, Document or Presentation
        kind: Application kind of the host

    Returns:
        VBProject COM object, or None when the workbook has no project

    Raises:
        ProjectAccessFailed: If the project cannot be accessed or is locked
    """
    if kind is ApplicationKind.SPREADSHEET:
        try:
            has_project = bool(document.HasVBProject)
        except Exception as e:
            message, _ = com_error_details(e)
            logger.warning("project_presence_check_failed", error=message)
            raise ProjectAccessFailed(message) from e
        if not has_project:
            logger.info("project_absent")
            return None

    try:
        project = document.VBProject
        protection = project.Protection
    except Exception as e:
        message, _ = com_error_details(e)
        logger.warning("project_access_failed", error=message)
        raise ProjectAccessFailed(message) from e

    if protection == PROJECT_LOCKED:
        logger.warning("project_locked")
        raise ProjectAccessFailed("project is locked for viewing")

    return project


def read_component(component) -> MacroComponent:
    """Copy one VBComponent's name, kind and full source."""
    code_module = component.CodeModule
    line_count = int(code_module.CountOfLines)
    if line_count > 0:
        text = code_module.Lines(1, line_count)
        source_lines = tuple(text.split("\r\n"))
    else:
        source_lines = ()

    return MacroComponent(
        name=str(component.Name),
        kind=ComponentKind.from_code(component.Type),
        source_lines=source_lines,
        line_count=line_count,
    )


def iter_components(project) -> Iterator[MacroComponent]:
    """
    Yield the project's components in the host's enumeration order.

    The generator reads each component only when it is requested and cannot
    be restarted; call it again for a fresh pass.
    """
    for component in project.VBComponents:
        macro = read_component(component)
        logger.debug("component_read", name=macro.name, kind=macro.kind.name, lines=macro.line_count)
        yield macro
