"""
Module removal for macro-mcp.

Standard, class and form modules can be detached from a VBA project.
Document modules (ThisWorkbook, Sheet1, ThisDocument, ...) belong to the
file's structure and are reported as protected instead.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import RemovalFailed, com_error_details
from .inspector import ComponentKind
from .logging_config import get_logger

logger = get_logger(__name__)


class RemovalStatus(Enum):
    REMOVED = "removed"
    NOT_FOUND = "not_found"
    PROTECTED = "protected"
    NO_PROJECT = "no_project"


@dataclass(frozen=True)
class RemovalOutcome:
    status: RemovalStatus
    name: str
    kind: Optional[ComponentKind] = None

    @property
    def removed(self) -> bool:
        return self.status is RemovalStatus.REMOVED

    @classmethod
    def no_project(cls, name: str) -> "RemovalOutcome":
        return cls(RemovalStatus.NO_PROJECT, name)


def find_component(project, name: str):
    """Return the component whose Name equals name exactly, or None."""
    for component in project.VBComponents:
        if component.Name == name:
            return component
    return None


def remove_module(project, name: str) -> RemovalOutcome:
    """
    Remove a module from the project unless it is a document module.

    Args:
        project: VBProject COM object
        name: Exact module name

    Returns:
        RemovalOutcome (REMOVED, NOT_FOUND or PROTECTED)

    Raises:
        RemovalFailed: If the host rejects the removal
    """
    component = find_component(project, name)
    if component is None:
        logger.info("module_not_found", name=name)
        return RemovalOutcome(RemovalStatus.NOT_FOUND, name)

    kind = ComponentKind.from_code(component.Type)
    if kind is ComponentKind.DOCUMENT:
        logger.info("module_protected", name=name, kind=kind.name)
        return RemovalOutcome(RemovalStatus.PROTECTED, name, kind)

    try:
        project.VBComponents.Remove(component)
    except Exception as e:
        message, _ = com_error_details(e)
        logger.error("module_removal_failed", name=name, error=message)
        raise RemovalFailed(name, message) from e

    logger.info("module_removed", name=name, kind=kind.name)
    return RemovalOutcome(RemovalStatus.REMOVED, name, kind)
