"""
File type resolution for macro-mcp.

Maps a document's extension to the Office application that hosts it and to
the collection used to open it. Only macro-enabled formats are supported:
the editable and the template (or show) variant for each application.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict

from .errors import UnsupportedFileType


class ApplicationKind(Enum):
    SPREADSHEET = "spreadsheet"
    WORD_PROCESSOR = "word_processor"
    PRESENTATION = "presentation"


@dataclass(frozen=True)
class FileType:
    """Host application details resolved for one document.

    Attributes:
        extension: Lower-cased extension including the dot
        kind: Application kind
        collection: Name of the host collection used to open the document
        prog_id: COM ProgID of the host application
        registry_app: Application key name under the Office registry tree
    """

    extension: str
    kind: ApplicationKind
    collection: str
    prog_id: str
    registry_app: str


_HOSTS = {
    ApplicationKind.SPREADSHEET: ("Workbooks", "Excel.Application", "Excel"),
    ApplicationKind.WORD_PROCESSOR: ("Documents", "Word.Application", "Word"),
    ApplicationKind.PRESENTATION: ("Presentations", "PowerPoint.Application", "PowerPoint"),
}

_EXTENSIONS = {
    ".xlsm": ApplicationKind.SPREADSHEET,
    ".xltm": ApplicationKind.SPREADSHEET,
    ".docm": ApplicationKind.WORD_PROCESSOR,
    ".dotm": ApplicationKind.WORD_PROCESSOR,
    ".pptm": ApplicationKind.PRESENTATION,
    ".ppsm": ApplicationKind.PRESENTATION,
}

FILE_TYPES: Dict[str, FileType] = {
    ext: FileType(ext, kind, *_HOSTS[kind]) for ext, kind in _EXTENSIONS.items()
}

SUPPORTED_EXTENSIONS = tuple(FILE_TYPES)


def resolve_file_type(path: str) -> FileType:
    """
    Resolve the host application for a document path.

    Args:
        path: Document path (only the extension is inspected)

    Returns:
        FileType for the extension

    Raises:
        UnsupportedFileType: If the extension is not a macro-enabled Office format

    Examples:
        >>> resolve_file_type("C:/Books/Book1.XLSM").collection
        'Workbooks'
    """
    extension = Path(path).suffix.lower()
    try:
        return FILE_TYPES[extension]
    except KeyError:
        raise UnsupportedFileType(path, extension, SUPPORTED_EXTENSIONS) from None
