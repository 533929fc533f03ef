"""Error taxonomy and exit statuses for macro-mcp.

Every failure the engine can report is a MacroMCPError subclass carrying the
ExitStatus it maps to. Teardown problems are never raised; they are recorded
as TeardownWarning values and reported alongside the primary result.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional


# Windows HRESULT for ERROR_SHARING_VIOLATION (file in use by another process)
SHARING_VIOLATION_HRESULT = 0x80070020


class ExitStatus(IntEnum):
    """Process exit statuses reported for each engine outcome."""

    OK = 0
    INVALID_INPUT = 1
    UNSUPPORTED_FILE_TYPE = 2
    FILE_LOCKED = 3
    TRUST_SETTING = 4
    HOST_OR_DOCUMENT_OPEN = 5
    MODULE_OPERATION = 6
    UNEXPECTED = 7


class MacroMCPError(Exception):
    """Base class for engine errors.

    Attributes:
        exit_status: Status reported when this error ends a run
    """

    exit_status = ExitStatus.UNEXPECTED

    @property
    def kind(self) -> str:
        return type(self).__name__


class DocumentNotFound(MacroMCPError):
    """Raised when the target path does not reference an existing file."""

    exit_status = ExitStatus.INVALID_INPUT

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"File not found: {path}")


class UnsupportedFileType(MacroMCPError):
    """Raised when the document extension has no macro-enabled host."""

    exit_status = ExitStatus.UNSUPPORTED_FILE_TYPE

    def __init__(self, path: str, extension: str, supported: tuple):
        self.path = path
        self.extension = extension
        self.supported = supported
        shown = extension or "(none)"
        super().__init__(
            f"Unsupported file type '{shown}' for {path}. "
            f"Supported extensions: {', '.join(supported)}"
        )


class FileLocked(MacroMCPError):
    """Raised when the document is held open by another process."""

    exit_status = ExitStatus.FILE_LOCKED

    def __init__(self, path: str, reason: str = ""):
        self.path = path
        message = f"File is open in another process: {path}. Close it and try again."
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class HostLaunchFailed(MacroMCPError):
    """Raised when the automation host process cannot be started."""

    exit_status = ExitStatus.HOST_OR_DOCUMENT_OPEN

    def __init__(self, prog_id: str, reason: str):
        self.prog_id = prog_id
        super().__init__(f"Could not start {prog_id}: {reason}")


class DocumentOpenFailed(MacroMCPError):
    """Raised when the host refuses to open the document.

    Attributes:
        path: Document path
        hresult: Unsigned HRESULT reported by the host, if any
        in_use: True when the host reported a sharing violation
    """

    exit_status = ExitStatus.HOST_OR_DOCUMENT_OPEN

    def __init__(self, path: str, reason: str, hresult: Optional[int] = None):
        self.path = path
        self.hresult = hresult
        self.in_use = hresult == SHARING_VIOLATION_HRESULT
        message = f"Could not open {path}: {reason}"
        if hresult is not None:
            message = f"{message} (HRESULT 0x{hresult:08X})"
        if self.in_use:
            message = f"{message}. The file was opened by another process after the lock check."
        super().__init__(message)


class TrustSettingRequired(MacroMCPError):
    """Raised when VBA project access is disabled and auto-enable was not requested."""

    exit_status = ExitStatus.TRUST_SETTING

    def __init__(self, application: str, version: str):
        self.application = application
        self.version = version
        super().__init__(
            f"'Trust access to the VBA project object model' is disabled for "
            f"{application} {version}. Enable it in the Trust Center or request auto-enable."
        )


class TrustSettingReadFailed(MacroMCPError):
    """Raised when the trust flag could not be read from the registry."""

    exit_status = ExitStatus.TRUST_SETTING

    def __init__(self, key_path: str, reason: str):
        self.key_path = key_path
        super().__init__(
            f"Could not read VBA project access setting at HKCU\\{key_path}: {reason}"
        )


class TrustSettingWriteFailed(MacroMCPError):
    """Raised when the trust flag could not be written to the registry."""

    exit_status = ExitStatus.TRUST_SETTING

    def __init__(self, key_path: str, reason: str):
        self.key_path = key_path
        super().__init__(
            f"Could not enable VBA project access at HKCU\\{key_path}: {reason}"
        )


class ProjectAccessFailed(MacroMCPError):
    """Raised when the document's VBA project cannot be read.

    Never fatal: the engine reports it as "no project" with an advisory.
    """

    exit_status = ExitStatus.OK

    def __init__(self, reason: str = ""):
        self.reason = reason
        message = (
            "VBA project is not accessible. The document may contain no macros, "
            "the trust setting may not be in effect for the running host yet, "
            "or the project may be password-protected"
        )
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class RemovalFailed(MacroMCPError):
    """Raised when the host fails to remove a component."""

    exit_status = ExitStatus.MODULE_OPERATION

    def __init__(self, name: str, reason: str):
        self.name = name
        super().__init__(f"Could not remove module '{name}': {reason}")


class SaveFailed(MacroMCPError):
    """Raised when the document could not be saved after a removal."""

    exit_status = ExitStatus.MODULE_OPERATION

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Module was removed but {path} could not be saved: {reason}")


@dataclass(frozen=True)
class TeardownWarning:
    """A teardown step that failed without affecting the primary result."""

    step: str
    message: str

    def __str__(self) -> str:
        return f"{self.step}: {self.message}"


def com_error_details(error: Exception) -> tuple:
    """Extract (message, unsigned HRESULT) from a COM error.

    pywintypes.com_error carries (hresult, text, excepinfo, argerror) in args;
    excepinfo[5] holds the host-specific scode when the host supplied one.

    Args:
        error: Exception raised by a COM call

    Returns:
        Tuple of (message, hresult or None)
    """
    args = getattr(error, "args", ())
    if len(args) >= 2 and isinstance(args[0], int):
        hresult = args[0]
        message = str(args[1])
        excepinfo = args[2] if len(args) > 2 else None
        if excepinfo and len(excepinfo) > 5:
            if excepinfo[2]:
                message = str(excepinfo[2]).strip()
            if excepinfo[5]:
                hresult = excepinfo[5]
        return message, hresult & 0xFFFFFFFF
    return str(error), None
