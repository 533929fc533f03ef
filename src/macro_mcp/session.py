"""
Automation sessions and the host pool for macro-mcp.

An AutomationSession owns one isolated Office host process and at most one
open document. Teardown is an ordered chain of independent steps (close the
document, quit the host); each step logs and records its own failure and the
next step always runs, so a broken host never leaves a document open or a
process behind because an earlier step raised.

The HostPool limits how many host processes the server runs at once and
tracks lifecycle counts for health monitoring.

Key design:
- DispatchEx (NOT Dispatch) so the user's own Office windows are never reused
- Alerts suppressed and macro auto-execution forced off before any open
- close() never saves; the only persistence is an explicit save()
"""

import gc
import threading
from contextlib import contextmanager
from enum import Enum
from typing import Callable, Dict, List, Optional

from .errors import (
    DocumentOpenFailed,
    HostLaunchFailed,
    MacroMCPError,
    RemovalFailed,
    SaveFailed,
    TeardownWarning,
    com_error_details,
)
from .file_types import ApplicationKind, FileType
from .logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_POOL_SIZE = 3

# msoAutomationSecurityForceDisable: never run auto macros on open
AUTOMATION_SECURITY_FORCE_DISABLE = 3

# Alert suppression value per host (wdAlertsNone, ppAlertsNone, False)
_ALERTS_OFF = {
    ApplicationKind.SPREADSHEET: False,
    ApplicationKind.WORD_PROCESSOR: 0,
    ApplicationKind.PRESENTATION: 1,
}


class OpenMode(Enum):
    READ_ONLY = "read_only"
    READ_WRITE = "read_write"


def dispatch_ex(prog_id: str):
    """Start a new, isolated COM server for prog_id."""
    import win32com.client

    return win32com.client.DispatchEx(prog_id)


def _open_arguments(kind: ApplicationKind, path: str, read_only: bool) -> Dict:
    """Keyword arguments for <collection>.Open per host."""
    if kind is ApplicationKind.SPREADSHEET:
        return {
            "Filename": path,
            "UpdateLinks": 0,
            "ReadOnly": read_only,
            # Open a template itself rather than a new workbook based on it
            "Editable": True,
            "IgnoreReadOnlyRecommended": True,
            "AddToMru": False,
        }
    if kind is ApplicationKind.WORD_PROCESSOR:
        return {
            "FileName": path,
            "ConfirmConversions": False,
            "ReadOnly": read_only,
            "AddToRecentFiles": False,
            "Visible": False,
        }
    return {
        "FileName": path,
        "ReadOnly": -1 if read_only else 0,  # MsoTriState
        "Untitled": 0,
        "WithWindow": 0,
    }


class AutomationSession:
    """
    One host process and one document, torn down on every exit path.

    Usage:
        with AutomationSession(file_type) as session:
            document = session.open(path, OpenMode.READ_WRITE)
            ...
            session.save()
        # session.warnings holds any teardown advisories
    """

    def __init__(self, file_type: FileType, dispatch: Callable = dispatch_ex):
        self.file_type = file_type
        self._dispatch = dispatch
        self._host = None
        self._document = None
        self.path: Optional[str] = None
        self.mode: Optional[OpenMode] = None
        self.saved = False
        self.save_count = 0
        self.host_version = ""
        self.warnings: List[TeardownWarning] = []
        self._closed = False
        self._quit = False

    @property
    def host(self):
        return self._host

    @property
    def document(self):
        return self._document

    def launch(self):
        """
        Start the host process invisibly with alerts and auto macros disabled.

        Returns:
            Host Application COM object

        Raises:
            HostLaunchFailed: If the COM server cannot be created or configured
        """
        if self._host is not None:
            return self._host

        prog_id = self.file_type.prog_id
        try:
            host = self._dispatch(prog_id)
        except Exception as e:
            message, _ = com_error_details(e)
            logger.error("host_launch_failed", prog_id=prog_id, error=message, error_type=type(e).__name__)
            raise HostLaunchFailed(prog_id, message) from e

        # Owned from here on, so teardown quits it even if configuration fails
        self._host = host
        try:
            if self.file_type.kind is not ApplicationKind.PRESENTATION:
                host.Visible = False
            host.DisplayAlerts = _ALERTS_OFF[self.file_type.kind]
            host.AutomationSecurity = AUTOMATION_SECURITY_FORCE_DISABLE
            self.host_version = str(host.Version)
        except Exception as e:
            message, _ = com_error_details(e)
            logger.error("host_configuration_failed", prog_id=prog_id, error=message)
            raise HostLaunchFailed(prog_id, message) from e

        logger.info("host_launched", prog_id=prog_id, version=self.host_version)
        return host

    def open(self, path: str, mode: OpenMode = OpenMode.READ_ONLY):
        """
        Launch the host and open the document through the resolved collection.

        Args:
            path: Absolute document path
            mode: READ_ONLY for inspection, READ_WRITE for removal

        Returns:
            Document COM object (Workbook, Document or Presentation)

        Raises:
            HostLaunchFailed: If the host cannot be started
            DocumentOpenFailed: If the host refuses to open the document
        """
        if self._document is not None:
            raise RuntimeError(f"Session already holds {self.path}")

        host = self.launch()
        collection_name = self.file_type.collection
        arguments = _open_arguments(self.file_type.kind, path, mode is OpenMode.READ_ONLY)

        try:
            collection = getattr(host, collection_name)
            document = collection.Open(**arguments)
        except Exception as e:
            message, hresult = com_error_details(e)
            logger.error(
                "document_open_failed",
                path=path,
                collection=collection_name,
                error=message,
                hresult=hresult,
            )
            raise DocumentOpenFailed(path, message, hresult) from e

        self._document = document
        self.path = path
        self.mode = mode
        logger.info("document_opened", path=path, mode=mode.value, collection=collection_name)
        return document

    def save(self) -> None:
        """
        Persist the open document.

        Raises:
            SaveFailed: If the host fails to save
        """
        if self._document is None:
            raise RuntimeError("No document is open")
        if self.mode is OpenMode.READ_ONLY:
            raise RuntimeError("Document was opened read-only")

        try:
            self._document.Save()
        except Exception as e:
            message, _ = com_error_details(e)
            logger.error("document_save_failed", path=self.path, error=message)
            raise SaveFailed(self.path, message) from e

        self.saved = True
        self.save_count += 1
        logger.info("document_saved", path=self.path)

    def close(self) -> None:
        """
        Close the document without saving. Idempotent; never raises.

        Changes not persisted by save() are discarded.
        """
        if self._closed:
            return
        self._closed = True

        document = self._document
        self._document = None
        if document is None:
            return

        try:
            if self.file_type.kind is ApplicationKind.PRESENTATION:
                # Presentation.Close has no SaveChanges argument
                document.Saved = True
                document.Close()
            else:
                document.Close(SaveChanges=False)
            logger.debug("document_closed", path=self.path, saved=self.saved)
        except Exception as e:
            self._warn("close", e)

    def quit(self) -> None:
        """Quit the host process. Idempotent; never raises."""
        if self._quit:
            return
        self._quit = True

        host = self._host
        self._host = None
        if host is None:
            return

        try:
            host.Quit()
            logger.debug("host_quit", prog_id=self.file_type.prog_id)
        except Exception as e:
            self._warn("quit", e)
        finally:
            # Force COM reference cleanup
            del host
            gc.collect()

    def teardown(self) -> List[TeardownWarning]:
        """
        Run every teardown step in order, each one independently.

        Returns:
            Warnings recorded by this session's teardown
        """
        for step_name, step in (("close", self.close), ("quit", self.quit)):
            try:
                step()
            except Exception as e:
                self._warn(step_name, e)
        return list(self.warnings)

    def _warn(self, step: str, error: Exception) -> None:
        message, _ = com_error_details(error)
        self.warnings.append(TeardownWarning(step, message))
        logger.warning(
            "teardown_step_failed",
            step=step,
            prog_id=self.file_type.prog_id,
            error=message,
            error_type=type(error).__name__,
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.teardown()
        return False  # Propagate exceptions


# Host-side failures counted against pool health
_HOST_FAILURES = (HostLaunchFailed, DocumentOpenFailed, SaveFailed, RemovalFailed)


def _counts_as_failure(error: Exception) -> bool:
    """True for host-side failures and unexpected errors."""
    return isinstance(error, _HOST_FAILURES) or not isinstance(error, MacroMCPError)


class HostPool:
    """
    Semaphore-limited pool of automation sessions.

    Limits the number of host processes the server runs concurrently and
    guarantees teardown of every session it hands out.

    Usage:
        with host_pool.session(file_type) as session:
            session.open(path, OpenMode.READ_ONLY)
    """

    def __init__(self, pool_size: int = DEFAULT_POOL_SIZE, dispatch: Callable = dispatch_ex):
        """
        Args:
            pool_size: Maximum number of concurrent host processes (default: 3)
            dispatch: Factory creating a host from a ProgID
        """
        self.pool_size = pool_size
        self.dispatch = dispatch
        self._semaphore = threading.Semaphore(pool_size)
        self._active_sessions: List[AutomationSession] = []
        self._lock = threading.Lock()

        # Metrics
        self.total_created = 0
        self.total_failed = 0

        logger.debug("host_pool_initialized", pool_size=pool_size)

    @contextmanager
    def session(self, file_type: FileType):
        """
        Yield a new AutomationSession and tear it down on exit.

        Blocks while pool_size sessions are already active. Exceptions raised
        inside the block propagate after teardown.
        """
        self._semaphore.acquire()

        session = AutomationSession(file_type, dispatch=self.dispatch)
        with self._lock:
            self._active_sessions.append(session)
            self.total_created += 1
            active_count = len(self._active_sessions)

        logger.debug(
            "session_created",
            prog_id=file_type.prog_id,
            active_count=active_count,
            total_created=self.total_created,
        )

        try:
            yield session

        except Exception as e:
            # Refusals such as a disabled trust setting are outcomes, not host failures
            if _counts_as_failure(e):
                with self._lock:
                    self.total_failed += 1
            logger.error(
                "session_failed",
                prog_id=file_type.prog_id,
                error=str(e),
                error_type=type(e).__name__,
                total_failed=self.total_failed,
            )
            raise

        finally:
            session.teardown()
            with self._lock:
                if session in self._active_sessions:
                    self._active_sessions.remove(session)
                active_count = len(self._active_sessions)

            logger.debug("session_cleaned_up", active_count=active_count, pool_size=self.pool_size)
            self._semaphore.release()

    def close_all(self) -> int:
        """
        Emergency cleanup: tear down every active session.

        Called during server shutdown so no EXCEL.EXE, WINWORD.EXE or
        POWERPNT.EXE process is left behind.

        Returns:
            Number of sessions torn down
        """
        with self._lock:
            sessions = list(self._active_sessions)
            self._active_sessions.clear()

        if not sessions:
            logger.info("host_pool_shutdown_no_active_sessions")
            return 0

        logger.info("host_pool_shutdown_closing_sessions", count=len(sessions))
        for session in sessions:
            session.teardown()

        logger.info("host_pool_shutdown_complete", sessions_closed=len(sessions))
        return len(sessions)

    def get_metrics(self) -> Dict:
        """
        Get pool metrics for observability.

        Returns:
            Dictionary with active_count, total_created, total_failed,
            pool_size and available_slots
        """
        with self._lock:
            active_count = len(self._active_sessions)

        return {
            "active_count": active_count,
            "total_created": self.total_created,
            "total_failed": self.total_failed,
            "pool_size": self.pool_size,
            "available_slots": self.pool_size - active_count,
        }


# Module-level singleton
host_pool = HostPool()
