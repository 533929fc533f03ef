"""
Engine entry points and outcome reporting for macro-mcp.

inspect_macros() and remove_macro_module() run the whole flow for one
document and always return a result object; they never raise:

    resolve type -> lock check -> open -> trust check -> inspect | remove
    -> close -> quit -> restore trust flag -> result

The first fatal error is kept in result.error. Teardown and trust advisories
collected afterwards go to result.advisories and never replace it.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from .errors import ExitStatus, FileLocked, MacroMCPError, ProjectAccessFailed
from .file_types import ApplicationKind, FileType, resolve_file_type
from .inspector import MacroComponent, iter_components, open_project
from .logging_config import get_run_logger
from .preconditions import ensure_not_locked
from .remover import RemovalOutcome, remove_module
from .session import HostPool, OpenMode, host_pool
from .trust import TrustTransaction

NO_PROJECT_ADVISORY = "Document has no VBA project"


@dataclass
class ErrorReport:
    kind: str
    message: str
    exit_status: ExitStatus


@dataclass
class TrustOutcome:
    """What the run observed and did to the trust flag."""

    checked: bool = False
    enabled: bool = False
    modified: bool = False
    reverted: bool = False
    verified: Optional[bool] = None


@dataclass
class RunResult:
    path: str
    application: Optional[ApplicationKind] = None
    precondition: str = "not_checked"
    trust: TrustOutcome = field(default_factory=TrustOutcome)
    error: Optional[ErrorReport] = None
    advisories: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.exit_status is ExitStatus.OK

    @property
    def exit_status(self) -> ExitStatus:
        if self.error is not None:
            return self.error.exit_status
        return ExitStatus.OK

    def fail(self, kind: str, message: str, exit_status: ExitStatus) -> None:
        """Record a fatal error unless an earlier one is already recorded."""
        if self.error is None:
            self.error = ErrorReport(kind, message, exit_status)


@dataclass
class InspectionResult(RunResult):
    project_present: bool = False
    components: List[MacroComponent] = field(default_factory=list)


@dataclass
class RemovalResult(RunResult):
    module_name: str = ""
    outcome: Optional[RemovalOutcome] = None
    saved: bool = False

    @property
    def exit_status(self) -> ExitStatus:
        if self.error is not None:
            return self.error.exit_status
        if self.outcome is not None and self.outcome.removed and self.saved:
            return ExitStatus.OK
        return ExitStatus.MODULE_OPERATION


def _run(
    result: RunResult,
    operation: str,
    mode: OpenMode,
    auto_enable_trust: bool,
    work: Callable,
    pool: HostPool,
    trust_store,
) -> None:
    """Run one operation under a session, trust transaction and teardown chain.

    work(session, document, file_type) performs the operation on the open
    document and records its findings on result.
    """
    log = get_run_logger(__name__, operation, result.path)
    transaction: Optional[TrustTransaction] = None

    try:
        file_type = resolve_file_type(result.path)
        result.application = file_type.kind
        log = log.bind(application=file_type.kind.value)

        try:
            ensure_not_locked(result.path)
        except FileLocked:
            result.precondition = "locked"
            raise
        result.precondition = "unlocked"

        with pool.session(file_type) as session:
            try:
                document = session.open(result.path, mode)

                transaction = TrustTransaction(file_type, session.host_version, trust_store)
                transaction.capture()
                result.trust.checked = True
                result.advisories.extend(transaction.ensure(auto_enable_trust))

                work(session, document, file_type)
            finally:
                result.advisories.extend(str(warning) for warning in session.teardown())

    except MacroMCPError as e:
        log.error("run_failed", error_kind=e.kind, error=str(e))
        result.fail(e.kind, str(e), e.exit_status)
    except Exception as e:
        log.exception("run_failed_unexpectedly", error_type=type(e).__name__)
        result.fail(type(e).__name__, str(e), ExitStatus.UNEXPECTED)

    finally:
        if transaction is not None:
            result.advisories.extend(transaction.revert())
            result.trust.enabled = transaction.state.currently_enabled or transaction.state.modified_by_run
            result.trust.modified = transaction.state.modified_by_run
            result.trust.reverted = transaction.reverted
            result.trust.verified = transaction.verified

    log.info(
        "run_finished",
        exit_status=int(result.exit_status),
        advisories=len(result.advisories),
    )


def inspect_macros(
    path: str,
    auto_enable_trust: bool = False,
    *,
    pool: HostPool = host_pool,
    trust_store=None,
) -> InspectionResult:
    """
    List every component of a document's VBA project with its source.

    The document is opened read-only and never saved.

    Args:
        path: Document path (.xlsm, .xltm, .docm, .dotm, .pptm, .ppsm)
        auto_enable_trust: Enable VBA project access for the run if it is off;
            the original setting is restored afterwards
        pool: Host pool to run the session in
        trust_store: Registry store override (default: HKCU registry)

    Returns:
        InspectionResult
    """
    result = InspectionResult(path=str(Path(path).resolve()))

    def inspect(session, document, file_type: FileType) -> None:
        try:
            project = open_project(document, file_type.kind)
        except ProjectAccessFailed as e:
            result.advisories.append(str(e))
            return
        if project is None:
            result.advisories.append(NO_PROJECT_ADVISORY)
            return

        result.project_present = True
        result.components = list(iter_components(project))

    _run(result, "inspect", OpenMode.READ_ONLY, auto_enable_trust, inspect, pool, trust_store)
    return result


def remove_macro_module(
    path: str,
    module_name: str,
    *,
    pool: HostPool = host_pool,
    trust_store=None,
) -> RemovalResult:
    """
    Remove a standard, class or form module from a document and save it.

    VBA project access must already be enabled; this operation never changes
    the trust setting. Document modules are reported as protected.

    Args:
        path: Document path
        module_name: Exact module name
        pool: Host pool to run the session in
        trust_store: Registry store override (default: HKCU registry)

    Returns:
        RemovalResult (exit status OK only when the module was removed and saved)
    """
    result = RemovalResult(path=str(Path(path).resolve()), module_name=module_name)

    def remove(session, document, file_type: FileType) -> None:
        try:
            project = open_project(document, file_type.kind)
        except ProjectAccessFailed as e:
            result.advisories.append(str(e))
            project = None
        if project is None:
            result.outcome = RemovalOutcome.no_project(module_name)
            return

        result.outcome = remove_module(project, module_name)
        if result.outcome.removed:
            session.save()
            result.saved = True

    _run(result, "remove", OpenMode.READ_WRITE, False, remove, pool, trust_store)
    return result
