"""!
@brief End-to-end engine tests.
@details Runs ``inspect_macros`` and ``remove_macro_module`` against a fake
Excel host and an in-memory registry, checking results, saves, teardown
ordering and trust flag restoration.
"""

from __future__ import annotations

from typing import Optional

import pytest

from com_fakes import FakeComError, FakeDispatcher, MemoryTrustStore, book1

from macro_mcp import engine
from macro_mcp.engine import NO_PROJECT_ADVISORY, inspect_macros, remove_macro_module
from macro_mcp.errors import ExitStatus
from macro_mcp.file_types import ApplicationKind
from macro_mcp.inspector import ComponentKind
from macro_mcp.remover import RemovalStatus
from macro_mcp.session import HostPool
from macro_mcp.trust import ACCESS_VBOM_VALUE, RUNNING_HOST_ADVISORY

SLOT = (r"Software\Microsoft\Office\16.0\Excel\Security", ACCESS_VBOM_VALUE)


def test_scenario_a_inspect_lists_components_without_saving(book_path, lock_checks, trusted_store) -> None:
    """!
    @brief Inspection returns both components in order with exact source and saves nothing.
    """

    dispatcher, host, document = book1()
    pool = HostPool(dispatch=dispatcher)

    result = inspect_macros(str(book_path), pool=pool, trust_store=trusted_store)

    assert result.exit_status is ExitStatus.OK
    assert result.error is None
    assert result.application is ApplicationKind.SPREADSHEET
    assert result.precondition == "unlocked"
    assert result.project_present is True
    assert [(c.name, c.kind, c.line_count) for c in result.components] == [
        ("Module1", ComponentKind.STANDARD_MODULE, 12),
        ("ThisWorkbook", ComponentKind.DOCUMENT, 3),
    ]
    assert result.components[1].source_lines[0] == "Private Sub Workbook_Open()"
    assert document.save_calls == 0
    assert document.close_calls == [False]
    assert host.collection.open_calls[0]["ReadOnly"] is True
    assert host.quit_calls == 1
    assert result.trust.enabled is True
    assert result.trust.modified is False
    assert trusted_store.writes == []


def test_scenario_b_remove_standard_module_saves_once(book_path, lock_checks, trusted_store) -> None:
    dispatcher, host, document = book1()
    pool = HostPool(dispatch=dispatcher)

    result = remove_macro_module(str(book_path), "Module1", pool=pool, trust_store=trusted_store)

    assert result.exit_status is ExitStatus.OK
    assert result.outcome.status is RemovalStatus.REMOVED
    assert result.saved is True
    assert document.VBProject.VBComponents.Count == 1
    assert document.save_calls == 1
    assert document.close_calls == [False]
    assert host.collection.open_calls[0]["ReadOnly"] is False


def test_scenario_c_remove_document_module_is_protected(book_path, lock_checks, trusted_store) -> None:
    dispatcher, _, document = book1()

    result = remove_macro_module(str(book_path), "ThisWorkbook", pool=HostPool(dispatch=dispatcher), trust_store=trusted_store)

    assert result.outcome.status is RemovalStatus.PROTECTED
    assert result.exit_status is ExitStatus.MODULE_OPERATION
    assert result.saved is False
    assert document.VBProject.VBComponents.Count == 2
    assert document.save_calls == 0


def test_scenario_d_locked_file_never_launches_host(book_path, locked, trusted_store) -> None:
    """!
    @brief A locked file stops the run before any host is created.
    """

    dispatcher, _, _ = book1()

    result = inspect_macros(str(book_path), pool=HostPool(dispatch=dispatcher), trust_store=trusted_store)

    assert result.exit_status is ExitStatus.FILE_LOCKED
    assert result.error.kind == "FileLocked"
    assert result.precondition == "locked"
    assert dispatcher.calls == []


def test_missing_module_is_not_found_without_save(book_path, lock_checks, trusted_store) -> None:
    dispatcher, _, document = book1()

    result = remove_macro_module(str(book_path), "Module9", pool=HostPool(dispatch=dispatcher), trust_store=trusted_store)

    assert result.outcome.status is RemovalStatus.NOT_FOUND
    assert result.exit_status is ExitStatus.MODULE_OPERATION
    assert document.VBProject.VBComponents.Count == 2
    assert document.save_calls == 0


def test_unsupported_type_never_checks_lock_or_launches(tmp_path, lock_checks, trusted_store) -> None:
    target = tmp_path / "Book1.xlsx"
    target.write_bytes(b"PK")
    dispatcher, _, _ = book1()

    result = inspect_macros(str(target), pool=HostPool(dispatch=dispatcher), trust_store=trusted_store)

    assert result.exit_status is ExitStatus.UNSUPPORTED_FILE_TYPE
    assert result.precondition == "not_checked"
    assert lock_checks == []
    assert dispatcher.calls == []


def test_missing_file_is_invalid_input(tmp_path, lock_checks, trusted_store) -> None:
    dispatcher, _, _ = book1()

    result = inspect_macros(str(tmp_path / "Gone.xlsm"), pool=HostPool(dispatch=dispatcher), trust_store=trusted_store)

    assert result.exit_status is ExitStatus.INVALID_INPUT
    assert dispatcher.calls == []


def test_auto_enable_round_trips_trust_flag(book_path, lock_checks) -> None:
    """!
    @brief disabled -> enabled for the run -> disabled again after quit.
    """

    store = MemoryTrustStore({SLOT: 0})
    dispatcher, host, _ = book1()

    result = inspect_macros(str(book_path), auto_enable_trust=True, pool=HostPool(dispatch=dispatcher), trust_store=store)

    assert result.exit_status is ExitStatus.OK
    assert store.values[SLOT] == 0
    assert [value for _, _, value in store.writes] == [1, 0]
    assert result.trust.modified is True
    assert result.trust.reverted is True
    assert result.trust.verified is True
    assert RUNNING_HOST_ADVISORY in result.advisories


def test_auto_enable_deletes_value_it_created(book_path, lock_checks) -> None:
    store = MemoryTrustStore()
    dispatcher, _, _ = book1()

    result = inspect_macros(str(book_path), auto_enable_trust=True, pool=HostPool(dispatch=dispatcher), trust_store=store)

    assert result.ok
    assert SLOT not in store.values
    assert store.deletes == [SLOT]


def test_trust_revert_happens_after_host_quit(book_path, lock_checks) -> None:
    events = []
    store = MemoryTrustStore({SLOT: 0})
    dispatcher, host, _ = book1()

    original_quit = host.Quit
    original_write = store.write

    def quit_host():
        events.append("quit")
        original_quit()

    def write(key_path, name, value):
        events.append(f"write:{value}")
        original_write(key_path, name, value)

    host.Quit = quit_host
    store.write = write

    inspect_macros(str(book_path), auto_enable_trust=True, pool=HostPool(dispatch=dispatcher), trust_store=store)

    assert events == ["write:1", "quit", "write:0"]


def test_trust_required_fails_but_still_tears_down(book_path, lock_checks) -> None:
    store = MemoryTrustStore({SLOT: 0})
    dispatcher, host, document = book1()

    result = inspect_macros(str(book_path), pool=HostPool(dispatch=dispatcher), trust_store=store)

    assert result.exit_status is ExitStatus.TRUST_SETTING
    assert result.error.kind == "TrustSettingRequired"
    assert result.components == []
    assert document.close_calls == [False]
    assert host.quit_calls == 1
    assert store.writes == []


def test_removal_never_auto_enables_trust(book_path, lock_checks) -> None:
    store = MemoryTrustStore({SLOT: 0})
    dispatcher, _, document = book1()

    result = remove_macro_module(str(book_path), "Module1", pool=HostPool(dispatch=dispatcher), trust_store=store)

    assert result.exit_status is ExitStatus.TRUST_SETTING
    assert document.VBProject.VBComponents.Count == 2
    assert store.writes == []


def test_save_failure_keeps_first_error_and_collects_teardown_advisories(book_path, lock_checks) -> None:
    """!
    @brief Teardown advisories are appended after the fatal error and never replace it.
    """

    store = MemoryTrustStore({SLOT: 1})
    dispatcher, host, document = book1(
        save_error=FakeComError(-2147352567, "Disk full"),
        close_error=FakeComError(-2147417848, "Object disconnected"),
    )

    result = remove_macro_module(str(book_path), "Module1", pool=HostPool(dispatch=dispatcher), trust_store=store)

    assert result.error.kind == "SaveFailed"
    assert result.exit_status is ExitStatus.MODULE_OPERATION
    assert result.saved is False
    assert document.save_calls == 1
    assert host.quit_calls == 1
    assert result.advisories == ["close: Object disconnected"]


def test_document_open_failure_after_lock_check(book_path, lock_checks, trusted_store) -> None:
    dispatcher, host, _ = book1()
    host.collection.open_error = FakeComError(-2147352567, "Exception occurred.", "in use", scode=-2147024864)

    result = inspect_macros(str(book_path), pool=HostPool(dispatch=dispatcher), trust_store=trusted_store)

    assert result.exit_status is ExitStatus.HOST_OR_DOCUMENT_OPEN
    assert result.error.kind == "DocumentOpenFailed"
    assert "opened by another process" in result.error.message
    assert host.quit_calls == 1
    assert result.trust.checked is False


def test_host_launch_failure(book_path, lock_checks, trusted_store) -> None:
    pool = HostPool(dispatch=FakeDispatcher(error=FakeComError(-2147221005, "Invalid class string")))

    result = inspect_macros(str(book_path), pool=pool, trust_store=trusted_store)

    assert result.exit_status is ExitStatus.HOST_OR_DOCUMENT_OPEN
    assert result.error.kind == "HostLaunchFailed"
    assert pool.get_metrics()["total_failed"] == 1


def test_inaccessible_project_is_successful_empty_result(book_path, lock_checks, trusted_store) -> None:
    dispatcher, _, _ = book1(project_error=FakeComError(-2147352567, "Programmatic access is not trusted"))

    result = inspect_macros(str(book_path), pool=HostPool(dispatch=dispatcher), trust_store=trusted_store)

    assert result.exit_status is ExitStatus.OK
    assert result.project_present is False
    assert result.components == []
    assert any("password-protected" in advisory for advisory in result.advisories)


def test_workbook_without_project(book_path, lock_checks, trusted_store) -> None:
    dispatcher, _, _ = book1(has_project=False)

    inspection = inspect_macros(str(book_path), pool=HostPool(dispatch=dispatcher), trust_store=trusted_store)
    removal = remove_macro_module(str(book_path), "Module1", pool=HostPool(dispatch=book1(has_project=False)[0]), trust_store=trusted_store)

    assert inspection.ok
    assert inspection.advisories == [NO_PROJECT_ADVISORY]
    assert removal.outcome.status is RemovalStatus.NO_PROJECT
    assert removal.exit_status is ExitStatus.MODULE_OPERATION


def test_unexpected_error_is_reported_and_torn_down(book_path, lock_checks, trusted_store) -> None:
    dispatcher, host, document = book1()
    document.VBProject.VBComponents = None  # iterating None raises TypeError

    result = inspect_macros(str(book_path), pool=HostPool(dispatch=dispatcher), trust_store=trusted_store)

    assert result.exit_status is ExitStatus.UNEXPECTED
    assert result.error.kind == "TypeError"
    assert host.quit_calls == 1


@pytest.mark.parametrize("auto_enable", [False, True])
def test_inspection_never_saves(book_path, lock_checks, auto_enable) -> None:
    store = MemoryTrustStore({SLOT: 0})
    dispatcher, _, document = book1()

    inspect_macros(str(book_path), auto_enable_trust=auto_enable, pool=HostPool(dispatch=dispatcher), trust_store=store)

    assert document.save_calls == 0


def test_removal_failure_is_module_error_and_still_tears_down(book_path, lock_checks, trusted_store) -> None:
    """!
    @brief A rejected ``VBComponents.Remove`` is reported, nothing is saved and the host still quits.
    """

    dispatcher, host, document = book1(remove_error=FakeComError(-2147352567, "Permission denied"))
    pool = HostPool(dispatch=dispatcher)

    result = remove_macro_module(str(book_path), "Module1", pool=pool, trust_store=trusted_store)

    assert result.error.kind == "RemovalFailed"
    assert result.exit_status is ExitStatus.MODULE_OPERATION
    assert "Permission denied" in result.error.message
    assert result.saved is False
    assert document.save_calls == 0
    assert document.close_calls == [False]
    assert host.quit_calls == 1
    assert pool.get_metrics()["total_failed"] == 1


def test_trust_revert_failure_is_advisory_only(book_path, lock_checks) -> None:
    store = MemoryTrustStore({SLOT: 0}, revert_error=PermissionError(5, "Access is denied"))
    dispatcher, host, _ = book1()

    result = inspect_macros(str(book_path), auto_enable_trust=True, pool=HostPool(dispatch=dispatcher), trust_store=store)

    assert result.exit_status is ExitStatus.OK
    assert len(result.components) == 2
    assert any("Could not restore AccessVBOM" in advisory for advisory in result.advisories)
    assert result.trust.modified is True
    assert result.trust.reverted is False
    assert store.values[SLOT] == 1
    assert host.quit_calls == 1


def test_trust_flag_rewritten_by_host_is_advisory_only(book_path, lock_checks) -> None:
    """!
    @brief A host that puts the flag back on after the restore changes advisories, not the exit status.
    """

    store = MemoryTrustStore({SLOT: 0})
    original_write = store.write

    def write_then_host_rewrites(key_path, name, value):
        original_write(key_path, name, value)
        store.values[(key_path, name)] = 1

    store.write = write_then_host_rewrites
    dispatcher, _, _ = book1()

    result = inspect_macros(str(book_path), auto_enable_trust=True, pool=HostPool(dispatch=dispatcher), trust_store=store)

    assert result.exit_status is ExitStatus.OK
    assert result.trust.reverted is True
    assert result.trust.verified is False
    assert any("is 1 after restore (expected 0)" in advisory for advisory in result.advisories)


def test_unreadable_trust_flag_is_trust_setting_failure(book_path, lock_checks) -> None:
    store = MemoryTrustStore(read_error=PermissionError(5, "Access is denied"))
    dispatcher, host, document = book1()
    pool = HostPool(dispatch=dispatcher)

    result = inspect_macros(str(book_path), pool=pool, trust_store=store)

    assert result.exit_status is ExitStatus.TRUST_SETTING
    assert result.error.kind == "TrustSettingReadFailed"
    assert result.trust.checked is False
    assert result.components == []
    assert document.close_calls == [False]
    assert host.quit_calls == 1
    assert pool.get_metrics()["total_failed"] == 0


class RecordingLogger:
    """!
    @brief Stand-in for a structlog bound logger that keeps every event with its context.
    """

    def __init__(self, events: list, context: Optional[dict] = None) -> None:
        self.events = events
        self.context = dict(context or {})

    def bind(self, **values) -> "RecordingLogger":
        return RecordingLogger(self.events, {**self.context, **values})

    def _record(self, event: str, **values) -> None:
        self.events.append((event, {**self.context, **values}))

    debug = info = warning = error = exception = _record


def test_run_events_carry_operation_path_and_application(monkeypatch, book_path, lock_checks, trusted_store) -> None:
    events: list = []
    monkeypatch.setattr(
        engine,
        "get_run_logger",
        lambda name, operation, path: RecordingLogger(events, {"operation": operation, "path": path}),
    )
    dispatcher, _, _ = book1()

    result = remove_macro_module(str(book_path), "Module9", pool=HostPool(dispatch=dispatcher), trust_store=trusted_store)

    event, context = events[-1]
    assert event == "run_finished"
    assert context["operation"] == "remove"
    assert context["path"] == result.path
    assert context["application"] == "spreadsheet"
    assert context["exit_status"] == int(ExitStatus.MODULE_OPERATION)
