"""!
@brief Shared pytest configuration for macro-mcp tests.
@details Puts ``src`` on ``sys.path`` and provides fixtures that replace the
lock check, the COM host and the registry with in-memory fakes so the suite
runs on any platform.
"""

from __future__ import annotations

import pathlib
import sys

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from com_fakes import FakeHandle, MemoryTrustStore  # noqa: E402
from macro_mcp import preconditions  # noqa: E402
from macro_mcp.trust import ACCESS_VBOM_VALUE  # noqa: E402

EXCEL_SECURITY_KEY = r"Software\Microsoft\Office\16.0\Excel\Security"


@pytest.fixture
def lock_checks(monkeypatch) -> list:
    """!
    @brief Make the exclusive-open check succeed and record checked paths.
    """

    calls: list = []

    def fake_open(path):
        calls.append(path)
        return FakeHandle()

    monkeypatch.setattr(preconditions, "_open_exclusive", fake_open)
    return calls


@pytest.fixture
def locked(monkeypatch) -> None:
    """!
    @brief Make the exclusive-open check fail as if the file were open elsewhere.
    """

    def fake_open(path):
        raise PermissionError(32, "The process cannot access the file", path)

    monkeypatch.setattr(preconditions, "_open_exclusive", fake_open)


@pytest.fixture
def trusted_store() -> MemoryTrustStore:
    """!
    @brief Registry store in which Excel 16.0 already trusts VBA project access.
    """

    return MemoryTrustStore({(EXCEL_SECURITY_KEY, ACCESS_VBOM_VALUE): 1})


@pytest.fixture
def book_path(tmp_path) -> pathlib.Path:
    """!
    @brief Existing placeholder for ``Book1.xlsm``; the host never reads it.
    """

    path = tmp_path / "Book1.xlsm"
    path.write_bytes(b"PK")
    return path
