"""
Trust-setting transaction for VBA project access.

Office only exposes a document's VBProject to automation when the per-user
"Trust access to the VBA project object model" option is on. The option is
the AccessVBOM DWORD under
HKCU\\Software\\Microsoft\\Office\\<version>\\<application>\\Security.

TrustTransaction captures the value before a run, switches it on when the
caller allows it, and puts back exactly what it found during teardown:

    NEW -> CAPTURED -> DECIDED -> ENABLED | SKIPPED -> REVERTED

Only an ENABLED transaction writes during revert. Revert and the verifying
read-back never raise; problems become advisories.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from .errors import TrustSettingReadFailed, TrustSettingRequired, TrustSettingWriteFailed
from .file_types import FileType
from .logging_config import get_logger

try:  # pragma: no cover - exercised through fakes on non-Windows platforms.
    import winreg
except ImportError:  # pragma: no cover - handled gracefully during tests.
    winreg = None  # type: ignore[assignment]

logger = get_logger(__name__)

SECURITY_KEY_TEMPLATE = r"Software\Microsoft\Office\{version}\{application}\Security"
ACCESS_VBOM_VALUE = "AccessVBOM"
ENABLED_VALUE = 1

RUNNING_HOST_ADVISORY = (
    "VBA project access was enabled for this run; a host instance that was "
    "already running may not see the change until it restarts"
)


def security_key_path(file_type: FileType, version: str) -> str:
    """Registry path (below HKCU) of the application's Security key."""
    return SECURITY_KEY_TEMPLATE.format(version=version, application=file_type.registry_app)


def _ensure_winreg() -> None:
    if winreg is None:  # pragma: no cover - simplifies non-Windows test runs.
        raise FileNotFoundError("Windows registry APIs are unavailable on this platform")


class RegistryTrustStore:
    """Read, write and delete DWORD values under HKEY_CURRENT_USER."""

    def read(self, key_path: str, name: str) -> Optional[int]:
        """Return the value, or None when the key or value is absent."""
        _ensure_winreg()
        try:
            with winreg.OpenKey(winreg.HKEY_CURRENT_USER, key_path, 0, winreg.KEY_READ) as handle:
                value, _ = winreg.QueryValueEx(handle, name)
        except FileNotFoundError:
            return None
        return int(value)

    def write(self, key_path: str, name: str, value: int) -> None:
        _ensure_winreg()
        with winreg.CreateKeyEx(winreg.HKEY_CURRENT_USER, key_path, 0, winreg.KEY_SET_VALUE) as handle:
            winreg.SetValueEx(handle, name, 0, winreg.REG_DWORD, int(value))

    def delete(self, key_path: str, name: str) -> None:
        _ensure_winreg()
        with winreg.OpenKey(winreg.HKEY_CURRENT_USER, key_path, 0, winreg.KEY_SET_VALUE) as handle:
            winreg.DeleteValue(handle, name)


class TrustPhase(Enum):
    NEW = "new"
    CAPTURED = "captured"
    DECIDED = "decided"
    ENABLED = "enabled"
    SKIPPED = "skipped"
    REVERTED = "reverted"


@dataclass
class TrustFlagState:
    """Trust flag as observed and changed by one run."""

    existed_before_run: bool = False
    captured_value: int = 0
    currently_enabled: bool = False
    modified_by_run: bool = False


class TrustTransaction:
    """
    Guarded mutation of the AccessVBOM flag for one application version.

    Usage:
        transaction = TrustTransaction(file_type, session.host_version, store)
        transaction.capture()
        advisories = transaction.ensure(auto_enable=True)
        ...
        advisories += transaction.revert()   # after the host has quit
    """

    def __init__(self, file_type: FileType, version: str, store=None):
        self.file_type = file_type
        self.version = version
        self.store = store if store is not None else RegistryTrustStore()
        self.key_path = security_key_path(file_type, version)
        self.state = TrustFlagState()
        self.phase = TrustPhase.NEW
        self.reverted = False
        self.verified: Optional[bool] = None

    def _read(self) -> Optional[int]:
        return self.store.read(self.key_path, ACCESS_VBOM_VALUE)

    def capture(self) -> TrustFlagState:
        """
        Read the current flag value; an absent value counts as disabled.

        Raises:
            TrustSettingReadFailed: If the registry could not be read
        """
        if self.phase is not TrustPhase.NEW:
            raise RuntimeError(f"Trust flag already captured (phase: {self.phase.value})")

        try:
            value = self._read()
        except OSError as e:
            logger.error("trust_flag_read_failed", key=self.key_path, error=str(e))
            raise TrustSettingReadFailed(self.key_path, str(e)) from e
        self.state.existed_before_run = value is not None
        self.state.captured_value = value if value is not None else 0
        self.state.currently_enabled = bool(self.state.captured_value)
        self.phase = TrustPhase.CAPTURED

        logger.info(
            "trust_flag_captured",
            key=self.key_path,
            existed=self.state.existed_before_run,
            value=self.state.captured_value,
        )
        return self.state

    def ensure(self, auto_enable: bool = False) -> List[str]:
        """
        Make sure VBA project access is enabled.

        Args:
            auto_enable: Write the flag when it is disabled

        Returns:
            Advisories for the caller (empty when nothing changed)

        Raises:
            TrustSettingRequired: If disabled and auto_enable is False
            TrustSettingWriteFailed: If the flag could not be written
        """
        if self.phase is not TrustPhase.CAPTURED:
            raise RuntimeError(f"Trust flag must be captured first (phase: {self.phase.value})")
        self.phase = TrustPhase.DECIDED

        if self.state.currently_enabled:
            self.phase = TrustPhase.SKIPPED
            logger.debug("trust_flag_already_enabled", key=self.key_path)
            return []

        if not auto_enable:
            logger.warning("trust_flag_disabled", key=self.key_path)
            raise TrustSettingRequired(self.file_type.registry_app, self.version)

        try:
            self.store.write(self.key_path, ACCESS_VBOM_VALUE, ENABLED_VALUE)
        except OSError as e:
            logger.error("trust_flag_write_failed", key=self.key_path, error=str(e))
            raise TrustSettingWriteFailed(self.key_path, str(e)) from e

        self.state.currently_enabled = True
        self.state.modified_by_run = True
        self.phase = TrustPhase.ENABLED
        logger.info("trust_flag_enabled", key=self.key_path)
        logger.info("trust_flag_running_host_advisory", key=self.key_path)
        return [RUNNING_HOST_ADVISORY]

    def revert(self) -> List[str]:
        """
        Restore the flag captured before the run. Never raises.

        Runs only for an ENABLED transaction and only once. The flag is
        re-read afterwards and any mismatch is returned as an advisory.

        Returns:
            Advisories (revert failure, verification mismatch)
        """
        if self.phase is not TrustPhase.ENABLED:
            return []
        self.phase = TrustPhase.REVERTED

        advisories: List[str] = []
        try:
            if self.state.existed_before_run:
                self.store.write(self.key_path, ACCESS_VBOM_VALUE, self.state.captured_value)
            else:
                self.store.delete(self.key_path, ACCESS_VBOM_VALUE)
        except Exception as e:
            logger.warning("trust_flag_revert_failed", key=self.key_path, error=str(e))
            advisories.append(
                f"Could not restore {ACCESS_VBOM_VALUE} at HKCU\\{self.key_path}: {e}. "
                f"Restore it manually in the Trust Center."
            )
            return advisories

        self.reverted = True
        self.state.currently_enabled = bool(self.state.captured_value)
        logger.info("trust_flag_reverted", key=self.key_path, existed=self.state.existed_before_run)

        mismatch = self.verify()
        if mismatch:
            advisories.append(mismatch)
        return advisories

    def verify(self) -> Optional[str]:
        """
        Re-read the flag and compare it with the state captured before the run.

        Returns:
            Advisory message on mismatch, None when the flag is as expected
        """
        expected = self.state.captured_value if self.state.existed_before_run else None
        try:
            actual = self._read()
        except Exception as e:
            self.verified = False
            logger.warning("trust_flag_verify_failed", key=self.key_path, error=str(e))
            return f"Could not verify {ACCESS_VBOM_VALUE} after restoring it: {e}"

        self.verified = actual == expected
        if self.verified:
            return None

        logger.warning("trust_flag_verify_mismatch", key=self.key_path, expected=expected, actual=actual)
        shown_expected = "absent" if expected is None else expected
        shown_actual = "absent" if actual is None else actual
        return (
            f"{ACCESS_VBOM_VALUE} at HKCU\\{self.key_path} is {shown_actual} after restore "
            f"(expected {shown_expected}); the host may have rewritten it on shutdown"
        )
