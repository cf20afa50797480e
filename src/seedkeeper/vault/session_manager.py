# Seedkeeper - Session Manager
#
# In-memory authentication state machine:
#
#   LOGGED_OUT ──unlock/set_session──▶ AUTHENTICATED ──logout/inactivity──▶ LOGGED_OUT
#                                           │
#                                      expires_at passes
#                                           ▼
#                                        EXPIRED ──poll()──▶ LOGGED_OUT
#
# Two independent timers, both plain deadline comparisons against an
# injectable clock:
#   - inactivity: fixed window (default 15 min), reset by record_activity()
#   - session expiry: established_at + timeout_minutes, or 100 years for -1
#
# The unlocked mnemonic only ever lives on the Session object owned by this
# manager. Logout drops the reference before touching the store.

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ..core import EventSeverity, EventType, get_audit_logger
from ..core.config import DEFAULT_INACTIVITY_MINUTES, DEFAULT_LOGOUT_MINUTES
from ..errors import IncorrectPasscode, InvalidMnemonic, NoWalletRecord
from .mnemonic import derive_address, is_mnemonic_valid, normalize_mnemonic
from .session_store import PersistedSessionStore
from .wallet_records import (
    NEVER_EXPIRE,
    WalletRecordManager,
    decrypt_mnemonic,
    validate_timeout_minutes,
)

logger = logging.getLogger(__name__)

FOREVER_SECONDS = 100 * 365 * 24 * 60 * 60


class SessionState(str, Enum):
    LOGGED_OUT = "logged_out"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"


@dataclass
class Session:
    """An authenticated session. Times are epoch seconds."""
    mnemonic: str
    address: str
    established_at: float
    expires_at: float
    timeout_minutes: int

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def __repr__(self) -> str:
        return (
            f"Session(address={self.address!r}, established_at={self.established_at}, "
            f"expires_at={self.expires_at}, timeout_minutes={self.timeout_minutes})"
        )


def compute_expiry(established_at: float, timeout_minutes: int) -> float:
    """Absolute expiry for a timeout preference (-1 means 100 years)."""
    if timeout_minutes == NEVER_EXPIRE:
        return established_at + FOREVER_SECONDS
    return established_at + timeout_minutes * 60


class SessionManager:
    """
    Owns the single in-memory session of a running vault.

    Args:
        wallet_records: Wallet record access (passcode check, preference)
        persisted: Remembered-session storage
        inactivity_minutes: Idle window before automatic logout
        default_timeout_minutes: Expiry used when no wallet preference exists
        clock: Returns the current epoch time in seconds
        address_deriver: mnemonic → account address
    """

    def __init__(
        self,
        wallet_records: WalletRecordManager,
        persisted: PersistedSessionStore,
        inactivity_minutes: int = DEFAULT_INACTIVITY_MINUTES,
        default_timeout_minutes: int = DEFAULT_LOGOUT_MINUTES,
        clock: Callable[[], float] = time.time,
        address_deriver: Callable[[str], str] = derive_address,
    ):
        self.wallet_records = wallet_records
        self.persisted = persisted
        self.inactivity_seconds = inactivity_minutes * 60
        self.default_timeout_minutes = default_timeout_minutes
        self.clock = clock
        self.address_deriver = address_deriver

        self._lock = threading.RLock()
        self._session: Optional[Session] = None
        self._last_activity: Optional[float] = None
        self.audit = get_audit_logger()

    # ── State ────────────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        """Current state. An idle session is logged out on the spot."""
        with self._lock:
            if self._session is None:
                return SessionState.LOGGED_OUT
            now = self.clock()
            if self._session.is_expired(now):
                return SessionState.EXPIRED
            if self._is_idle(now):
                self._logout_idle()
                return SessionState.LOGGED_OUT
            return SessionState.AUTHENTICATED

    @property
    def current(self) -> Optional[Session]:
        """The live session; an expired or idle one is cleared and None returned."""
        with self._lock:
            if self._session is not None:
                now = self.clock()
                if self._session.is_expired(now):
                    self._expire()
                elif self._is_idle(now):
                    self._logout_idle()
            return self._session

    def _is_idle(self, now: float) -> bool:
        return (
            self._last_activity is not None
            and now - self._last_activity >= self.inactivity_seconds
        )

    @property
    def address(self) -> Optional[str]:
        session = self.current
        return session.address if session else None

    # ── Establishing a session ───────────────────────────────────────

    def _build(self, mnemonic: str, timeout_minutes: int, expires_at: Optional[float] = None) -> Session:
        now = self.clock()
        return Session(
            mnemonic=mnemonic,
            address=self.address_deriver(mnemonic),
            established_at=now,
            expires_at=expires_at if expires_at is not None else compute_expiry(now, timeout_minutes),
            timeout_minutes=timeout_minutes,
        )

    def _activate(self, session: Session) -> None:
        with self._lock:
            self._session = session
            self._last_activity = session.established_at

    def _remember(self, session: Session, remember: bool) -> None:
        if remember:
            self.persisted.save_session(
                session.mnemonic,
                int(session.expires_at * 1000),
                session.timeout_minutes,
            )
        else:
            self.persisted.clear_session()

    def _preferred_timeout(self, timeout_minutes: Optional[int]) -> int:
        if timeout_minutes is not None:
            return validate_timeout_minutes(timeout_minutes)
        record = self.wallet_records.get_wallet_record()
        if record is not None:
            return record.logout_time_preference
        return self.default_timeout_minutes

    def unlock(
        self,
        passcode: str,
        remember: bool = False,
        timeout_minutes: Optional[int] = None,
    ) -> Session:
        """
        Unlock the wallet with the user's passcode.

        The current session is replaced only after every check passes; a
        failed unlock leaves it untouched.

        Raises:
            NoWalletRecord: no wallet exists
            IncorrectPasscode: verifier mismatch, or the mnemonic did not
                decrypt to a valid phrase
        """
        try:
            record = self.wallet_records.verify_passcode(passcode)
            mnemonic = decrypt_mnemonic(record, passcode)
        except (NoWalletRecord, IncorrectPasscode) as exc:
            self.audit.log_event(
                EventType.SESSION_UNLOCK_FAILED,
                EventSeverity.INVESTIGATE,
                f"Unlock rejected: {exc.message}",
                details={"reason": exc.code.value},
            )
            raise

        timeout = (
            validate_timeout_minutes(timeout_minutes)
            if timeout_minutes is not None
            else record.logout_time_preference
        )
        session = self._build(normalize_mnemonic(mnemonic), timeout)
        self._remember(session, remember)
        self._activate(session)

        self.audit.log_vault_event(
            EventType.SESSION_UNLOCKED,
            "wallet unlocked",
            details={"address": session.address, "remember": remember,
                     "timeout_minutes": timeout},
        )
        return session

    def set_session(
        self,
        mnemonic: str,
        timeout_minutes: Optional[int] = None,
        remember: bool = False,
    ) -> Session:
        """
        Establish a session from an already-known mnemonic (signup, restore).

        Raises:
            InvalidMnemonic: phrase fails BIP39 validation
        """
        if not is_mnemonic_valid(mnemonic):
            raise InvalidMnemonic()

        timeout = self._preferred_timeout(timeout_minutes)
        session = self._build(normalize_mnemonic(mnemonic), timeout)
        self._remember(session, remember)
        self._activate(session)

        self.audit.log_vault_event(
            EventType.SESSION_ESTABLISHED,
            "session established",
            details={"address": session.address, "remember": remember,
                     "timeout_minutes": timeout},
        )
        return session

    def restore_persisted(self) -> Optional[Session]:
        """
        Re-establish a remembered session at launch, without a passcode.

        Returns:
            The restored Session, or None (no record, expired, or invalid)
        """
        with self._lock:
            if self.current is not None:
                return self._session

        record = self.persisted.get_session()
        if record is None:
            return None

        now_ms = int(self.clock() * 1000)
        if now_ms >= record.expiry_timestamp or not is_mnemonic_valid(record.mnemonic):
            logger.info("Persisted session is expired or invalid; clearing it")
            self.persisted.clear_session()
            return None

        session = self._build(
            record.mnemonic,
            record.timeout_minutes,
            expires_at=record.expiry_timestamp / 1000,
        )
        self._activate(session)

        self.audit.log_vault_event(
            EventType.SESSION_RESTORED,
            "remembered session restored",
            details={"address": session.address},
        )
        return session

    # ── Ending a session ─────────────────────────────────────────────

    def _clear_memory(self) -> Optional[Session]:
        with self._lock:
            session, self._session = self._session, None
            self._last_activity = None
            return session

    def _expire(self) -> None:
        session = self._clear_memory()
        if session is not None:
            self.audit.log_vault_event(
                EventType.SESSION_EXPIRED,
                "session expired",
                details={"address": session.address, "reason": "expiry"},
            )

    def _logout_idle(self) -> None:
        session = self._clear_memory()
        if session is not None:
            self.audit.log_vault_event(
                EventType.SESSION_EXPIRED,
                "logged out after inactivity",
                details={"address": session.address, "reason": "inactivity"},
            )

    def logout(self) -> None:
        """
        End the session. Always succeeds in memory.

        In-memory material is cleared first; the remembered session secret
        and the stored sync API auth are cleared after (the timeout
        preference is kept).
        """
        session = self._clear_memory()
        self.audit.log_vault_event(
            EventType.SESSION_LOGOUT,
            "logged out",
            details={"address": session.address if session else None},
        )
        self.persisted.clear_session(api_auth=True)

    def record_activity(self) -> None:
        """Reset the inactivity window (user input seen).

        A session already past its inactivity window is not revived.
        """
        with self._lock:
            if self.current is not None:
                self._last_activity = self.clock()

    def poll(self) -> SessionState:
        """
        Check both timers. Call periodically.

        Inactivity logout clears in-memory state only; a remembered session
        remains restorable.
        """
        with self._lock:
            if self._session is None:
                return SessionState.LOGGED_OUT
            now = self.clock()
            if self._session.is_expired(now):
                self._expire()
            elif self._is_idle(now):
                self._logout_idle()
            return self.state

    # ── Preferences ──────────────────────────────────────────────────

    def update_session_timeout(self, minutes: int) -> Optional[Session]:
        """
        Change the logout time preference.

        Stores it on the wallet, restarts the in-memory expiry from now, and
        rewrites only the persisted expiry and preference.

        Returns:
            The updated live session, or None if logged out
        """
        validate_timeout_minutes(minutes)
        self.wallet_records.set_logout_time_preference(minutes)

        with self._lock:
            session = self.current
            if session is not None:
                session.timeout_minutes = minutes
                session.expires_at = compute_expiry(self.clock(), minutes)
                expiry_ms = int(session.expires_at * 1000)
            else:
                expiry_ms = None
        self.persisted.update_expiry(expiry_ms, minutes)

        self.audit.log_vault_event(
            EventType.SESSION_TIMEOUT_CHANGED,
            "session timeout changed",
            details={"timeout_minutes": minutes},
        )
        return session
