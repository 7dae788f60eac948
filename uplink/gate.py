"""
Access Gate
===========

Session-scoped maintenance gate in front of the content load sequence.

STATE MACHINE:
==============
CLOSED --(gate disabled | override | unlocked this session)--> OPEN
CLOSED --(gate enabled, locked)--> AWAITING_INPUT
AWAITING_INPUT --(hash match)--> OPEN
AWAITING_INPUT --(missing | mismatch | secure context)--> AWAITING_INPUT

The entered passphrase is hashed and compared to the configured hash. The
plaintext is never stored or compared.
"""

from __future__ import annotations
from typing import Any, Callable, List, Mapping, Optional
import hashlib
import hmac
import logging
from urllib.parse import urlsplit

from .contracts import GateAttempt, GateSession, GateState, Location
from .errors import SecureContextError
from .events import EventBus
from .storage import KeyedPersistentStore

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = 'Wartungsmodus aktiv. Bitte später erneut versuchen.'
OVERRIDE_PARAM = 'maintenance'
OVERRIDE_VALUE = 'off'

_TRUTHY = (True, 'true', 1, '1')


class Sha256Hasher:
    """
    SHA-256 hex digest of a passphrase.

    Only available in a secure context (HTTPS or a local origin); elsewhere
    digest() raises SecureContextError.
    """

    def __init__(self, secure_context: bool = True):
        self._secure_context = secure_context

    @property
    def available(self) -> bool:
        return self._secure_context

    async def digest(self, text: str) -> str:
        if not self._secure_context:
            raise SecureContextError("HTTPS_REQUIRED")
        return hashlib.sha256(text.encode('utf-8')).hexdigest()


def is_secure_origin(base_url: str) -> bool:
    """Mirror of the browser rule: https, or plain http on a local host."""
    parts = urlsplit(base_url)
    if parts.scheme == 'https':
        return True
    return parts.scheme == 'http' and parts.hostname in ('localhost', '127.0.0.1', '::1')


class FocusManager:
    """
    Tracks which element owns input focus and supports trapping it.

    A trap remembers the element focused before it; releasing the trap
    restores that element.
    """

    def __init__(self, initial: Optional[str] = None):
        self._active = initial
        self._traps: List[tuple] = []

    @property
    def active(self) -> Optional[str]:
        return self._active

    @property
    def trapped(self) -> bool:
        return bool(self._traps)

    def focus(self, target: str) -> bool:
        """Move focus; refused while a trap owned by another container holds it."""
        if self._traps and not target.startswith(self._traps[-1][0]):
            return False
        self._active = target
        return True

    def trap(self, container: str, initial: Optional[str] = None) -> Callable[[], None]:
        """Confine focus to `container`; returns the release function."""
        entry = (container, self._active)
        self._traps.append(entry)
        self._active = initial or container

        def release() -> None:
            if entry in self._traps:
                self._traps.remove(entry)
                self._active = entry[1]

        return release


class AccessGateController:
    """
    Decides whether the load sequence may run for this session.

    GUARANTEES:
    ===========
    1. While not OPEN, is_open is False and the app must not load content
    2. Unlock is remembered per expected hash for the session
    3. Mismatch and secure-context failures are attempt results, not raises
    """

    OVERLAY = 'maintenance-overlay'
    INPUT = 'maintenance-overlay/maintenance-pass'
    SESSION_PREFIX = 'maintenance_'
    FORCE_OFF_KEY = 'maintenance_force_off'

    def __init__(
        self,
        session_store: KeyedPersistentStore,
        bus: EventBus,
        hasher: Optional[Sha256Hasher] = None,
        focus: Optional[FocusManager] = None
    ):
        self._session = session_store
        self._bus = bus
        self._hasher = hasher or Sha256Hasher()
        self._focus = focus or FocusManager()
        self._state = GateState.CLOSED
        self._expected_hash: Optional[str] = None
        self._release_focus: Optional[Callable[[], None]] = None
        self._last_error: Optional[str] = None
        self._message = DEFAULT_MESSAGE
        self._hint: Optional[str] = None

    @property
    def state(self) -> GateState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is GateState.OPEN

    @property
    def requires_passphrase(self) -> bool:
        return bool(self._expected_hash)

    @property
    def last_error(self) -> Optional[str]:
        """Inline error text shown on the overlay, None when clear."""
        return self._last_error

    @property
    def focus(self) -> FocusManager:
        return self._focus

    def session(self) -> GateSession:
        return GateSession(expected_hash=self._expected_hash, unlocked=self._is_unlocked())

    def enforce(self, config: Optional[Mapping[str, Any]], location: Location) -> GateState:
        """Evaluate the gate for this start; returns the resulting state."""
        if self._state is GateState.OPEN:
            return self._state

        if location.query_param(OVERRIDE_PARAM) == OVERRIDE_VALUE:
            self._session.set(self.FORCE_OFF_KEY, '1')
        if self._session.get(self.FORCE_OFF_KEY) == '1':
            logger.info("Maintenance gate forced off for this session")
            return self._open()

        settings = (config or {}).get('maintenance') or {}
        if settings.get('enabled') not in _TRUTHY:
            return self._open()

        expected = (settings.get('passphrase_sha256') or '').strip().lower()
        self._expected_hash = expected or None
        self._message = settings.get('message') or DEFAULT_MESSAGE
        self._hint = settings.get('passphrase_hint') or None

        if self._is_unlocked():
            logger.info("Maintenance gate already unlocked this session")
            return self._open()

        self._state = GateState.AWAITING_INPUT
        self._release_focus = self._focus.trap(
            self.OVERLAY,
            initial=self.INPUT if self.requires_passphrase else self.OVERLAY
        )
        logger.info("Maintenance gate active; awaiting %s", "passphrase" if self.requires_passphrase else "acknowledgement")
        self._bus.publish('gate:locked', {
            'message': self._message,
            'hint': self._hint,
            'requires_passphrase': self.requires_passphrase
        })
        return self._state

    async def submit(self, passphrase: str) -> GateAttempt:
        """Check an entered passphrase."""
        if self._state is not GateState.AWAITING_INPUT:
            return GateAttempt(accepted=self.is_open, state=self._state)
        if not self.requires_passphrase:
            return self.acknowledge()

        entered = (passphrase or '').strip()
        if not entered:
            return self._reject('missing', 'Passwort fehlt.')

        try:
            hashed = await self._hasher.digest(entered)
        except SecureContextError:
            logger.warning("Maintenance gate unavailable: insecure context")
            return self._reject('secure_context', 'Nur über HTTPS verfügbar.')

        if not hmac.compare_digest(hashed.encode('utf-8'), self._expected_hash.encode('utf-8')):
            return self._reject('mismatch', 'Falsches Passwort.')

        self._unlock()
        return GateAttempt(accepted=True, state=self._state)

    def acknowledge(self) -> GateAttempt:
        """Continue past a gate that has no passphrase configured."""
        if self._state is not GateState.AWAITING_INPUT:
            return GateAttempt(accepted=self.is_open, state=self._state)
        if self.requires_passphrase:
            return self._reject('missing', 'Passwort fehlt.')
        self._unlock()
        return GateAttempt(accepted=True, state=self._state)

    def reset(self) -> None:
        """Back to CLOSED for a fresh start; the session store is kept."""
        if self._release_focus is not None:
            self._release_focus()
            self._release_focus = None
        self._state = GateState.CLOSED
        self._last_error = None

    # -------------------------------------------------------------------------

    def _session_key(self) -> str:
        return f"{self.SESSION_PREFIX}{self._expected_hash or 'open'}"

    def _is_unlocked(self) -> bool:
        return self._session.get(self._session_key()) == (self._expected_hash or 'open')

    def _unlock(self) -> None:
        self._session.set(self._session_key(), self._expected_hash or 'open')
        self._last_error = None
        self._open()
        logger.info("Maintenance gate unlocked")
        self._bus.publish('gate:unlocked', {'expected_hash': self._expected_hash})

    def _open(self) -> GateState:
        if self._release_focus is not None:
            self._release_focus()
            self._release_focus = None
        self._state = GateState.OPEN
        return self._state

    def _reject(self, reason: str, message: str) -> GateAttempt:
        self._last_error = message
        self._focus.focus(self.INPUT if self.requires_passphrase else self.OVERLAY)
        self._bus.publish('gate:rejected', {'reason': reason, 'message': message})
        return GateAttempt(accepted=False, state=self._state, reason=reason, message=message)
