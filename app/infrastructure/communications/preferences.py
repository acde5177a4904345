"""User preference and consent service.

Stores each user's channel identifiers and their verification state,
routing order, language, timezone and quiet hours, and manages consent
with an append-only audit trail.

- Unverified identifiers are stored but never used for automatic routing.
- Opting out flips ``consent_given``; the record is never deleted.
- Writes for one user are serialized by a per-user lock; reads are lock-free
  snapshots.

Usage:
    service = PreferenceService(store=InMemoryPreferenceStore())
    service.upsert_preference("user-1", "org-1", primary_channel=ChannelType.WHATSAPP,
                              primary_identifier="+447700900123")
    service.verify_channel_identifier("user-1", ChannelType.WHATSAPP, "+447700900123")
    service.set_opt_in("user-1", actor="user-1", reason="signed consent form")
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import pytz

from infrastructure.communications.errors import PreferenceNotFoundError
from infrastructure.communications.models import (
    ChannelType,
    ConsentAction,
    ConsentAuditEntry,
    QuietHoursWindow,
    UserPreference,
)
from infrastructure.logging import get_module_logger

logger = get_module_logger()

# Consent changes go through set_opt_in / set_opt_out
PROTECTED_FIELDS = frozenset(
    {"user_id", "consent_given", "consent_timestamp", "created_at", "updated_at"}
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def quiet_hours_active(preference: UserPreference, now: Optional[datetime] = None) -> bool:
    """Whether ``now`` falls in one of the preference's quiet-hours windows.

    An aware ``now`` is converted to the user's timezone; a naive one is
    taken as already local to the user.
    """
    if not preference.quiet_hours:
        return False
    now = now or _utcnow()
    if now.tzinfo is not None:
        now = now.astimezone(pytz.timezone(preference.timezone))
    return any(window.contains(now) for window in preference.quiet_hours)


class PreferenceStore(ABC):
    """Persistence boundary for preferences and the consent audit trail.

    Implementations return copies; callers never mutate stored objects.
    """

    @abstractmethod
    def get(self, user_id: str) -> Optional[UserPreference]:
        pass

    @abstractmethod
    def save(self, preference: UserPreference) -> None:
        pass

    @abstractmethod
    def append_audit(self, entry: ConsentAuditEntry) -> None:
        pass

    @abstractmethod
    def get_audit(self, user_id: str) -> List[ConsentAuditEntry]:
        pass


class InMemoryPreferenceStore(PreferenceStore):
    def __init__(self):
        self._preferences: Dict[str, UserPreference] = {}
        self._audit: Dict[str, List[ConsentAuditEntry]] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> Optional[UserPreference]:
        with self._lock:
            preference = self._preferences.get(user_id)
            return preference.model_copy(deep=True) if preference else None

    def save(self, preference: UserPreference) -> None:
        with self._lock:
            self._preferences[preference.user_id] = preference.model_copy(deep=True)

    def append_audit(self, entry: ConsentAuditEntry) -> None:
        with self._lock:
            self._audit.setdefault(entry.user_id, []).append(entry)

    def get_audit(self, user_id: str) -> List[ConsentAuditEntry]:
        with self._lock:
            return list(self._audit.get(user_id, []))


class PreferenceService:
    """CRUD over UserPreference plus consent management.

    Args:
        store: Preference persistence
        clock: Source of "now" for timestamps, injectable for tests
    """

    def __init__(
        self,
        store: Optional[PreferenceStore] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._store = store or InMemoryPreferenceStore()
        self._clock = clock
        self._user_locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, user_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._user_locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._user_locks[user_id] = lock
            return lock

    def _require(self, user_id: str) -> UserPreference:
        preference = self._store.get(user_id)
        if preference is None:
            raise PreferenceNotFoundError(f"No preference record for user {user_id}")
        return preference

    def _apply(self, preference: UserPreference, fields: Dict[str, Any]) -> UserPreference:
        unknown = set(fields) - set(UserPreference.model_fields)
        if unknown:
            raise ValueError(f"Unknown preference fields: {sorted(unknown)}")
        protected = set(fields) & PROTECTED_FIELDS
        if protected:
            raise ValueError(
                f"Fields {sorted(protected)} cannot be set directly; "
                "use set_opt_in/set_opt_out for consent"
            )
        data = preference.model_dump()
        data.update(fields)
        data["updated_at"] = self._clock()
        updated = UserPreference.model_validate(data)
        self._register_primary(updated)
        return updated

    @staticmethod
    def _register_primary(preference: UserPreference) -> None:
        # The primary identifier is tracked like any other, unverified until confirmed
        if preference.primary_channel and preference.primary_identifier:
            identifiers = preference.channel_identifiers.setdefault(
                preference.primary_channel, {}
            )
            identifiers.setdefault(preference.primary_identifier, False)

    # ------------------------------------------------------------------
    # Preference CRUD
    # ------------------------------------------------------------------

    def get_preference(self, user_id: str) -> Optional[UserPreference]:
        return self._store.get(user_id)

    def upsert_preference(
        self, user_id: str, organization_id: str, **fields: Any
    ) -> UserPreference:
        """Create the record on first write, otherwise update ``fields``.

        New records start without consent; call ``set_opt_in`` to grant it.
        """
        with self._lock_for(user_id):
            existing = self._store.get(user_id)
            if existing is None:
                now = self._clock()
                base = UserPreference(
                    user_id=user_id,
                    organization_id=organization_id,
                    created_at=now,
                    updated_at=now,
                )
                preference = self._apply(base, fields)
                logger.info(
                    "preference_created",
                    user_id=user_id,
                    organization_id=organization_id,
                )
            else:
                preference = self._apply(
                    existing, {"organization_id": organization_id, **fields}
                )
                logger.info("preference_updated", user_id=user_id, fields=sorted(fields))
            self._store.save(preference)
            return preference

    def update_preference(self, user_id: str, **fields: Any) -> UserPreference:
        """Update an existing record.

        Raises:
            PreferenceNotFoundError: No record for ``user_id``
            ValueError: Unknown or consent fields
        """
        with self._lock_for(user_id):
            preference = self._apply(self._require(user_id), fields)
            self._store.save(preference)
        logger.info("preference_updated", user_id=user_id, fields=sorted(fields))
        return preference

    # ------------------------------------------------------------------
    # Channel identifiers
    # ------------------------------------------------------------------

    def add_channel_identifier(
        self,
        user_id: str,
        channel_type: ChannelType,
        identifier: str,
        verified: bool = False,
    ) -> UserPreference:
        """Register an address for a channel. Re-adding updates its verified flag."""
        if not identifier:
            raise ValueError("identifier must not be empty")
        with self._lock_for(user_id):
            preference = self._require(user_id)
            preference.channel_identifiers.setdefault(channel_type, {})[identifier] = verified
            preference.updated_at = self._clock()
            self._store.save(preference)
        logger.info(
            "channel_identifier_added",
            user_id=user_id,
            channel=channel_type.value,
            verified=verified,
        )
        return preference

    def verify_channel_identifier(
        self, user_id: str, channel_type: ChannelType, identifier: str
    ) -> UserPreference:
        """Mark a registered identifier as verified.

        Raises:
            PreferenceNotFoundError: Unknown user or identifier
        """
        with self._lock_for(user_id):
            preference = self._require(user_id)
            identifiers = preference.channel_identifiers.get(channel_type, {})
            if identifier not in identifiers:
                raise PreferenceNotFoundError(
                    f"{channel_type.value} identifier not registered for user {user_id}"
                )
            identifiers[identifier] = True
            preference.updated_at = self._clock()
            self._store.save(preference)
        logger.info(
            "channel_identifier_verified", user_id=user_id, channel=channel_type.value
        )
        return preference

    def remove_channel_identifier(
        self, user_id: str, channel_type: ChannelType, identifier: str
    ) -> UserPreference:
        with self._lock_for(user_id):
            preference = self._require(user_id)
            identifiers = preference.channel_identifiers.get(channel_type, {})
            identifiers.pop(identifier, None)
            if not identifiers:
                preference.channel_identifiers.pop(channel_type, None)
            if (
                preference.primary_channel == channel_type
                and preference.primary_identifier == identifier
            ):
                preference.primary_identifier = None
            preference.updated_at = self._clock()
            self._store.save(preference)
        logger.info(
            "channel_identifier_removed", user_id=user_id, channel=channel_type.value
        )
        return preference

    def get_verified_identifier(
        self, user_id: str, channel_type: ChannelType
    ) -> Optional[str]:
        preference = self._store.get(user_id)
        return preference.verified_identifier(channel_type) if preference else None

    # ------------------------------------------------------------------
    # Consent
    # ------------------------------------------------------------------

    def _set_consent(
        self, user_id: str, given: bool, actor: str, reason: Optional[str]
    ) -> ConsentAuditEntry:
        action = ConsentAction.OPT_IN if given else ConsentAction.OPT_OUT
        with self._lock_for(user_id):
            preference = self._require(user_id)
            now = self._clock()
            preference.consent_given = given
            preference.consent_timestamp = now
            preference.updated_at = now
            entry = ConsentAuditEntry(
                user_id=user_id, action=action, actor=actor, reason=reason, timestamp=now
            )
            self._store.save(preference)
            self._store.append_audit(entry)
        logger.info("consent_changed", user_id=user_id, action=action.value, actor=actor)
        return entry

    def set_opt_in(
        self, user_id: str, actor: str, reason: Optional[str] = None
    ) -> ConsentAuditEntry:
        return self._set_consent(user_id, True, actor, reason)

    def set_opt_out(
        self, user_id: str, actor: str, reason: Optional[str] = None
    ) -> ConsentAuditEntry:
        return self._set_consent(user_id, False, actor, reason)

    def get_consent_history(self, user_id: str) -> List[ConsentAuditEntry]:
        """Audit entries for ``user_id``, oldest first."""
        return self._store.get_audit(user_id)

    # ------------------------------------------------------------------
    # Quiet hours
    # ------------------------------------------------------------------

    def set_quiet_hours(
        self, user_id: str, windows: List[QuietHoursWindow]
    ) -> UserPreference:
        with self._lock_for(user_id):
            preference = self._require(user_id)
            preference.quiet_hours = list(windows)
            preference.updated_at = self._clock()
            self._store.save(preference)
        logger.info("quiet_hours_updated", user_id=user_id, windows=len(windows))
        return preference

    def is_within_quiet_hours(
        self, user_id: str, now: Optional[datetime] = None
    ) -> bool:
        """Evaluate the user's windows at ``now`` in the user's timezone.

        Users without a record have no quiet hours.
        """
        preference = self._store.get(user_id)
        if preference is None:
            return False
        return quiet_hours_active(preference, now or self._clock())
