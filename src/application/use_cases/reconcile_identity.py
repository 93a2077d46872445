from __future__ import annotations

import logging
import threading
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Iterator, Mapping

from src.domain.entities.profile import MANUAL, ProfileEntity
from src.domain.errors import (
    DuplicateManualRegistration,
    InvalidCredential,
    OracleRejected,
    WrongProvider,
)
from src.domain.services.profile_merge import merge_profile, new_profile
from src.domain.services.providers import (
    LOOKUP_EMAIL,
    LOOKUP_EXTERNAL_ID,
    ExternalIdentity,
    get_provider,
)
from src.domain.services.validation import normalize_email, validate_login, validate_registration
from src.infrastructure.database.repositories.profile_repository import ProfileRepository
from src.infrastructure.database.supabase_client import (
    OracleAccount,
    ProviderIdentity,
    SupabaseIdentityOracle,
)

logger = logging.getLogger(__name__)

INVALID_LOGIN = "Invalid credentials"


class KeyedLocks:
    """One lock per identity key, created on first use."""

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    @contextmanager
    def hold(self, *keys: str) -> Iterator[None]:
        """Hold every lock in ``keys``, taken in sorted order."""
        with self._guard:
            locks = [self._locks.setdefault(key, threading.Lock()) for key in sorted(set(keys))]
        with ExitStack() as stack:
            for lock in locks:
                stack.enter_context(lock)
            yield


_RECONCILE_LOCKS = KeyedLocks()


@dataclass(frozen=True)
class LoginEvent:
    provider: str
    email: str
    attributes: dict[str, Any] = field(default_factory=dict)
    password: str | None = None
    external_id: str | None = None
    lookup: str = LOOKUP_EMAIL

    @property
    def lock_keys(self) -> tuple[str, ...]:
        # an external-id login can still fall back to, or create, an email match
        if self.lookup == LOOKUP_EXTERNAL_ID and self.external_id:
            return (f"{self.provider}:{self.external_id}", self.email)
        return (self.email,)


def _same_identity(lookup: str, claimed: ExternalIdentity, verified: ProviderIdentity) -> bool:
    if lookup == LOOKUP_EXTERNAL_ID and claimed.external_id:
        if verified.external_id != claimed.external_id:
            return False
        if not claimed.email_supplied:
            return True
    return bool(verified.email) and normalize_email(verified.email) == claimed.email


@dataclass(frozen=True)
class ReconcileResult:
    profile: ProfileEntity
    token: str


@dataclass
class ReconcileIdentityUseCase:
    """
    Map a login event onto exactly one account and profile.

    Manual registration, manual login and every OAuth provider share one
    routine: resolve the oracle account, create or merge the profile, then
    mint a session. Reconciliation for the same identity is serialized within
    the process; across processes the profile write is last-writer-wins.
    """

    oracle: SupabaseIdentityOracle
    profiles: ProfileRepository
    locks: KeyedLocks = field(default=_RECONCILE_LOCKS)

    def register(
        self,
        email: str | None,
        password: str | None,
        *,
        first_name: str | None = None,
        last_name: str | None = None,
        age: Any = None,
    ) -> ReconcileResult:
        parsed_age = validate_registration(email, password, age)
        display_name = f"{first_name or ''} {last_name or ''}".strip()
        event = LoginEvent(
            provider=MANUAL,
            email=normalize_email(email),
            attributes={
                "first_name": first_name,
                "last_name": last_name,
                "age": parsed_age,
                "display_name": display_name,
            },
            password=password,
        )
        return self.reconcile(event, registration=True)

    def login(self, email: str | None, password: str | None) -> ReconcileResult:
        validate_login(email, password)
        email = normalize_email(email)
        with self.locks.hold(email):
            account = self.oracle.find_by_email(email)
            if account is None:
                logger.info("Login refused: no account for this email")
                raise InvalidCredential(INVALID_LOGIN)
            stored = self.profiles.get(account.id)
            if stored is not None and not stored.has_provider(MANUAL):
                methods = ", ".join(stored.providers)
                raise WrongProvider(
                    f"This account uses {methods} sign-in. "
                    "Please log in with your original sign-in method"
                )
            try:
                self.oracle.verify_password(email, password)
            except OracleRejected:
                logger.info("Login refused for account %s: bad password", account.id)
                raise InvalidCredential(INVALID_LOGIN) from None
            result = self._reconcile(LoginEvent(provider=MANUAL, email=email), account=account)
        logger.info("Manual login for account %s", account.id)
        return result

    def oauth(self, provider: str, user_profile: Mapping[str, Any], token: str | None) -> ReconcileResult:
        """Reconcile a provider sign-in.

        ``token`` must be a provider token the oracle accepts, and the
        identity it was issued for must be the one ``user_profile`` claims.
        """
        descriptor = get_provider(provider)
        identity = descriptor.identify(user_profile)
        if not token or not token.strip():
            raise InvalidCredential("Provider token is required")
        try:
            verified = self.oracle.verify_provider_token(descriptor.tag, token.strip())
        except OracleRejected as exc:
            logger.info("Refused %s sign-in: %s", descriptor.tag, exc)
            raise InvalidCredential("Invalid or expired provider token") from None
        if not _same_identity(descriptor.lookup, identity, verified):
            logger.warning("Refused %s sign-in: token belongs to another identity", descriptor.tag)
            raise InvalidCredential("Provider token does not match userProfile")
        event = LoginEvent(
            provider=descriptor.tag,
            email=identity.email,
            attributes=identity.attributes,
            external_id=identity.external_id,
            lookup=descriptor.lookup,
        )
        return self.reconcile(event)

    def reconcile(self, event: LoginEvent, *, registration: bool = False) -> ReconcileResult:
        with self.locks.hold(*event.lock_keys):
            return self._reconcile(event, registration=registration)

    def _resolve(self, event: LoginEvent) -> OracleAccount | None:
        if event.lookup == LOOKUP_EXTERNAL_ID and event.external_id:
            account = self.oracle.find_by_external_id(event.provider, event.external_id)
            if account is not None:
                return account
        return self.oracle.find_by_email(event.email)

    def _reconcile(
        self,
        event: LoginEvent,
        *,
        registration: bool = False,
        account: OracleAccount | None = None,
    ) -> ReconcileResult:
        now = datetime.now(UTC)
        if account is None:
            account = self._resolve(event)

        if account is None:
            external_ids = {event.provider: event.external_id} if event.external_id else None
            account = self.oracle.create_account(
                event.email,
                event.password if event.provider == MANUAL else None,
                display_name=event.attributes.get("display_name"),
                email_verified=event.provider != MANUAL,
                external_ids=external_ids,
            )
            profile = self.profiles.create(
                new_profile(account.id, account.email, event.attributes, event.provider, now)
            )
            logger.info("Created account %s via %s", account.id, event.provider)
            return ReconcileResult(profile=profile, token=self.oracle.issue_session(account.id))

        if (
            event.lookup == LOOKUP_EXTERNAL_ID
            and event.external_id
            and account.external_ids.get(event.provider) != event.external_id
        ):
            self.oracle.link_external_id(account.id, event.provider, event.external_id)

        stored = self.profiles.get(account.id)
        if stored is None:
            # orphaned oracle account: build the profile around the existing id
            if registration and event.password:
                self.oracle.set_password(account.id, event.password)
            profile = self.profiles.create(
                new_profile(account.id, account.email, event.attributes, event.provider, now)
            )
            logger.warning("Recreated missing profile for account %s", account.id)
        else:
            if registration and event.provider == MANUAL:
                if stored.has_provider(MANUAL):
                    raise DuplicateManualRegistration()
                self.oracle.set_password(account.id, event.password)
            profile = self.profiles.save(merge_profile(stored, event.attributes, event.provider, now))
            if not stored.has_provider(event.provider):
                logger.info("Linked provider %s to account %s", event.provider, account.id)

        return ReconcileResult(profile=profile, token=self.oracle.issue_session(account.id))
