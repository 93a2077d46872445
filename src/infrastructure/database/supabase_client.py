from __future__ import annotations

import hashlib
import logging
import os
import secrets
import threading
import time
import uuid
from dataclasses import dataclass, field

from supabase import AuthApiError, Client, ClientOptions, create_client

from src.domain.errors import OracleRejected, UpstreamFailure

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class UserInfo:
    id: str
    email: str | None


@dataclass(slots=True)
class OracleAccount:
    id: str
    email: str
    external_ids: dict[str, str] = field(default_factory=dict)
    email_verified: bool = False


@dataclass(slots=True)
class ProviderIdentity:
    """Who a provider token says its holder is."""

    email: str | None
    external_id: str | None


@dataclass(slots=True)
class _MemAccount:
    account: OracleAccount
    password_digest: str | None = None
    salt: str = ""


# module-level state for disabled mode
_MEM_ACCOUNTS: dict[str, _MemAccount] = {}
_MEM_SESSIONS: dict[str, tuple[str, float]] = {}
_MEM_PROVIDER_TOKENS: dict[str, tuple[str, ProviderIdentity]] = {}
_MEM_LOCK = threading.RLock()


def _digest(password: str, salt: str) -> str:
    return hashlib.sha256(f"{salt}:{password}".encode()).hexdigest()


def _app_metadata_ids(user) -> dict[str, str]:
    meta = getattr(user, "app_metadata", None) or {}
    ids = meta.get("external_ids") or {}
    return {str(k): str(v) for k, v in ids.items()}


def _to_account(user) -> OracleAccount:
    return OracleAccount(
        id=user.id,
        email=(user.email or "").lower(),
        external_ids=_app_metadata_ids(user),
        email_verified=bool(getattr(user, "email_confirmed_at", None)),
    )


def _provider_identity(user, provider: str) -> ProviderIdentity | None:  # pragma: no cover - network
    for identity in getattr(user, "identities", None) or []:
        if identity.provider != provider:
            continue
        data = identity.identity_data or {}
        external_id = data.get("provider_id") or data.get("sub") or identity.id
        return ProviderIdentity(
            email=data.get("email") or user.email,
            external_id=str(external_id) if external_id is not None else None,
        )
    return None


class SupabaseIdentityOracle:
    """Identity oracle backed by Supabase Auth.

    Verifies access tokens, manages accounts through the admin API and mints
    sessions. When SUPABASE_DISABLED=1 an in-process fake with the same
    contract is used instead: accounts, issued tokens and provider tokens
    live in module-level dicts guarded by one lock, and session tokens
    expire after SESSION_TTL_SECONDS.
    """

    def __init__(self) -> None:
        self.disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
        self.url = os.getenv("SUPABASE_URL")
        self.key = os.getenv("SUPABASE_ANON_KEY")
        self.service_key = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
        self.session_ttl = int(os.getenv("SESSION_TTL_SECONDS", "3600"))
        self._client: Client | None = None
        self._admin: Client | None = None
        if not self.disabled and self.url and self.key:
            self._client = create_client(self.url, self.key)
            self._admin = get_supabase_client()

    @property
    def in_memory(self) -> bool:
        return self.disabled or self._client is None or self._admin is None

    def _fresh_client(self) -> Client:
        # sign-in stores the session on the client, so never share one
        return create_client(
            self.url,
            self.key,
            options=ClientOptions(persist_session=False, auto_refresh_token=False),
        )

    # -- token verification -------------------------------------------------

    def validate_token(self, token: str) -> UserInfo:
        if not token:
            raise OracleRejected("Missing access token")
        if self.in_memory:
            with _MEM_LOCK:
                entry = _MEM_SESSIONS.get(token)
                if entry is None:
                    raise OracleRejected("Unknown token")
                uid, expires_at = entry
                if expires_at < time.time():
                    _MEM_SESSIONS.pop(token, None)
                    raise OracleRejected("Token expired")
                mem = _MEM_ACCOUNTS.get(uid)
                if mem is None:
                    raise OracleRejected("Account revoked")
                return UserInfo(id=uid, email=mem.account.email)
        try:  # pragma: no cover - network
            res = self._client.auth.get_user(token)
        except AuthApiError as exc:  # pragma: no cover - network
            raise OracleRejected(str(exc)) from exc
        except Exception as exc:  # pragma: no cover - network
            raise UpstreamFailure(f"Token verification failed: {exc}") from exc
        user = res.user if res else None  # pragma: no cover - network
        if not user:  # pragma: no cover - network
            raise OracleRejected("Invalid access token")
        return UserInfo(id=user.id, email=user.email)  # pragma: no cover - network

    def verify_provider_token(self, provider: str, token: str) -> ProviderIdentity:
        """Resolve the identity a provider sign-in token was issued for.

        The token is the access token of a Supabase session opened through
        ``provider``; the linked identity of that provider supplies the
        verified email and external id.
        """
        if not token:
            raise OracleRejected("Missing provider token")
        if self.in_memory:
            with _MEM_LOCK:
                entry = _MEM_PROVIDER_TOKENS.get(token)
            if entry is None:
                raise OracleRejected("Unknown provider token")
            issued_for, identity = entry
            if issued_for != provider:
                raise OracleRejected(f"Token was not issued by {provider}")
            return identity
        try:  # pragma: no cover - network
            res = self._client.auth.get_user(token)
        except AuthApiError as exc:  # pragma: no cover - network
            raise OracleRejected(str(exc)) from exc
        except Exception as exc:  # pragma: no cover - network
            raise UpstreamFailure(f"Provider token verification failed: {exc}") from exc
        user = res.user if res else None  # pragma: no cover - network
        identity = _provider_identity(user, provider) if user else None  # pragma: no cover
        if identity is None:  # pragma: no cover - network
            raise OracleRejected(f"Token carries no {provider} identity")
        return identity  # pragma: no cover - network

    def mint_provider_token(
        self, provider: str, *, email: str | None = None, external_id: str | None = None
    ) -> str:
        """Stand in for a provider sign-in when running without Supabase."""
        if not self.in_memory:
            raise UpstreamFailure("Provider tokens are only minted by the in-memory oracle")
        token = secrets.token_urlsafe(24)
        with _MEM_LOCK:
            _MEM_PROVIDER_TOKENS[token] = (provider, ProviderIdentity(email=email, external_id=external_id))
        return token

    # -- account lookup -----------------------------------------------------

    def _list_accounts(self) -> list[OracleAccount]:  # pragma: no cover - network
        accounts: list[OracleAccount] = []
        page = 1
        try:
            while True:
                users = self._admin.auth.admin.list_users(page=page, per_page=1000)
                if not users:
                    break
                accounts.extend(_to_account(u) for u in users)
                page += 1
        except Exception as exc:
            raise UpstreamFailure(f"Account lookup failed: {exc}") from exc
        return accounts

    def find_by_email(self, email: str) -> OracleAccount | None:
        email = email.lower()
        if self.in_memory:
            with _MEM_LOCK:
                return next(
                    (m.account for m in _MEM_ACCOUNTS.values() if m.account.email == email),
                    None,
                )
        return next((a for a in self._list_accounts() if a.email == email), None)  # pragma: no cover

    def find_by_external_id(self, provider: str, external_id: str) -> OracleAccount | None:
        if self.in_memory:
            with _MEM_LOCK:
                accounts = [m.account for m in _MEM_ACCOUNTS.values()]
        else:  # pragma: no cover - network
            accounts = self._list_accounts()
        return next((a for a in accounts if a.external_ids.get(provider) == external_id), None)

    def get_account(self, uid: str) -> OracleAccount | None:
        if self.in_memory:
            with _MEM_LOCK:
                mem = _MEM_ACCOUNTS.get(uid)
            return mem.account if mem else None
        try:  # pragma: no cover - network
            res = self._admin.auth.admin.get_user_by_id(uid)
        except AuthApiError:  # pragma: no cover - network
            return None
        except Exception as exc:  # pragma: no cover - network
            raise UpstreamFailure(f"Account lookup failed: {exc}") from exc
        return _to_account(res.user) if res and res.user else None  # pragma: no cover

    # -- account management -------------------------------------------------

    def create_account(
        self,
        email: str,
        password: str | None = None,
        *,
        display_name: str | None = None,
        email_verified: bool = False,
        external_ids: dict[str, str] | None = None,
    ) -> OracleAccount:
        email = email.lower()
        if self.in_memory:
            account = OracleAccount(
                id=uuid.uuid4().hex,
                email=email,
                external_ids=dict(external_ids or {}),
                email_verified=email_verified,
            )
            mem = _MemAccount(account=account)
            if password:
                mem.salt = secrets.token_hex(8)
                mem.password_digest = _digest(password, mem.salt)
            with _MEM_LOCK:
                _MEM_ACCOUNTS[account.id] = mem
            return account
        attributes: dict = {
            "email": email,
            "email_confirm": email_verified,
            "user_metadata": {"display_name": display_name} if display_name else {},
            "app_metadata": {"external_ids": dict(external_ids or {})},
        }
        if password:
            attributes["password"] = password
        try:  # pragma: no cover - network
            res = self._admin.auth.admin.create_user(attributes)
            return _to_account(res.user)
        except Exception as exc:  # pragma: no cover - network
            raise UpstreamFailure(f"Account creation failed: {exc}") from exc

    def _admin_update(self, uid: str, attributes: dict) -> None:  # pragma: no cover - network
        try:
            self._admin.auth.admin.update_user_by_id(uid, attributes)
        except Exception as exc:
            raise UpstreamFailure(f"Account update failed: {exc}") from exc

    def set_password(self, uid: str, password: str) -> None:
        if self.in_memory:
            salt = secrets.token_hex(8)
            with _MEM_LOCK:
                mem = _MEM_ACCOUNTS[uid]
                mem.salt = salt
                mem.password_digest = _digest(password, salt)
            return
        self._admin_update(uid, {"password": password})  # pragma: no cover

    def link_external_id(self, uid: str, provider: str, external_id: str) -> None:
        if self.in_memory:
            with _MEM_LOCK:
                _MEM_ACCOUNTS[uid].account.external_ids[provider] = external_id
            return
        account = self.get_account(uid)  # pragma: no cover - network
        ids = dict(account.external_ids if account else {})  # pragma: no cover
        ids[provider] = external_id  # pragma: no cover
        self._admin_update(uid, {"app_metadata": {"external_ids": ids}})  # pragma: no cover

    def update_email(self, uid: str, email: str, *, verified: bool = False) -> None:
        """Change the account email; a new address starts out unverified."""
        email = email.lower()
        if self.in_memory:
            with _MEM_LOCK:
                account = _MEM_ACCOUNTS[uid].account
                account.email = email
                account.email_verified = verified
            return
        self._admin_update(uid, {"email": email, "email_confirm": verified})  # pragma: no cover

    def delete_account(self, uid: str) -> None:
        if self.in_memory:
            with _MEM_LOCK:
                _MEM_ACCOUNTS.pop(uid, None)
                for token in [t for t, (owner, _) in _MEM_SESSIONS.items() if owner == uid]:
                    del _MEM_SESSIONS[token]
            return
        try:  # pragma: no cover - network
            self._admin.auth.admin.delete_user(uid)
        except Exception as exc:  # pragma: no cover - network
            raise UpstreamFailure(f"Account deletion failed: {exc}") from exc

    # -- credentials ----------------------------------------------------------

    def verify_password(self, email: str, password: str) -> str:
        """Return the subject id if ``password`` is right for ``email``."""
        email = email.lower()
        if self.in_memory:
            with _MEM_LOCK:
                account = self.find_by_email(email)
                mem = _MEM_ACCOUNTS.get(account.id) if account else None
                if mem is None or mem.password_digest is None:
                    raise OracleRejected("Invalid credentials")
                if not secrets.compare_digest(mem.password_digest, _digest(password, mem.salt)):
                    raise OracleRejected("Invalid credentials")
                return mem.account.id
        try:  # pragma: no cover - network
            res = self._fresh_client().auth.sign_in_with_password({"email": email, "password": password})
        except AuthApiError as exc:  # pragma: no cover - network
            raise OracleRejected(str(exc)) from exc
        except Exception as exc:  # pragma: no cover - network
            raise UpstreamFailure(f"Sign-in failed: {exc}") from exc
        return res.user.id  # pragma: no cover - network

    def issue_session(self, uid: str) -> str:
        """Mint a fresh access token bound to ``uid``."""
        if self.in_memory:
            token = secrets.token_urlsafe(32)
            with _MEM_LOCK:
                if uid not in _MEM_ACCOUNTS:
                    raise UpstreamFailure("Cannot issue a session for an unknown account")
                _MEM_SESSIONS[token] = (uid, time.time() + self.session_ttl)
            return token
        try:  # pragma: no cover - network
            account = self.get_account(uid)
            if account is None:
                raise UpstreamFailure("Cannot issue a session for an unknown account")
            link = self._admin.auth.admin.generate_link({"type": "magiclink", "email": account.email})
            res = self._fresh_client().auth.verify_otp(
                {"type": "magiclink", "token_hash": link.properties.hashed_token}
            )
            return res.session.access_token
        except UpstreamFailure:  # pragma: no cover - network
            raise
        except Exception as exc:  # pragma: no cover - network
            raise UpstreamFailure(f"Session issuance failed: {exc}") from exc


# Simple reusable singleton admin client getter for repositories and the oracle
_CLIENT_SINGLETON: Client | None = None


def get_supabase_client() -> Client | None:
    global _CLIENT_SINGLETON
    disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
    if disabled or not url or not key:
        return None
    if _CLIENT_SINGLETON is None:
        logger.info("Creating Supabase admin client for %s", url)
        _CLIENT_SINGLETON = create_client(url, key)
    return _CLIENT_SINGLETON
