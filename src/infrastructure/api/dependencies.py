from __future__ import annotations

import logging
from functools import lru_cache
from typing import Annotated, Callable

from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.application.use_cases.manage_meeting import ManageMeetingUseCase
from src.application.use_cases.manage_profile import ManageProfileUseCase
from src.application.use_cases.reconcile_identity import ReconcileIdentityUseCase
from src.domain.errors import EmptyCredential, InvalidCredential, MissingCredential, OracleRejected
from src.infrastructure.api.rate_limiter import (
    SlidingWindowRateLimiter,
    client_address,
    get_login_limiter,
)
from src.infrastructure.database.repositories.meeting_repository import MeetingRepository
from src.infrastructure.database.repositories.profile_repository import ProfileRepository
from src.infrastructure.database.supabase_client import (
    SupabaseIdentityOracle,
    UserInfo,
    get_supabase_client,
)

logger = logging.getLogger(__name__)

# Only used for the OpenAPI security scheme; the header is parsed by authenticate()
_bearer_scheme = HTTPBearer(auto_error=False)


@lru_cache(maxsize=1)
def get_identity_oracle() -> SupabaseIdentityOracle:
    return SupabaseIdentityOracle()


def authenticate(authorization: str | None, oracle: SupabaseIdentityOracle) -> UserInfo:
    """Resolve an ``Authorization`` header to a verified subject.

    Oracle verdicts (expired, malformed, revoked) all collapse into one
    ``InvalidCredential`` so callers cannot learn why a token was refused.
    """
    if not authorization:
        raise MissingCredential()
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        raise MissingCredential()
    token = token.strip()
    if not token:
        raise EmptyCredential()
    try:
        return oracle.validate_token(token)
    except OracleRejected as exc:
        logger.warning("Token verification failed: %s", exc)
        raise InvalidCredential() from None


def get_current_user(
    request: Request,
    _credentials: Annotated[HTTPAuthorizationCredentials | None, Security(_bearer_scheme)] = None,
    oracle: Annotated[SupabaseIdentityOracle, Depends(get_identity_oracle)] = None,
) -> UserInfo:
    return authenticate(request.headers.get("Authorization"), oracle)


def rate_limited(scope: str) -> Callable[..., None]:
    """Dependency counting one attempt per request against the client's bucket."""

    def dependency(
        request: Request,
        limiter: Annotated[SlidingWindowRateLimiter, Depends(get_login_limiter)],
    ) -> None:
        limiter.hit(f"{scope}:{client_address(request)}")

    return dependency


def get_profile_repo() -> ProfileRepository:
    return ProfileRepository(get_supabase_client())


def get_meeting_repo() -> MeetingRepository:
    return MeetingRepository(get_supabase_client())


def get_reconcile_use_case(
    oracle: Annotated[SupabaseIdentityOracle, Depends(get_identity_oracle)],
    profiles: Annotated[ProfileRepository, Depends(get_profile_repo)],
) -> ReconcileIdentityUseCase:
    return ReconcileIdentityUseCase(oracle=oracle, profiles=profiles)


def get_profile_use_case(
    oracle: Annotated[SupabaseIdentityOracle, Depends(get_identity_oracle)],
    profiles: Annotated[ProfileRepository, Depends(get_profile_repo)],
) -> ManageProfileUseCase:
    return ManageProfileUseCase(oracle=oracle, profiles=profiles)


def get_meeting_use_case(
    meetings: Annotated[MeetingRepository, Depends(get_meeting_repo)],
) -> ManageMeetingUseCase:
    return ManageMeetingUseCase(meetings=meetings)
