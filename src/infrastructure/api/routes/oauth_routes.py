from __future__ import annotations

from fastapi import APIRouter, Depends

from src.application.dtos.auth_dto import AuthResponse, OAuthRequest, ProfileOut
from src.application.dtos.common_dto import ErrorResponse
from src.application.use_cases.reconcile_identity import ReconcileIdentityUseCase
from src.domain.errors import ValidationError
from src.domain.services.providers import OAUTH_PROVIDERS
from src.infrastructure.api.dependencies import get_reconcile_use_case, rate_limited

router = APIRouter(
    prefix="/api/oauth",
    tags=["OAuth"],
    responses={
        400: {"model": ErrorResponse, "description": "Bad Request - Missing or malformed email/uid, or unknown provider"},
        401: {"model": ErrorResponse, "description": "Unauthorized - Provider token missing, invalid or issued for another identity"},
        429: {"model": ErrorResponse, "description": "Too Many Requests - Retry after the given delay"},
    },
)


@router.post(
    "/{provider}",
    response_model=AuthResponse,
    summary="Complete OAuth Sign-In",
    description=f"""
    Reconcile a provider sign-in with the stored accounts.

    The provider token is verified with the identity provider first, and the
    identity it was issued for must match the email (or GitHub uid) in
    `userProfile`.

    **Providers**: {", ".join(OAUTH_PROVIDERS)}

    Google and Facebook accounts are matched by email, GitHub accounts by
    their GitHub user id. Existing profiles keep their data: blank values in
    the provider profile never overwrite stored ones, and the provider is
    added to the account's providers.
    """,
    response_description="The reconciled profile and a session token",
    dependencies=[Depends(rate_limited("oauth"))],
)
def oauth_callback(
    provider: str,
    body: OAuthRequest,
    uc: ReconcileIdentityUseCase = Depends(get_reconcile_use_case),
):
    """Sign in or sign up through an OAuth provider."""
    if not body.user_profile:
        raise ValidationError("userProfile is required")
    result = uc.oauth(provider.lower(), body.user_profile, body.token)
    return AuthResponse(user=ProfileOut.from_entity(result.profile), token=result.token)
