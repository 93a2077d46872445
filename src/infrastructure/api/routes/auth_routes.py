from __future__ import annotations

from fastapi import APIRouter, Depends, status

from src.application.dtos.auth_dto import AuthResponse, LoginRequest, ProfileOut, RegisterRequest
from src.application.dtos.common_dto import ErrorResponse
from src.application.use_cases.reconcile_identity import ReconcileIdentityUseCase
from src.infrastructure.api.dependencies import get_reconcile_use_case, rate_limited

router = APIRouter(
    prefix="/api/auth",
    tags=["Authentication"],
    responses={
        400: {"model": ErrorResponse, "description": "Bad Request - Validation failed"},
    },
)


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register With Email And Password",
    description="""
    Create an account with the `manual` provider.

    **Rules:**
    - Email must be a valid address
    - Password: at least 8 characters with a lowercase letter, an uppercase
      letter, a digit and a symbol
    - Age, when given, must be at least 13

    An email that already signed in through Google, GitHub or Facebook gains
    the `manual` provider; an email already registered manually is refused.
    """,
    response_description="The created or merged profile and a session token",
)
def register(
    body: RegisterRequest,
    uc: ReconcileIdentityUseCase = Depends(get_reconcile_use_case),
):
    """Register a user with email and password."""
    result = uc.register(
        body.email,
        body.password,
        first_name=body.first_name,
        last_name=body.last_name,
        age=body.age,
    )
    return AuthResponse(user=ProfileOut.from_entity(result.profile), token=result.token)


@router.post(
    "/login",
    response_model=AuthResponse,
    summary="Log In With Email And Password",
    description="""
    Verify email and password and return a fresh session token.

    Any failure to resolve the credentials answers 401 with the same message.
    Accounts created through an OAuth provider are told to use it instead.

    **Rate limit**: 5 attempts per client address every 5 minutes.
    """,
    response_description="The user's profile and a session token",
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized - Invalid credentials"},
        429: {"model": ErrorResponse, "description": "Too Many Requests - Retry after the given delay"},
    },
    dependencies=[Depends(rate_limited("login"))],
)
def login(
    body: LoginRequest,
    uc: ReconcileIdentityUseCase = Depends(get_reconcile_use_case),
):
    """Log in with email and password."""
    result = uc.login(body.email, body.password)
    return AuthResponse(user=ProfileOut.from_entity(result.profile), token=result.token)
