from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordRequestForm
from fastapi_users import exceptions

from core.auth import (
    SessionJWTStrategy,
    UserManager,
    bearer_transport,
    current_active_user,
    get_jwt_strategy,
    get_user_manager,
)
from db.users import Role, User
from schemas.users import AuthResponse, LoginRequest, RegisterRequest, UserCreate

log = structlog.get_logger(__name__)

router = APIRouter()


def _failure(status_code: int, message: str) -> JSONResponse:
    body = AuthResponse(success=False, message=message)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json", exclude_none=True))


async def _register(
    payload: RegisterRequest,
    role: Role,
    request: Request,
    user_manager: UserManager,
    success_message: str,
):
    try:
        user = await user_manager.create(
            UserCreate(
                email=payload.email,
                password=payload.password,
                first_name=payload.first_name,
                last_name=payload.last_name,
                role=role.value,
            ),
            safe=True,
            request=request,
        )
    except exceptions.UserAlreadyExists:
        return _failure(status.HTTP_400_BAD_REQUEST, "User with this email already exists.")
    except exceptions.InvalidPasswordException as e:
        return _failure(status.HTTP_400_BAD_REQUEST, f"Registration failed: {e.reason}")
    except Exception:
        log.exception("registration_failed", email=payload.email, role=role.value)
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "An error occurred during registration.")

    return AuthResponse(success=True, message=success_message, email=user.email)


@router.post("/register", response_model=AuthResponse, response_model_exclude_none=True)
async def register(
    payload: RegisterRequest,
    request: Request,
    user_manager: UserManager = Depends(get_user_manager),
):
    """Create a user with the default Employee role"""
    return await _register(
        payload, Role.EMPLOYEE, request, user_manager, "Registration successful! You can now log in."
    )


@router.post("/register-manager", response_model=AuthResponse, response_model_exclude_none=True)
async def register_manager(
    payload: RegisterRequest,
    request: Request,
    user_manager: UserManager = Depends(get_user_manager),
):
    """Create a user with the Manager role"""
    return await _register(
        payload, Role.MANAGER, request, user_manager, "Manager registration successful! You can now log in."
    )


@router.post("/login", response_model=AuthResponse, response_model_exclude_none=True)
async def login(
    payload: LoginRequest,
    user_manager: UserManager = Depends(get_user_manager),
    strategy: SessionJWTStrategy = Depends(get_jwt_strategy),
):
    try:
        user = await user_manager.authenticate(
            OAuth2PasswordRequestForm(username=payload.email, password=payload.password)
        )
        if user is None or not user.is_active:
            log.warning("login_failed", email=payload.email)
            return _failure(status.HTTP_401_UNAUTHORIZED, "Invalid email or password.")

        issued = await strategy.issue_token(user)
    except Exception:
        log.exception("login_error", email=payload.email)
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "An error occurred during login.")

    log.info("user_logged_in", user_id=str(user.id), email=user.email)
    return AuthResponse(
        success=True,
        message="Login successful!",
        token=issued.token,
        email=user.email,
        roles=user.roles,
        expiration=issued.expires_at,
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    token: Optional[str] = Depends(bearer_transport.scheme),
    user: User = Depends(current_active_user),
    strategy: SessionJWTStrategy = Depends(get_jwt_strategy),
):
    """Deactivate the session behind the presented token"""
    await strategy.destroy_token(token, user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
