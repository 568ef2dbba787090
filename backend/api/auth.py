from fastapi import APIRouter, Depends, status
from core.database import Database, get_db
from core.rate_limit import get_login_limiter
from schemas.user_schema import (
    AuthResponse,
    LoginRequest,
    SignupRequest,
    SuccessResponse,
    UserIdRequest,
    UserResponse,
)
from services.auth_service import AuthService

router = APIRouter(prefix="/auth", tags=["auth"])


def get_auth_service(db: Database = Depends(get_db), limiter=Depends(get_login_limiter)) -> AuthService:
    return AuthService(db, limiter)


# ------ Signup -----
@router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def signup(body: SignupRequest, auth: AuthService = Depends(get_auth_service)):
    return await auth.signup(body.username, body.password, body.name, body.email)

# ------ Login -----
@router.post("/login", response_model=AuthResponse)
async def login(body: LoginRequest, auth: AuthService = Depends(get_auth_service)):
    return await auth.login(body.username, body.password)

# ------ Verify (is this user id still valid?) -----
@router.post("/verify", response_model=UserResponse)
async def verify(body: UserIdRequest, auth: AuthService = Depends(get_auth_service)):
    return await auth.verify(body.user_id)

# ------ Logout -----
@router.post("/logout", response_model=SuccessResponse)
async def logout(body: UserIdRequest, auth: AuthService = Depends(get_auth_service)):
    return await auth.logout(body.user_id)
