from __future__ import annotations

from contextlib import asynccontextmanager, contextmanager
from typing import Any, AsyncIterator, Dict, Iterator, Optional, Union

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from manifest_api import __version__
from manifest_api.analytics.metrics import kpis, parse_period_days, record_new_user_safely, time_series
from manifest_api.auth import bootstrap_admin_if_needed, get_current_user, require_admin, require_roles
from manifest_api.auth.crud import (
    create_user,
    delete_pending_user,
    get_pending_user,
    get_user_by_email,
    is_expired,
    is_valid_email,
    list_users,
    normalize_email,
    normalize_role,
    otp_expiry_iso,
    promote_pending_user,
    refresh_pending_otp,
    reset_user_password,
    set_user_otp,
    touch_last_login,
    upsert_pending_user,
    verify_user_credentials,
)
from manifest_api.auth.security import create_access_token, generate_otp, hash_password, otp_matches, token_payload
from manifest_api.config import Config, load_config
from manifest_api.db import connect, init_db
from manifest_api.mail.mailer import SmtpMailer, password_reset_message, registration_otp_message, resend_otp_message


def _debug(msg: str) -> None:
    print(f"[api] {msg}")


router = APIRouter()


def get_cfg(request: Request) -> Config:
    cfg = getattr(request.app.state, "cfg", None)
    if cfg is None:
        raise HTTPException(status_code=500, detail="Server configuration missing")
    return cfg


def get_mailer(request: Request) -> Any:
    return request.app.state.mailer


@contextmanager
def _server_errors(message: str) -> Iterator[None]:
    """Turn anything unexpected into a logged, generic 500."""
    try:
        yield
    except HTTPException:
        raise
    except Exception as e:
        _debug(f"{message}: {e!r}")
        raise HTTPException(status_code=500, detail=message)


# -----------------------------
# Health
# -----------------------------


@router.get("/health")
def health() -> Dict[str, Any]:
    return {"status": "ok"}


# -----------------------------
# Auth
# -----------------------------

OtpValue = Optional[Union[str, int]]


class RegisterRequest(BaseModel):
    username: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None


class VerifyRequest(BaseModel):
    email: Optional[str] = None
    otp: OtpValue = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class EmailRequest(BaseModel):
    email: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    email: Optional[str] = None
    otp: OtpValue = None
    newPassword: Optional[str] = None


class CreateUserRequest(BaseModel):
    username: str
    email: str
    password: str
    name: Optional[str] = None
    phone: Optional[str] = None
    role: str = "staff"


@router.post("/auth/register")
def auth_register(
    payload: RegisterRequest,
    cfg: Config = Depends(get_cfg),
    mailer: Any = Depends(get_mailer),
) -> Dict[str, Any]:
    """Step 1: stage the sign-up and email an OTP."""
    username = (payload.username or "").strip()
    email = normalize_email(payload.email)
    password = payload.password or ""
    if not username or not email or not password:
        raise HTTPException(status_code=400, detail="Missing required fields")
    if not is_valid_email(email):
        raise HTTPException(status_code=400, detail="Invalid email address")
    try:
        role = normalize_role(payload.role)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid role")

    with _server_errors("Server error during registration"):
        with connect(cfg.DB_DSN) as conn:
            if get_user_by_email(conn, email) is not None:
                raise HTTPException(status_code=409, detail="Email already registered")

            otp = generate_otp()
            upsert_pending_user(
                conn,
                email=email,
                username=username,
                name=payload.name,
                password_hash=hash_password(password),
                phone=payload.phone,
                role=role,
                otp=otp,
                expires=otp_expiry_iso(cfg),
            )

        subject, body = registration_otp_message(cfg, otp)
        mailer.send(email, subject, body)

    return {"message": "OTP sent to your email"}


@router.post("/auth/verify", status_code=201)
def auth_verify(payload: VerifyRequest, cfg: Config = Depends(get_cfg)) -> Dict[str, Any]:
    """Step 2: confirm the OTP and promote the pending row to a real user."""
    email = normalize_email(payload.email)

    with _server_errors("Server error verifying OTP"):
        with connect(cfg.DB_DSN) as conn:
            pending = get_pending_user(conn, email) if email else None
            if pending is None:
                raise HTTPException(status_code=400, detail="No registration found for this email")
            if not otp_matches(pending["otp"], payload.otp):
                raise HTTPException(status_code=400, detail="Invalid OTP")
            if is_expired(pending["expires"]):
                raise HTTPException(status_code=400, detail="OTP expired. Please request a new one.")

            duplicate = get_user_by_email(conn, email) is not None
            if duplicate:
                delete_pending_user(conn, email)
            else:
                user_id = int(promote_pending_user(conn, pending)["user_id"])

        if duplicate:
            raise HTTPException(status_code=400, detail="User already registered.")

        record_new_user_safely(cfg)

        with connect(cfg.DB_DSN) as conn:
            delete_pending_user(conn, email)

    _debug(f"Registered user {user_id} <{email}>")
    return {"message": "Registration successful", "userId": user_id}


@router.post("/auth/login")
def auth_login(payload: LoginRequest, cfg: Config = Depends(get_cfg)) -> Dict[str, Any]:
    if not payload.email or not payload.password:
        raise HTTPException(status_code=400, detail="Missing credentials")

    with _server_errors("Server error during login"):
        with connect(cfg.DB_DSN) as conn:
            if get_user_by_email(conn, payload.email) is None:
                raise HTTPException(status_code=401, detail="User not found")

            user_row = verify_user_credentials(conn, payload.email, payload.password)
            if user_row is None:
                raise HTTPException(status_code=401, detail="Invalid password")

            touch_last_login(conn, int(user_row["user_id"]))

        claims = token_payload(user_row)
        token = create_access_token(secret=cfg.JWT_SECRET, payload=claims, expires_in=cfg.JWT_EXPIRES_IN)

    return {"token": token, "user": claims}


@router.post("/auth/resend-otp")
def auth_resend_otp(
    payload: EmailRequest,
    cfg: Config = Depends(get_cfg),
    mailer: Any = Depends(get_mailer),
) -> Dict[str, Any]:
    email = normalize_email(payload.email)
    if not email:
        raise HTTPException(status_code=400, detail="Email is required")

    with _server_errors("Server error resending OTP"):
        with connect(cfg.DB_DSN) as conn:
            if get_pending_user(conn, email) is None:
                raise HTTPException(status_code=400, detail="No pending registration found for this email")
            otp = generate_otp()
            refresh_pending_otp(conn, email, otp=otp, expires=otp_expiry_iso(cfg))

        subject, body = resend_otp_message(cfg, otp)
        mailer.send(email, subject, body)

    return {"message": "OTP resent successfully"}


@router.post("/auth/forgot-password")
def auth_forgot_password(
    payload: EmailRequest,
    cfg: Config = Depends(get_cfg),
    mailer: Any = Depends(get_mailer),
) -> Dict[str, Any]:
    """Issue a password-reset OTP stored on the user row."""
    email = normalize_email(payload.email)
    if not email:
        raise HTTPException(status_code=400, detail="Email is required")

    with _server_errors("Server error sending reset OTP"):
        with connect(cfg.DB_DSN) as conn:
            user = get_user_by_email(conn, email)
            if user is None:
                raise HTTPException(status_code=404, detail="User not found")
            otp = generate_otp()
            set_user_otp(conn, int(user["user_id"]), otp=otp, expires=otp_expiry_iso(cfg))

        subject, body = password_reset_message(cfg, otp)
        mailer.send(email, subject, body)

    return {"message": "OTP sent to your email"}


@router.post("/auth/reset-password")
def auth_reset_password(payload: ResetPasswordRequest, cfg: Config = Depends(get_cfg)) -> Dict[str, Any]:
    email = normalize_email(payload.email)
    if not email or payload.otp is None or str(payload.otp).strip() == "" or not payload.newPassword:
        raise HTTPException(status_code=400, detail="Email, OTP and new password required")

    with _server_errors("Server error verifying OTP reset"):
        with connect(cfg.DB_DSN) as conn:
            user = get_user_by_email(conn, email)
            if user is None:
                raise HTTPException(status_code=404, detail="User not found")
            if not otp_matches(user["otp"], payload.otp) or is_expired(user["otp_expires"]):
                raise HTTPException(status_code=400, detail="Invalid or expired OTP")

            reset_user_password(conn, int(user["user_id"]), payload.newPassword)

    return {"message": "Password updated successfully"}


@router.get("/auth/me")
def auth_me(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    return {"user": user}


# -----------------------------
# Admin
# -----------------------------


@router.get("/admin/users")
def admin_list_users(
    cfg: Config = Depends(get_cfg),
    _admin: Dict[str, Any] = Depends(require_admin),
) -> Dict[str, Any]:
    with _server_errors("Server error listing users"):
        with connect(cfg.DB_DSN) as conn:
            return {"users": list_users(conn)}


@router.post("/admin/users", status_code=201)
def admin_create_user(
    payload: CreateUserRequest,
    cfg: Config = Depends(get_cfg),
    _admin: Dict[str, Any] = Depends(require_admin),
) -> Dict[str, Any]:
    with _server_errors("Server error creating user"):
        with connect(cfg.DB_DSN) as conn:
            try:
                u = create_user(
                    conn,
                    username=payload.username,
                    email=payload.email,
                    password=payload.password,
                    name=payload.name,
                    phone=payload.phone,
                    role=payload.role,
                )
            except ValueError as e:
                detail = str(e)
                if detail == "email_exists":
                    raise HTTPException(status_code=409, detail="Email already registered")
                raise HTTPException(status_code=400, detail=detail)
    return {"message": "User created", "user": u}


# -----------------------------
# Analytics
# -----------------------------

_dashboard_user = require_roles("admin", "staff")


@router.get("/analytics/timeseries")
def analytics_timeseries(
    period: str = Query("30d"),
    cfg: Config = Depends(get_cfg),
    _user: Dict[str, Any] = Depends(_dashboard_user),
) -> Dict[str, Any]:
    days = parse_period_days(period)
    with _server_errors("Server error"):
        with connect(cfg.DB_DSN) as conn:
            series = time_series(conn, days)
    return {"status": "success", "data": series}


@router.get("/analytics/kpis")
def analytics_kpis(
    cfg: Config = Depends(get_cfg),
    _user: Dict[str, Any] = Depends(_dashboard_user),
) -> Dict[str, Any]:
    with _server_errors("Server error"):
        with connect(cfg.DB_DSN) as conn:
            data = kpis(conn)
    return {"status": "success", "data": data}


# -----------------------------
# App
# -----------------------------


async def _http_error(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse({"message": exc.detail}, status_code=exc.status_code, headers=getattr(exc, "headers", None))


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    _debug(f"Rejected request body on {request.url.path}: {len(exc.errors())} error(s)")
    return JSONResponse({"message": "Invalid request body"}, status_code=400)


def create_app(cfg: Config | None = None, mailer: Any = None) -> FastAPI:
    """Build the API with its configuration and mail transport injected."""
    cfg = cfg or load_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # Ensure schema exists.
        init_db(cfg.DB_DSN)

        # Bootstrap first admin if needed (only when users table is empty)
        boot = bootstrap_admin_if_needed(cfg)
        if boot:
            _debug(f"Bootstrapped initial admin user: email={boot.get('email')} role={boot.get('role')}")
        yield

    app = FastAPI(title="Manifest API", version=__version__, lifespan=lifespan)
    app.state.cfg = cfg
    app.state.mailer = mailer if mailer is not None else SmtpMailer(cfg)

    # CORS is mainly needed for local development (Vite on :5173 -> API on :8000).
    cors_origins = [o.strip() for o in (cfg.CORS_ALLOW_ORIGINS or "").split(",") if o.strip()]
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(HTTPException, _http_error)
    app.add_exception_handler(RequestValidationError, _validation_error)

    app.include_router(router)
    return app


app = create_app()
