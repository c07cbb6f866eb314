"""FastAPI application exposing the overtime engine over JSON."""
from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Callable, Dict, List, Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel, EmailStr, Field

from .config import Settings
from .database import Database, resolve_database_path
from .engine import OvertimeEngine
from .errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    OvertimeError,
    PeriodClosedError,
    ValidationError,
)
from .models import Actor, MonthlyTotal, OvertimeEntry, OvertimePeriod, User
from .periods import REASON_MAX_LENGTH
from .security import TokenAuth, load_tokens_from_env
from .workflow import NOTE_MAX_LENGTH

logger = logging.getLogger("overtime.api")

DATE_PATTERN = r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$"
TIME_PATTERN = r"^[0-9]{2}:[0-9]{2}$"

# Order matters: subclasses before their bases.
_ERROR_STATUS = (
    (PeriodClosedError, status.HTTP_409_CONFLICT),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
)


class UserResponse(BaseModel):
    id: int
    name: str
    email: Optional[str]
    role: str
    created_at: datetime


class CreateUserRequest(BaseModel):
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=100)
    temp_password: str = Field(..., min_length=6)
    role: Literal["admin", "manager", "member"] = "member"


class CreateMemberRequest(BaseModel):
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=100)
    temp_password: str = Field(..., min_length=6)


class CreatedResponse(BaseModel):
    id: int


class SplitRequest(BaseModel):
    date: str = Field(..., pattern=DATE_PATTERN)
    start_time: str = Field(..., pattern=TIME_PATTERN)
    end_time: str = Field(..., pattern=TIME_PATTERN)
    is_public_holiday: bool = False
    is_designated_day_off: bool = False


class SplitResponse(BaseModel):
    minutes_150: int
    minutes_200: int
    total_minutes: int


class CreateEntryRequest(SplitRequest):
    note: Optional[str] = Field(default=None, max_length=NOTE_MAX_LENGTH)


class EntryResponse(BaseModel):
    id: int
    user_id: int
    user_name: Optional[str] = None
    date: str
    start_time: str
    end_time: str
    minutes_150: int
    minutes_200: int
    total_minutes: int
    is_public_holiday: bool
    is_designated_day_off: bool
    note: Optional[str]
    status: str
    created_at: datetime


class StatusChangeRequest(BaseModel):
    entry_id: int = Field(..., gt=0)
    action: Literal["approve", "reject"]


class OpenPeriodRequest(BaseModel):
    user_id: int = Field(..., gt=0)
    start_date: str = Field(..., pattern=DATE_PATTERN)
    end_date: str = Field(..., pattern=DATE_PATTERN)
    reason: Optional[str] = Field(default=None, max_length=REASON_MAX_LENGTH)


class PeriodResponse(BaseModel):
    id: int
    user_id: int
    start_date: str
    end_date: str
    opened_by_manager_id: Optional[int]
    reason: Optional[str]
    created_at: datetime


class MonthlyTotalResponse(BaseModel):
    user_id: int
    user_name: str
    approved_150: int
    approved_200: int
    pending_150: int
    pending_200: int


class TotalsResponse(BaseModel):
    month: str
    totals: List[MonthlyTotalResponse]


class ClearResponse(BaseModel):
    deleted: int


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        created_at=user.created_at,
    )


def entry_to_response(entry: OvertimeEntry) -> EntryResponse:
    return EntryResponse(
        id=entry.id,
        user_id=entry.user_id,
        user_name=entry.user_name,
        date=entry.date,
        start_time=entry.start_time,
        end_time=entry.end_time,
        minutes_150=entry.minutes_150,
        minutes_200=entry.minutes_200,
        total_minutes=entry.total_minutes,
        is_public_holiday=entry.is_public_holiday,
        is_designated_day_off=entry.is_designated_day_off,
        note=entry.note,
        status=entry.status,
        created_at=entry.created_at,
    )


def period_to_response(period: OvertimePeriod) -> PeriodResponse:
    return PeriodResponse(
        id=period.id,
        user_id=period.user_id,
        start_date=period.start_date,
        end_date=period.end_date,
        opened_by_manager_id=period.opened_by_manager_id,
        reason=period.reason,
        created_at=period.created_at,
    )


def total_to_response(total: MonthlyTotal) -> MonthlyTotalResponse:
    return MonthlyTotalResponse(
        user_id=total.user_id,
        user_name=total.user_name,
        approved_150=total.approved_150,
        approved_200=total.approved_200,
        pending_150=total.pending_150,
        pending_200=total.pending_200,
    )


def status_for_error(exc: OvertimeError) -> int:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _build_auth_dependency(database: Database) -> Callable[..., User]:
    basic_security = HTTPBasic(auto_error=False)

    def dependency(credentials: HTTPBasicCredentials | None = Depends(basic_security)) -> User:
        if credentials is not None:
            user = database.authenticate_user(credentials.username, credentials.password)
            if user is not None:
                return user

        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Basic"},
        )

    return dependency


def create_app(
    *,
    database: Optional[Database] = None,
    settings: Optional[Settings] = None,
    admin_tokens: Optional[List[str]] = None,
    initialize_database: bool = False,
) -> FastAPI:
    """Create the JSON API application."""

    if settings is None:
        settings = Settings()

    if database is None:
        db_path = settings.database_path or resolve_database_path(os.getenv("OVERTIME_DB_PATH"))
        database = Database(db_path, busy_timeout=settings.busy_timeout)
        database.initialize()
    elif initialize_database:
        database.initialize()

    if admin_tokens is None:
        admin_tokens = list(settings.admin_tokens) or load_tokens_from_env()

    engine = OvertimeEngine(database, settings)
    admin_auth = TokenAuth(admin_tokens)
    current_user = _build_auth_dependency(database)

    app = FastAPI(
        title="Overtime Accounting Service",
        description="Overtime logging, approval and monthly premium totals",
        version="1.0.0",
    )
    app.state.database = database
    app.state.engine = engine

    def current_actor(user: User = Depends(current_user)) -> Actor:
        return Actor.from_user(user)

    @app.get("/healthz")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/v1/me", response_model=UserResponse)
    async def read_current_user(user: User = Depends(current_user)) -> UserResponse:
        return user_to_response(user)

    # ------------------------------------------------------------------
    # Own entries
    # ------------------------------------------------------------------
    @app.post("/v1/overtime/split", response_model=SplitResponse)
    async def preview_split(request: SplitRequest, _: User = Depends(current_user)) -> SplitResponse:
        result = engine.split(
            request.date,
            request.start_time,
            request.end_time,
            is_public_holiday=request.is_public_holiday,
            is_designated_day_off=request.is_designated_day_off,
        )
        return SplitResponse(
            minutes_150=result.minutes_150,
            minutes_200=result.minutes_200,
            total_minutes=result.total_minutes,
        )

    @app.post("/v1/overtime", status_code=status.HTTP_201_CREATED, response_model=EntryResponse)
    async def create_entry(request: CreateEntryRequest, actor: Actor = Depends(current_actor)) -> EntryResponse:
        entry = engine.workflow.create_entry(
            actor.user_id,
            request.date,
            request.start_time,
            request.end_time,
            is_public_holiday=request.is_public_holiday,
            is_designated_day_off=request.is_designated_day_off,
            note=request.note,
            actor=actor,
        )
        return entry_to_response(entry)

    @app.get("/v1/overtime", response_model=List[EntryResponse])
    async def list_own_entries(month: str, user: User = Depends(current_user)) -> List[EntryResponse]:
        return [entry_to_response(entry) for entry in engine.workflow.list_entries(user.id, month)]

    @app.delete("/v1/overtime/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_entry(entry_id: int, actor: Actor = Depends(current_actor)) -> None:
        engine.workflow.delete_entry(actor, entry_id)

    # ------------------------------------------------------------------
    # Manager routes
    # ------------------------------------------------------------------
    @app.get("/v1/manager/members", response_model=List[UserResponse])
    async def list_members(actor: Actor = Depends(current_actor)) -> List[UserResponse]:
        return [user_to_response(member) for member in engine.list_team_members(actor)]

    @app.post("/v1/manager/members", status_code=status.HTTP_201_CREATED, response_model=UserResponse)
    async def create_member(request: CreateMemberRequest, actor: Actor = Depends(current_actor)) -> UserResponse:
        member = engine.create_team_member(actor, request.name, request.email, request.temp_password)
        return user_to_response(member)

    @app.put("/v1/manager/members/{user_id}", response_model=UserResponse)
    async def add_member(user_id: int, actor: Actor = Depends(current_actor)) -> UserResponse:
        return user_to_response(engine.add_team_member(actor, user_id))

    @app.get("/v1/manager/periods", response_model=List[PeriodResponse])
    async def list_periods(user_id: int, actor: Actor = Depends(current_actor)) -> List[PeriodResponse]:
        return [period_to_response(period) for period in engine.periods.list_periods(user_id, actor=actor)]

    @app.post("/v1/manager/periods", status_code=status.HTTP_201_CREATED, response_model=PeriodResponse)
    async def open_period(request: OpenPeriodRequest, actor: Actor = Depends(current_actor)) -> PeriodResponse:
        period = engine.periods.open_period(
            actor,
            request.user_id,
            request.start_date,
            request.end_date,
            reason=request.reason,
        )
        return period_to_response(period)

    @app.delete("/v1/manager/periods/{period_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def close_period(period_id: int, actor: Actor = Depends(current_actor)) -> None:
        engine.periods.close_period(actor, period_id)

    @app.get("/v1/manager/approvals", response_model=List[EntryResponse])
    async def list_approvals(month: str, actor: Actor = Depends(current_actor)) -> List[EntryResponse]:
        return [entry_to_response(entry) for entry in engine.workflow.list_team_entries(actor, month)]

    @app.post("/v1/manager/approvals", response_model=EntryResponse)
    async def change_status(request: StatusChangeRequest, actor: Actor = Depends(current_actor)) -> EntryResponse:
        entry = engine.workflow.set_status(actor, request.entry_id, request.action)
        return entry_to_response(entry)

    @app.get("/v1/manager/totals", response_model=TotalsResponse)
    async def monthly_totals(month: str, actor: Actor = Depends(current_actor)) -> TotalsResponse:
        totals = engine.aggregation.monthly_totals(actor, month)
        return TotalsResponse(month=month, totals=[total_to_response(total) for total in totals])

    @app.post("/v1/manager/overtime/clear", response_model=ClearResponse)
    async def clear_entries(actor: Actor = Depends(current_actor)) -> ClearResponse:
        return ClearResponse(deleted=engine.workflow.clear_all(actor))

    # ------------------------------------------------------------------
    # Administration (bearer token)
    # ------------------------------------------------------------------
    @app.get("/v1/admin/users", response_model=List[UserResponse], dependencies=[Depends(admin_auth)])
    async def admin_list_users() -> List[UserResponse]:
        return [user_to_response(user) for user in database.list_users()]

    @app.post(
        "/v1/admin/users",
        status_code=status.HTTP_201_CREATED,
        response_model=CreatedResponse,
        dependencies=[Depends(admin_auth)],
    )
    async def admin_create_user(request: CreateUserRequest) -> CreatedResponse:
        user = engine.register_user(request.name, request.email, request.temp_password, request.role)
        return CreatedResponse(id=user.id)

    @app.delete(
        "/v1/admin/users/{user_id}",
        status_code=status.HTTP_204_NO_CONTENT,
        dependencies=[Depends(admin_auth)],
    )
    async def admin_delete_user(user_id: int) -> None:
        if not database.delete_user(user_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        logger.info("Deleted user %s", user_id)

    @app.exception_handler(OvertimeError)
    async def handle_overtime_error(_: Request, exc: OvertimeError):
        return JSONResponse(
            status_code=status_for_error(exc),
            content={"detail": str(exc), "code": exc.code},
        )

    return app


__all__ = ["create_app", "entry_to_response", "status_for_error"]
