"""FastAPI application that exposes user accounts and display name lookups."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator, model_validator

from .database import Database
from .errors import (
    DisplayNameAllocationError,
    DisplayNameTakenError,
    InvalidDisplayNameError,
)
from .models import DisplayNameSuggestion, User
from .naming import normalize_display_name
from .security import TokenAuth

logger = logging.getLogger("roster.api")


class CreateUserRequest(BaseModel):
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)
    email: Optional[str] = Field(default=None, max_length=255)
    password: str = Field(..., min_length=12, max_length=1024)
    display_name: Optional[str] = Field(default=None, max_length=64)

    @field_validator("first_name", "last_name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        return value.strip()

    @model_validator(mode="after")
    def _ensure_some_name(self):  # type: ignore[override]
        if not self.first_name and not self.last_name and self.display_name is None:
            raise ValueError("Provide a first name, a last name or a display name")
        return self


class UpdateUserRequest(BaseModel):
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    email: Optional[str] = Field(default=None, max_length=255)


class UserResponse(BaseModel):
    id: int
    first_name: str
    last_name: str
    full_name: str
    display_name: Optional[str]
    email: Optional[str]
    created_at: datetime


class SuggestionResponse(BaseModel):
    display_name: str
    strategy: str


class AvailabilityResponse(BaseModel):
    display_name: str
    available: bool


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        first_name=user.first_name,
        last_name=user.last_name,
        full_name=user.full_name,
        display_name=user.display_name,
        email=user.email,
        created_at=user.created_at,
    )


def suggestion_to_response(suggestion: DisplayNameSuggestion) -> SuggestionResponse:
    return SuggestionResponse(display_name=suggestion.display_name, strategy=suggestion.strategy)


def create_app(
    *,
    database: Database,
    auth: Optional[TokenAuth] = None,
) -> FastAPI:
    """Build the API application around an initialised :class:`Database`.

    The naming policy is whatever *database* was constructed with.
    """

    dependencies = [Depends(auth)] if auth is not None else []
    app = FastAPI(title="Roster API", dependencies=dependencies)
    app.state.database = database

    def get_db() -> Database:
        return app.state.database

    def get_user_or_404(user_id: int, db: Database = Depends(get_db)) -> User:
        user = db.get_user(user_id)
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        return user

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
    def create_user(payload: CreateUserRequest, db: Database = Depends(get_db)) -> UserResponse:
        try:
            user = db.create_user(
                payload.first_name,
                payload.last_name,
                payload.email,
                payload.password,
                display_name=payload.display_name,
            )
        except (DisplayNameTakenError, InvalidDisplayNameError, DisplayNameAllocationError):
            raise
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        return user_to_response(user)

    @app.get("/users", response_model=List[UserResponse])
    def list_users(db: Database = Depends(get_db)) -> List[UserResponse]:
        return [user_to_response(user) for user in db.list_users()]

    @app.get("/users/by-display-name/{display_name}", response_model=UserResponse)
    def read_user_by_display_name(display_name: str, db: Database = Depends(get_db)) -> UserResponse:
        user = db.get_user_by_display_name(display_name)
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        return user_to_response(user)

    @app.get("/users/{user_id}", response_model=UserResponse)
    def read_user(user: User = Depends(get_user_or_404)) -> UserResponse:
        return user_to_response(user)

    @app.patch("/users/{user_id}", response_model=UserResponse)
    def update_user(
        payload: UpdateUserRequest,
        user: User = Depends(get_user_or_404),
        db: Database = Depends(get_db),
    ) -> UserResponse:
        first_name = payload.first_name if payload.first_name is not None else user.first_name
        last_name = payload.last_name if payload.last_name is not None else user.last_name
        email = payload.email if "email" in payload.model_fields_set else user.email
        if not first_name.strip() and not last_name.strip():
            raise HTTPException(status_code=422, detail="Name must not be empty")
        try:
            updated = db.update_user_profile(user.id, first_name=first_name, last_name=last_name, email=email)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        return user_to_response(updated)

    @app.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_user(user: User = Depends(get_user_or_404), db: Database = Depends(get_db)) -> Response:
        db.delete_user(user.id)
        logger.info("Deleted user %s (%s)", user.id, user.display_name)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/display-names/suggest", response_model=SuggestionResponse)
    def suggest_display_name(
        first_name: str = Query(default="", max_length=100),
        last_name: str = Query(default="", max_length=100),
        db: Database = Depends(get_db),
    ) -> SuggestionResponse:
        return suggestion_to_response(db.allocator.suggest(first_name, last_name))

    @app.get("/display-names/{display_name}/availability", response_model=AvailabilityResponse)
    def display_name_availability(display_name: str, db: Database = Depends(get_db)) -> AvailabilityResponse:
        normalized = normalize_display_name(display_name)
        return AvailabilityResponse(display_name=normalized, available=db.allocator.is_available(normalized))

    @app.exception_handler(InvalidDisplayNameError)
    async def handle_invalid_display_name(_: object, exc: InvalidDisplayNameError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(DisplayNameTakenError)
    async def handle_display_name_taken(_: object, exc: DisplayNameTakenError):
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})

    @app.exception_handler(DisplayNameAllocationError)
    async def handle_allocation_error(_: object, exc: DisplayNameAllocationError):
        logger.error("Display name allocation failed: %s", exc)
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": str(exc)})

    return app


__all__ = ["create_app", "user_to_response"]
