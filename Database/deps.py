"""FastAPI dependencies shared by the routers."""

from functools import lru_cache
from typing import Any

from fastapi import Depends, Request

from Bookings.drafts import BookingDraftStore
from Database.config import BookingSettings, load_settings
from Database.rpc import BackendRPC


def get_db(request: Request) -> Any:
    """Return the Supabase client created once in the application lifespan."""
    return request.app.state.db


def get_rpc(db=Depends(get_db)) -> BackendRPC:
    return BackendRPC(db)


def get_draft_store(request: Request) -> BookingDraftStore:
    """Return the booking draft store shared by every request of the process."""
    return request.app.state.drafts


@lru_cache(maxsize=1)
def get_settings() -> BookingSettings:
    return load_settings()
