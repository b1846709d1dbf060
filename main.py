'''
FastAPI application for the Bus Booking System.

The app sits in front of the hosted Supabase backend and exposes endpoints to
search routes, hold seats, book and reschedule trips, verify receipts and run
the admin back office.

Available endpoints:
- /routes: Routes, fleet types, fleet pricing, bus schedules and location options.
- /locations: Origins and destinations managed per branch.
- /seats: Seat maps and temporary seat holds.
- /bookings: Passenger bookings, walk-in bookings and booking drafts.
- /reschedule: Reschedule requests and admin decisions.
- /receipts: Receipt details, verification and sign-off.
- /admin: Admin login, branch-scoped reporting, admin accounts and branches.
- /users: Passenger profiles.
- /drivers: Driver accounts, assignments and passenger manifests.
- /content: Blog posts, gallery, FAQs, reviews and contact messages.
'''

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from Bookings.drafts import BookingDraftStore
from Database.db import BookingDB
from Database.deps import get_settings

# routers
from api.admin_routes import admin_router
from api.booking_routes import booking_router
from api.content_routes import content_router
from api.driver_routes import driver_router
from api.fleet_routes import fleet_router
from api.location_routes import location_router
from api.receipt_routes import receipt_router
from api.reschedule_routes import reschedule_router
from api.seat_routes import seat_router
from api.user_routes import user_router

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    '''Send every record to a single stream handler; keep the HTTP client quiet.'''
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z"))
    root.addHandler(handler)
    root.setLevel(level)
    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup ---
    settings = get_settings()
    configure_logging(settings.log_level)
    app.state.db = BookingDB(settings.supabase_url, settings.supabase_key).client   # create ONCE
    app.state.drafts = BookingDraftStore(settings.booking_draft_ttl_hours)
    logging.getLogger(__name__).info("Bus Booking API started")
    yield

# Initialize FastAPI app
app = FastAPI(title="Bus Booking System API", version="1.0.0", lifespan=lifespan)

app.include_router(fleet_router, prefix="/routes", tags=["Routes"])
app.include_router(location_router, prefix="/locations", tags=["Locations"])
app.include_router(seat_router, prefix="/seats", tags=["Seats"])
app.include_router(booking_router, prefix="/bookings", tags=["Bookings"])
app.include_router(reschedule_router, prefix="/reschedule", tags=["Reschedule"])
app.include_router(receipt_router, prefix="/receipts", tags=["Receipts"])
app.include_router(admin_router, prefix="/admin", tags=["Admin"])
app.include_router(user_router, prefix="/users", tags=["Users"])
app.include_router(driver_router, prefix="/drivers", tags=["Drivers"])
app.include_router(content_router, prefix="/content", tags=["Content"])

@app.get("/")
async def root():
    return {"message": "Welcome to the Bus Booking System API"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="localhost", port=8000, reload=True)
