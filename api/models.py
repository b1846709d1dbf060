"""Shared API request and response models for the Bus Booking System."""

from datetime import date
from typing import Any, Optional, Literal
from uuid import UUID

from pydantic import BaseModel, field_validator

from Bookings.booking import Booking, BookingConfirmation
from Bookings.drafts import BookingDraft
from Bookings.receipts import ReceiptVerification
from Bookings.reschedule import RescheduleRequest
from Bookings.seats import SeatLockResult, SeatMap
from Content.content import BlogPost, ContactSubmission, FAQ, GalleryCategory, GalleryImage, Review
from Fleet.structure import Branch, BusSchedule, FleetOption, FleetType, Location, Route
from Users.admin import AdminUser
from Users.driver import Driver, DriverAssignment, DriverStatus, PassengerManifest
from Users.user import Profile
from utils import normalize_time


class RouteFields(BaseModel):
    """Payload accepted when updating an existing route."""

    from_location : Optional[str] = None
    to_location : Optional[str] = None
    duration : Optional[str] = None
    departure_times : Optional[list[str]] = None
    price : Optional[float] = None
    is_popular : Optional[bool] = None
    branch_id : Optional[UUID] = None


class FleetFields(BaseModel):
    """Payload accepted when updating an existing fleet type."""

    name : Optional[str] = None
    description : Optional[str] = None
    capacity : Optional[int] = None
    features : Optional[list[str] | str] = None
    image_url : Optional[str] = None
    base_price_multiplier : Optional[float] = None
    branch_id : Optional[UUID] = None


class LocationFields(BaseModel):
    """Payload accepted when updating an existing location."""

    name : Optional[str] = None
    type : Optional[Literal['from', 'to']] = None
    branch_id : Optional[UUID] = None


class ScheduleFields(BaseModel):
    """Payload accepted when updating an existing bus schedule."""

    departure_date : Optional[date] = None
    departure_time : Optional[str] = None
    available_seats : Optional[int] = None
    status : Optional[Literal['active', 'maintenance', 'cancelled']] = None

    @field_validator("departure_time")
    @classmethod
    def normalize_departure(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else normalize_time(value)


class BranchFields(BaseModel):
    """Payload accepted when updating an existing branch."""

    name : Optional[str] = None
    city : Optional[str] = None
    address : Optional[str] = None
    phone : Optional[str] = None
    email : Optional[str] = None
    is_active : Optional[bool] = None


class DriverFields(BaseModel):
    """Payload accepted when updating a driver."""

    full_name : Optional[str] = None
    phone : Optional[str] = None
    license_number : Optional[str] = None
    experience_years : Optional[int] = None
    status : Optional[DriverStatus] = None
    branch_id : Optional[UUID] = None


class AssignmentRequest(BaseModel):
    """Bus and/or route a driver is put on."""

    bus_id : Optional[UUID] = None
    route_id : Optional[UUID] = None


class ProfileFields(BaseModel):
    """Payload accepted when updating a passenger profile."""

    full_name : Optional[str] = None
    phone : Optional[str] = None
    avatar_url : Optional[str] = None


class MessageResponse(BaseModel):
    """Envelope for simple string responses."""

    status: int
    message: str


class RouteResponse(BaseModel):

    status: int
    route: Route


class RouteListResponse(BaseModel):

    status: int
    routes: list[Route]


class FleetOptionsResponse(BaseModel):

    status: int
    route_id: UUID
    fleet_options: list[FleetOption]


class AvailableFleetResponse(BaseModel):

    status: int
    buses: list[dict[str, Any]]


class LocationOptionsResponse(BaseModel):

    status: int
    from_locations: list[str]
    to_locations: list[str]
    all_locations: list[str]


class PricingBackfillResponse(BaseModel):

    status: int
    created: int


class ScheduleResponse(BaseModel):

    status: int
    schedule: BusSchedule


class ScheduleListResponse(BaseModel):

    status: int
    schedules: list[BusSchedule]


class SeatMapResponse(BaseModel):

    status: int
    seat_map: SeatMap


class SeatLockResponse(BaseModel):

    status: int
    result: SeatLockResult


class ReleasedLocksResponse(BaseModel):

    status: int
    released: int


class BookingResponse(BaseModel):
    """Envelope for responses that include a booking resource."""

    status: int
    booking: Booking


class BookingListResponse(BaseModel):

    status: int
    bookings: list[Booking]


class BookingConfirmationResponse(BaseModel):

    status: int
    confirmation: BookingConfirmation


class ManualBookingResponse(BaseModel):

    status: int
    booking: Booking
    receipt_id: Optional[UUID] = None


class BookingDraftResponse(BaseModel):

    status: int
    draft: Optional[BookingDraft]


class RescheduleResponse(BaseModel):

    status: int
    request: RescheduleRequest
    status_text: str


class RescheduleListResponse(BaseModel):

    status: int
    requests: list[RescheduleRequest]


class ReceiptDetailsResponse(BaseModel):

    status: int
    receipt: dict[str, Any]


class ReceiptVerificationResponse(BaseModel):

    status: int
    verification: ReceiptVerification


class AdminResponse(BaseModel):

    status: int
    admin: AdminUser


class AdminRowsResponse(BaseModel):
    """Envelope for the row sets returned by the admin reporting procedures."""

    status: int
    branch_id: Optional[str] = None
    rows: list[dict[str, Any]]


class AnalyticsResponse(BaseModel):

    status: int
    branch_id: Optional[str] = None
    analytics: dict[str, Any]


class BranchResponse(BaseModel):

    status: int
    branch: Branch


class BranchListResponse(BaseModel):

    status: int
    branches: list[Branch]


class ProfileResponse(BaseModel):

    status: int
    profile: Profile


class ManifestResponse(BaseModel):

    status: int
    manifest: PassengerManifest


class BlogPostResponse(BaseModel):

    status: int
    post: BlogPost


class BlogPostListResponse(BaseModel):

    status: int
    posts: list[BlogPost]


class GalleryCategoryListResponse(BaseModel):

    status: int
    categories: list[GalleryCategory]


class GalleryImageResponse(BaseModel):

    status: int
    image: GalleryImage


class GalleryImageListResponse(BaseModel):

    status: int
    images: list[GalleryImage]


class FAQListResponse(BaseModel):

    status: int
    faqs: list[FAQ]


class FleetTypeResponse(BaseModel):

    status: int
    fleet: FleetType


class FleetTypeListResponse(BaseModel):

    status: int
    fleet: list[FleetType]


class LocationResponse(BaseModel):

    status: int
    location: Location


class LocationListResponse(BaseModel):

    status: int
    locations: list[Location]


class DriverResponse(BaseModel):

    status: int
    driver: Driver


class DriverListResponse(BaseModel):

    status: int
    drivers: list[Driver]


class DriverAssignmentResponse(BaseModel):

    status: int
    assignment: DriverAssignment


class DriverAssignmentListResponse(BaseModel):

    status: int
    assignments: list[DriverAssignment]


class ReviewResponse(BaseModel):

    status: int
    review: Review


class ReviewListResponse(BaseModel):

    status: int
    reviews: list[Review]


class ContactSubmissionResponse(BaseModel):

    status: int
    submission: ContactSubmission


class ContactSubmissionListResponse(BaseModel):

    status: int
    submissions: list[ContactSubmission]
