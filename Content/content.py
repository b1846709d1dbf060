'''
Site content: blog posts, gallery categories and images, FAQs, passenger
reviews and contact form submissions.
'''
from uuid import UUID, uuid4
from typing import Any, Literal, Optional
from datetime import datetime, timezone
from pydantic import BaseModel, Field, field_validator, model_validator
from Users.user import normalize_email
from utils import slugify


class BlogPost(BaseModel):

    id : UUID = Field(default_factory=lambda: uuid4(), frozen=True)
    title : str
    slug : str = ""
    excerpt : Optional[str] = None
    content : Optional[str] = None
    featured_image_url : Optional[str] = None
    author_id : Optional[UUID] = None
    is_published : bool = False
    published_at : Optional[datetime] = None
    created_at : datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at : datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def fill_slug_and_publication(self):
        if not self.title.strip():
            raise ValueError("Post title is required.")
        self.slug = slugify(self.slug or self.title)
        if self.is_published and self.published_at is None:
            self.published_at = datetime.now(timezone.utc)
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "title": self.title,
            "slug": self.slug,
            "excerpt": self.excerpt,
            "content": self.content,
            "featured_image_url": self.featured_image_url,
            "author_id": None if self.author_id is None else str(self.author_id),
            "is_published": self.is_published,
            "published_at": None if self.published_at is None else self.published_at.isoformat(),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class BlogPostFields(BaseModel):
    """Payload accepted when updating an existing post."""

    title : Optional[str] = None
    slug : Optional[str] = None
    excerpt : Optional[str] = None
    content : Optional[str] = None
    featured_image_url : Optional[str] = None
    is_published : Optional[bool] = None


class GalleryCategory(BaseModel):

    id : UUID = Field(default_factory=lambda: uuid4(), frozen=True)
    name : str
    slug : str = ""
    description : Optional[str] = None
    display_order : int = 0
    is_active : bool = True

    @model_validator(mode="after")
    def fill_slug(self):
        self.slug = slugify(self.slug or self.name)
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "display_order": self.display_order,
            "is_active": self.is_active,
        }


class GalleryImage(BaseModel):

    id : UUID = Field(default_factory=lambda: uuid4(), frozen=True)
    category_id : UUID
    title : str
    image_url : str
    alt_text : Optional[str] = None
    description : Optional[str] = None
    display_order : int = 0
    is_active : bool = True
    is_featured : bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "category_id": str(self.category_id),
            "title": self.title,
            "image_url": self.image_url,
            "alt_text": self.alt_text,
            "description": self.description,
            "display_order": self.display_order,
            "is_active": self.is_active,
            "is_featured": self.is_featured,
        }


class FAQ(BaseModel):

    id : UUID = Field(default_factory=lambda: uuid4(), frozen=True)
    question : str
    answer : str
    category : str = "general"
    display_order : int = 0
    is_active : bool = True


class Review(BaseModel):
    """A passenger's star rating; hidden from the public site until an admin approves it."""

    id : UUID = Field(default_factory=lambda: uuid4(), frozen=True)
    user_id : UUID
    rating : int = Field(ge=1, le=5)
    review_text : str
    is_approved : bool = False
    created_at : datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def require_text(self):
        self.review_text = self.review_text.strip()
        if not self.review_text:
            raise ValueError("Review text is required.")
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "user_id": str(self.user_id),
            "rating": self.rating,
            "review_text": self.review_text,
            "is_approved": self.is_approved,
            "created_at": self.created_at.isoformat(),
        }


ContactStatus = Literal['new', 'read', 'replied', 'closed']


class ContactSubmission(BaseModel):
    """A message sent through the public contact form."""

    id : UUID = Field(default_factory=lambda: uuid4(), frozen=True)
    name : str
    email : str
    subject : Optional[str] = None
    message : str
    status : ContactStatus = 'new'
    admin_notes : Optional[str] = None
    created_at : datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at : datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("email")
    @classmethod
    def email_lowercase(cls, value: str) -> str:
        return normalize_email(value)

    @model_validator(mode="after")
    def require_fields(self):
        if not self.name.strip() or not self.message.strip():
            raise ValueError("Name and message are required.")
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "email": self.email,
            "subject": self.subject,
            "message": self.message,
            "status": self.status,
            "admin_notes": self.admin_notes,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class ContactUpdate(BaseModel):
    """Admin follow-up on a contact submission."""

    status : Optional[ContactStatus] = None
    admin_notes : Optional[str] = None
