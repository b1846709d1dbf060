"""Blog, gallery, FAQ, review and contact form FastAPI routes."""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from Content.content import (
    FAQ,
    BlogPost,
    BlogPostFields,
    ContactStatus,
    ContactSubmission,
    ContactUpdate,
    GalleryCategory,
    GalleryImage,
    Review,
)
from Database.deps import get_db
from Users.admin import AdminUser

from .models import (
    BlogPostListResponse,
    BlogPostResponse,
    ContactSubmissionListResponse,
    ContactSubmissionResponse,
    FAQListResponse,
    GalleryCategoryListResponse,
    GalleryImageListResponse,
    GalleryImageResponse,
    MessageResponse,
    ReviewListResponse,
    ReviewResponse,
)
from .security import get_current_admin
from .utils import _execute, _fetch_record, _parse_id, _require_updates

logger = logging.getLogger(__name__)

POSTS_TABLE_NAME = "blog_posts"
CATEGORIES_TABLE_NAME = "gallery_categories"
IMAGES_TABLE_NAME = "gallery_images"
FAQS_TABLE_NAME = "faqs"
REVIEWS_TABLE_NAME = "reviews"
CONTACT_TABLE_NAME = "contact_submissions"
POST = "post"
REVIEW = "review"
SUBMISSION = "submission"

# mount api router
content_router = APIRouter()


async def _ensure_unique_slug(db: Any, post: BlogPost, failure_detail: str) -> None:
    existing = await _execute(
        lambda: db.table(POSTS_TABLE_NAME).select("id").eq("slug", post.slug).execute(),
        failure_detail,
        "Failed to query existing posts",
        {"slug": post.slug},
    )
    if any(str(row.get("id")) != str(post.id) for row in existing.data):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"A post with slug '{post.slug}' already exists",
        )


@content_router.get("/health", response_model=MessageResponse)
async def health_check() -> MessageResponse:
    """Quick liveness check for the content service."""

    return MessageResponse(status=status.HTTP_200_OK, message="Content service is healthy")


@content_router.get("/blog", response_model=BlogPostListResponse)
async def list_published_posts(limit: Optional[int] = None, db=Depends(get_db)) -> BlogPostListResponse:
    """Published posts, newest first."""

    def query():
        builder = (
            db.table(POSTS_TABLE_NAME)
            .select("*")
            .eq("is_published", True)
            .order("published_at", desc=True)
        )
        if limit is not None:
            builder = builder.limit(limit)
        return builder.execute()

    result = await _execute(
        query,
        "Unable to retrieve posts due to an internal error.",
        "Failed to list published posts",
        {},
    )
    return BlogPostListResponse(status=status.HTTP_200_OK, posts=[BlogPost(**row) for row in result.data])


@content_router.get("/blog/all", response_model=BlogPostListResponse)
async def list_all_posts(
    db=Depends(get_db), admin: AdminUser = Depends(get_current_admin)
) -> BlogPostListResponse:
    result = await _execute(
        lambda: db.table(POSTS_TABLE_NAME).select("*").order("created_at", desc=True).execute(),
        "Unable to retrieve posts due to an internal error.",
        "Failed to list posts",
        {"admin_id": str(admin.id)},
    )
    return BlogPostListResponse(status=status.HTTP_200_OK, posts=[BlogPost(**row) for row in result.data])


@content_router.get("/blog/{slug}", response_model=BlogPostResponse)
async def get_post(slug: str, db=Depends(get_db)) -> BlogPostResponse:
    result = await _execute(
        lambda: db.table(POSTS_TABLE_NAME).select("*").eq("slug", slug).eq("is_published", True).execute(),
        "Unable to retrieve post due to an internal error.",
        "Failed to fetch post",
        {"slug": slug},
    )
    if not result.data:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No post found with slug {slug}")
    return BlogPostResponse(status=status.HTTP_200_OK, post=BlogPost(**result.data[0]))


@content_router.post(
    "/blog",
    response_model=BlogPostResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_post(
    post: BlogPost, db=Depends(get_db), admin: AdminUser = Depends(get_current_admin)
) -> BlogPostResponse:
    """
    Publish or draft a blog post.

    The slug is derived from the title when none is given and must be unique.
    """

    if post.author_id is None:
        post.author_id = admin.id
    failure_detail = "Unable to create post due to an internal error."
    await _ensure_unique_slug(db, post, failure_detail)

    result = await _execute(
        lambda: db.table(POSTS_TABLE_NAME).insert(post.to_dict()).execute(),
        failure_detail,
        "Failed to insert post",
        {"slug": post.slug},
    )
    created = BlogPost(**(result.data[0] if result.data else post.to_dict()))
    logger.info("Post created", extra={"post_id": str(created.id), "admin_id": str(admin.id)})
    return BlogPostResponse(status=status.HTTP_201_CREATED, post=created)


@content_router.put("/blog/{post_id}", response_model=BlogPostResponse)
async def update_post(
    post_id: str,
    fields: BlogPostFields,
    db=Depends(get_db),
    admin: AdminUser = Depends(get_current_admin),
) -> BlogPostResponse:
    """
    Edit a post; publishing it for the first time stamps ``published_at``.

    Raises:
        HTTPException: 404 when missing, 409 when the new slug is taken.
    """

    guid = _parse_id(post_id, logger, POST)
    updates = _require_updates(fields)
    fetch_args = dict(
        not_found_detail=f"No post found with id {post_id}",
        failure_detail="Unable to update post due to an internal error.",
        log_context={"post_id": post_id},
    )
    current = await _fetch_record(db, POSTS_TABLE_NAME, guid, **fetch_args)

    try:
        candidate = BlogPost(
            **{**current, **updates, "updated_at": datetime.now(timezone.utc)}
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    if candidate.slug != current.get("slug"):
        await _ensure_unique_slug(db, candidate, "Unable to update post due to an internal error.")

    changes = {key: value for key, value in candidate.to_dict().items() if key not in ("id", "created_at")}
    await _execute(
        lambda: db.table(POSTS_TABLE_NAME).update(changes).eq("id", str(guid)).execute(),
        "Unable to update post due to an internal error.",
        "Failed to update post",
        {"post_id": post_id},
    )

    refreshed = await _fetch_record(db, POSTS_TABLE_NAME, guid, **fetch_args)
    logger.info("Post updated", extra={"post_id": post_id, "admin_id": str(admin.id)})
    return BlogPostResponse(status=status.HTTP_200_OK, post=BlogPost(**refreshed))


@content_router.delete("/blog/{post_id}", response_model=MessageResponse)
async def delete_post(
    post_id: str, db=Depends(get_db), admin: AdminUser = Depends(get_current_admin)
) -> MessageResponse:
    guid = _parse_id(post_id, logger, POST)
    await _fetch_record(
        db,
        POSTS_TABLE_NAME,
        guid,
        not_found_detail=f"No post found with id {post_id}",
        failure_detail="Unable to delete post due to an internal error.",
        log_context={"post_id": post_id},
    )
    await _execute(
        lambda: db.table(POSTS_TABLE_NAME).delete().eq("id", str(guid)).execute(),
        "Unable to delete post due to an internal error.",
        "Unable to delete post",
        {"post_id": post_id},
    )
    logger.info("Post deleted", extra={"post_id": post_id, "admin_id": str(admin.id)})
    return MessageResponse(status=status.HTTP_200_OK, message=f"Post {post_id} deleted")


@content_router.get("/gallery/categories", response_model=GalleryCategoryListResponse)
async def list_categories(db=Depends(get_db)) -> GalleryCategoryListResponse:
    result = await _execute(
        lambda: db.table(CATEGORIES_TABLE_NAME)
        .select("*")
        .eq("is_active", True)
        .order("display_order")
        .execute(),
        "Unable to retrieve gallery categories due to an internal error.",
        "Failed to list gallery categories",
        {},
    )
    return GalleryCategoryListResponse(
        status=status.HTTP_200_OK, categories=[GalleryCategory(**row) for row in result.data]
    )


@content_router.post(
    "/gallery/categories",
    response_model=GalleryCategoryListResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_category(
    category: GalleryCategory, db=Depends(get_db), admin: AdminUser = Depends(get_current_admin)
) -> GalleryCategoryListResponse:
    failure_detail = "Unable to create gallery category due to an internal error."
    existing = await _execute(
        lambda: db.table(CATEGORIES_TABLE_NAME).select("id").eq("slug", category.slug).execute(),
        failure_detail,
        "Failed to query existing gallery categories",
        {"slug": category.slug},
    )
    if existing.data:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"A gallery category with slug '{category.slug}' already exists",
        )

    await _execute(
        lambda: db.table(CATEGORIES_TABLE_NAME).insert(category.to_dict()).execute(),
        failure_detail,
        "Failed to insert gallery category",
        {"slug": category.slug},
    )
    logger.info("Gallery category created", extra={"slug": category.slug, "admin_id": str(admin.id)})
    return GalleryCategoryListResponse(status=status.HTTP_201_CREATED, categories=[category])


@content_router.get("/gallery/images", response_model=GalleryImageListResponse)
async def list_images(
    category_id: Optional[str] = None,
    featured: Optional[bool] = None,
    db=Depends(get_db),
) -> GalleryImageListResponse:
    """Active gallery images in display order, optionally one category's or only featured ones."""

    def query():
        builder = db.table(IMAGES_TABLE_NAME).select("*").eq("is_active", True)
        if category_id is not None:
            builder = builder.eq("category_id", str(_parse_id(category_id, logger, "category")))
        if featured is not None:
            builder = builder.eq("is_featured", featured)
        return builder.order("display_order").execute()

    result = await _execute(
        query,
        "Unable to retrieve gallery images due to an internal error.",
        "Failed to list gallery images",
        {"category_id": category_id},
    )
    return GalleryImageListResponse(
        status=status.HTTP_200_OK, images=[GalleryImage(**row) for row in result.data]
    )


@content_router.post(
    "/gallery/images",
    response_model=GalleryImageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_image(
    image: GalleryImage, db=Depends(get_db), admin: AdminUser = Depends(get_current_admin)
) -> GalleryImageResponse:
    await _fetch_record(
        db,
        CATEGORIES_TABLE_NAME,
        image.category_id,
        not_found_detail=f"No gallery category found with id {image.category_id}",
        failure_detail="Unable to create gallery image due to an internal error.",
        log_context={"category_id": str(image.category_id)},
    )
    await _execute(
        lambda: db.table(IMAGES_TABLE_NAME).insert(image.to_dict()).execute(),
        "Unable to create gallery image due to an internal error.",
        "Failed to insert gallery image",
        {"category_id": str(image.category_id)},
    )
    logger.info("Gallery image created", extra={"image_id": str(image.id), "admin_id": str(admin.id)})
    return GalleryImageResponse(status=status.HTTP_201_CREATED, image=image)


@content_router.get("/faqs", response_model=FAQListResponse)
async def list_faqs(category: Optional[str] = None, db=Depends(get_db)) -> FAQListResponse:
    def query():
        builder = db.table(FAQS_TABLE_NAME).select("*").eq("is_active", True)
        if category is not None:
            builder = builder.eq("category", category)
        return builder.order("display_order").execute()

    result = await _execute(
        query,
        "Unable to retrieve FAQs due to an internal error.",
        "Failed to list FAQs",
        {"category": category},
    )
    return FAQListResponse(status=status.HTTP_200_OK, faqs=[FAQ(**row) for row in result.data])


@content_router.post(
    "/reviews",
    response_model=ReviewResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_review(review: Review, db=Depends(get_db)) -> ReviewResponse:
    """Store a passenger review; it stays hidden until an admin approves it."""

    review = review.model_copy(update={"is_approved": False})
    await _execute(
        lambda: db.table(REVIEWS_TABLE_NAME).insert(review.to_dict()).execute(),
        "Unable to submit review due to an internal error.",
        "Failed to insert review",
        {"user_id": str(review.user_id)},
    )
    logger.info("Review submitted", extra={"review_id": str(review.id), "rating": review.rating})
    return ReviewResponse(status=status.HTTP_201_CREATED, review=review)


@content_router.get("/reviews", response_model=ReviewListResponse)
async def list_approved_reviews(db=Depends(get_db)) -> ReviewListResponse:
    result = await _execute(
        lambda: db.table(REVIEWS_TABLE_NAME)
        .select("*")
        .eq("is_approved", True)
        .order("created_at", desc=True)
        .execute(),
        "Unable to retrieve reviews due to an internal error.",
        "Failed to list approved reviews",
        {},
    )
    return ReviewListResponse(status=status.HTTP_200_OK, reviews=[Review(**row) for row in result.data])


@content_router.get("/reviews/all", response_model=ReviewListResponse)
async def list_all_reviews(
    db=Depends(get_db), admin: AdminUser = Depends(get_current_admin)
) -> ReviewListResponse:
    """Pending and approved reviews, newest first."""

    result = await _execute(
        lambda: db.table(REVIEWS_TABLE_NAME).select("*").order("created_at", desc=True).execute(),
        "Unable to retrieve reviews due to an internal error.",
        "Failed to list reviews",
        {"admin_id": str(admin.id)},
    )
    return ReviewListResponse(status=status.HTTP_200_OK, reviews=[Review(**row) for row in result.data])


@content_router.put("/reviews/{review_id}/approve", response_model=ReviewResponse)
async def approve_review(
    review_id: str, db=Depends(get_db), admin: AdminUser = Depends(get_current_admin)
) -> ReviewResponse:
    guid = _parse_id(review_id, logger, REVIEW)
    fetch_args = dict(
        not_found_detail=f"No review found with id {review_id}",
        failure_detail="Unable to approve review due to an internal error.",
        log_context={"review_id": review_id},
    )
    await _fetch_record(db, REVIEWS_TABLE_NAME, guid, **fetch_args)
    await _execute(
        lambda: db.table(REVIEWS_TABLE_NAME).update({"is_approved": True}).eq("id", str(guid)).execute(),
        "Unable to approve review due to an internal error.",
        "Failed to approve review",
        {"review_id": review_id},
    )
    approved = await _fetch_record(db, REVIEWS_TABLE_NAME, guid, **fetch_args)
    logger.info("Review approved", extra={"review_id": review_id, "admin_id": str(admin.id)})
    return ReviewResponse(status=status.HTTP_200_OK, review=Review(**approved))


@content_router.delete("/reviews/{review_id}", response_model=MessageResponse)
async def delete_review(
    review_id: str, db=Depends(get_db), admin: AdminUser = Depends(get_current_admin)
) -> MessageResponse:
    guid = _parse_id(review_id, logger, REVIEW)
    await _fetch_record(
        db,
        REVIEWS_TABLE_NAME,
        guid,
        not_found_detail=f"No review found with id {review_id}",
        failure_detail="Unable to delete review due to an internal error.",
        log_context={"review_id": review_id},
    )
    await _execute(
        lambda: db.table(REVIEWS_TABLE_NAME).delete().eq("id", str(guid)).execute(),
        "Unable to delete review due to an internal error.",
        "Unable to delete review",
        {"review_id": review_id},
    )
    logger.info("Review deleted", extra={"review_id": review_id, "admin_id": str(admin.id)})
    return MessageResponse(status=status.HTTP_200_OK, message=f"Review {review_id} deleted")


@content_router.post(
    "/contact",
    response_model=ContactSubmissionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_contact_message(submission: ContactSubmission, db=Depends(get_db)) -> ContactSubmissionResponse:
    """Store a message from the contact form for the admin inbox."""

    submission = submission.model_copy(update={"status": "new", "admin_notes": None})
    await _execute(
        lambda: db.table(CONTACT_TABLE_NAME).insert(submission.to_dict()).execute(),
        "Unable to send message due to an internal error.",
        "Failed to insert contact submission",
        {"email": submission.email},
    )
    logger.info("Contact message received", extra={"submission_id": str(submission.id)})
    return ContactSubmissionResponse(status=status.HTTP_201_CREATED, submission=submission)


@content_router.get("/contact", response_model=ContactSubmissionListResponse)
async def list_contact_messages(
    status_filter: Optional[ContactStatus] = None,
    db=Depends(get_db),
    admin: AdminUser = Depends(get_current_admin),
) -> ContactSubmissionListResponse:
    """Inbox of contact messages, newest first, optionally one status only."""

    def query():
        builder = db.table(CONTACT_TABLE_NAME).select("*")
        if status_filter is not None:
            builder = builder.eq("status", status_filter)
        return builder.order("created_at", desc=True).execute()

    result = await _execute(
        query,
        "Unable to retrieve messages due to an internal error.",
        "Failed to list contact submissions",
        {"status": status_filter, "admin_id": str(admin.id)},
    )
    return ContactSubmissionListResponse(
        status=status.HTTP_200_OK, submissions=[ContactSubmission(**row) for row in result.data]
    )


@content_router.put("/contact/{submission_id}", response_model=ContactSubmissionResponse)
async def update_contact_message(
    submission_id: str,
    fields: ContactUpdate,
    db=Depends(get_db),
    admin: AdminUser = Depends(get_current_admin),
) -> ContactSubmissionResponse:
    """Record the admin's follow-up: a new status, notes, or both."""

    guid = _parse_id(submission_id, logger, SUBMISSION)
    updates = _require_updates(fields)
    updates["updated_at"] = datetime.now(timezone.utc).isoformat()
    fetch_args = dict(
        not_found_detail=f"No message found with id {submission_id}",
        failure_detail="Unable to update message due to an internal error.",
        log_context={"submission_id": submission_id},
    )
    await _fetch_record(db, CONTACT_TABLE_NAME, guid, **fetch_args)
    await _execute(
        lambda: db.table(CONTACT_TABLE_NAME).update(updates).eq("id", str(guid)).execute(),
        "Unable to update message due to an internal error.",
        "Failed to update contact submission",
        {"submission_id": submission_id},
    )
    refreshed = await _fetch_record(db, CONTACT_TABLE_NAME, guid, **fetch_args)
    logger.info("Contact message updated", extra={"submission_id": submission_id, "admin_id": str(admin.id)})
    return ContactSubmissionResponse(status=status.HTTP_200_OK, submission=ContactSubmission(**refreshed))
