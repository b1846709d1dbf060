import logging
from typing import Any, Callable, Literal
from uuid import UUID

from fastapi import HTTPException, status
from fastapi.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)

Entity = Literal[
    'route', 'fleet', 'schedule', 'booking', 'receipt', 'reschedule_request',
    'branch', 'location', 'user', 'admin', 'driver', 'assignment',
    'post', 'category', 'image', 'review', 'submission', 'undefined_entity',
]
entity_type : Entity = 'undefined_entity'


def _parse_id(
        id: str,
        logger: logging.Logger,
        entity: Entity = entity_type
    ) -> UUID:
    """Validate and normalize a GUID identifier for any entity among:
    - route, fleet, schedule
    - booking, receipt, reschedule request
    - branch, location, user, admin, driver, assignment
    - post, category, image, review, submission
    - undefined entity.
    """

    try:
        return UUID(id, version=4)
    except ValueError as exc:
        logger.warning(f"Invalid GUID supplied for {entity}_id", extra={f"{entity}_id": id})
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"The supplied {entity.replace('_', ' ')} id is not a valid UUID4.",
        ) from exc


def _is_unique_violation(error: Exception) -> bool:
    """
    Determine whether an API error represents a uniqueness constraint violation.

    Args:
        error: Exception raised by the persistence layer.

    Returns:
        True if the error indicates a duplicate/unique constraint conflict.
    """

    error_code = getattr(error, "code", None)
    if error_code == "23505":
        return True

    status_code_value = getattr(error, "status_code", None)
    if str(status_code_value) == str(status.HTTP_409_CONFLICT):
        return True

    message = str(error).lower()
    return "duplicate key value" in message or "unique constraint" in message


async def _execute(
    query: Callable[[], Any],
    failure_detail: str,
    log_message: str,
    log_context: dict[str, Any],
) -> Any:
    """
    Run a blocking Supabase call in the threadpool, mapping failures to a 500.

    Args:
        query: Zero-argument callable performing the request.
        failure_detail: Message returned to the client when the call fails.
        log_message: Message logged with the traceback.
        log_context: Extra context for the log record.

    Returns:
        Whatever ``query`` returns.

    Raises:
        HTTPException: 500 on any backend failure.
    """

    try:
        return await run_in_threadpool(query)
    except HTTPException:
        raise
    except Exception as exc:
        logger.exception(log_message, extra=log_context)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=failure_detail,
        ) from exc


async def _fetch_record(
    db: Any,
    table: str,
    guid: UUID,
    not_found_detail: str,
    failure_detail: str,
    log_context: dict[str, Any],
    column: str = "id",
) -> dict[str, Any]:
    """
    Retrieve a single record or raise an HTTPException.

    Args:
        db: Database client.
        table: Table to read from.
        guid: Identifier of the record to fetch.
        not_found_detail: Message returned when the record does not exist.
        failure_detail: Message returned when the database query fails.
        log_context: Extra context for the log record.
        column: Column the identifier is matched against.

    Returns:
        The first matching record as a dictionary.

    Raises:
        HTTPException: 404 when missing, 500 on query failures.
    """

    result = await _execute(
        lambda: db.table(table).select("*").eq(column, str(guid)).execute(),
        failure_detail,
        f"Failed to fetch {table} record",
        log_context,
    )

    if not result.data:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=not_found_detail,
        )

    return result.data[0]


def _require_updates(fields: Any) -> dict[str, Any]:
    """Dump a partial-update payload, rejecting an empty one with a 400."""

    updates = fields.model_dump(exclude_unset=True, exclude_none=True, mode="json")
    if not updates:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="At least one field must be provided for update.",
        )
    return updates
