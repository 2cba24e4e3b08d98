"""Store helpers shared by the workflow services."""

from datetime import datetime
from typing import Any, Dict, Optional, Type, TypeVar

from beanie import Document, PydanticObjectId, UpdateResponse

from smartlab.shared.exceptions import NotFoundException, StateConflictException


D = TypeVar("D", bound=Document)


async def get_or_404(document_cls: Type[D], document_id: PydanticObjectId, label: str) -> D:
    """Load a document by id or raise NOT_FOUND with ``"<label> not found"``."""
    document = await document_cls.get(document_id)
    if document is None:
        raise NotFoundException(f"{label} not found")
    return document


async def conditional_update(
    document_cls: Type[D],
    document_id: PydanticObjectId,
    *conditions: Any,
    update: Dict[str, Any],
    label: str,
    conflict_message: Optional[str] = None,
) -> D:
    """
    Apply ``update`` only if the document still matches ``conditions``.

    The match and the write are a single ``find_one_and_update``, so two
    requests racing on the same precondition cannot both succeed. Every
    successful write bumps ``revision`` and ``updated_at``.

    Raises:
        NotFoundException: If the document does not exist
        StateConflictException: If it exists but no longer satisfies the conditions
    """
    update = {operator: dict(fields) for operator, fields in update.items()}
    update.setdefault("$set", {})["updated_at"] = datetime.utcnow()
    update.setdefault("$inc", {})["revision"] = 1

    updated = await document_cls.find_one(
        {"_id": document_id},
        *conditions,
    ).update(update, response_type=UpdateResponse.NEW_DOCUMENT)

    if updated is None:
        if await document_cls.get(document_id) is None:
            raise NotFoundException(f"{label} not found")
        raise StateConflictException(
            conflict_message or f"{label} was changed by another request or is not in a valid state for this action"
        )

    return updated


async def conditional_delete(
    document_cls: Type[D],
    document_id: PydanticObjectId,
    *conditions: Any,
    label: str,
    conflict_message: Optional[str] = None,
) -> None:
    """Delete the document only if it still matches ``conditions``."""
    result = await document_cls.find_one({"_id": document_id}, *conditions).delete()

    if result is None or result.deleted_count == 0:
        if await document_cls.get(document_id) is None:
            raise NotFoundException(f"{label} not found")
        raise StateConflictException(conflict_message or f"{label} can no longer be deleted")
