from dataclasses import dataclass

from fastapi import Header, HTTPException

from intake.exceptions import (
    ConcurrentUpdateError,
    DocumentNotFoundError,
    DuplicateBlockedError,
    FileCostingNotFoundError,
    IntakeRejectedError,
    InvalidTransitionError,
    MalformedWorkbookError,
    WorkflowRuleError,
)


@dataclass(frozen=True)
class CallContext:
    """Who is calling, passed explicitly to every service call."""

    user_id: str
    session_token: str | None = None


async def get_call_context(
    x_user_id: str = Header(...),
    authorization: str | None = Header(None),
) -> CallContext:
    user_id = x_user_id.strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    token = None
    if authorization:
        if not authorization.startswith("Bearer "):
            raise HTTPException(status_code=401, detail="Malformed Authorization header")
        token = authorization[7:].strip() or None
    return CallContext(user_id=user_id, session_token=token)


def http_error(exc: Exception) -> HTTPException:
    """Map a service exception onto the status code the API reports."""
    if isinstance(exc, (DocumentNotFoundError, FileCostingNotFoundError)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, DuplicateBlockedError):
        return HTTPException(status_code=409, detail={
            "reason": exc.reason,
            "duplicates": [
                {"document_id": m.document_id, "file_name": m.file_name,
                 "match_type": m.match_type, "confidence": m.confidence}
                for m in exc.matches
            ],
        })
    if isinstance(exc, IntakeRejectedError):
        return HTTPException(status_code=exc.status_code, detail=exc.reason)
    if isinstance(exc, (InvalidTransitionError, ConcurrentUpdateError)):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, MalformedWorkbookError):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, (WorkflowRuleError, ValueError)):
        return HTTPException(status_code=400, detail=str(exc))
    raise exc
