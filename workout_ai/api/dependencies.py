"""FastAPI dependencies for the AI endpoints."""

from __future__ import annotations

from fastapi import Header, HTTPException, Request, status

from workout_ai.generation.service import GenerationService


def get_current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Resolve the calling user.

    Authentication happens upstream; the gateway forwards the verified user
    id in the X-User-Id header.

    Raises:
        HTTPException: 401 if the header is missing
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return x_user_id.strip()


def get_generation_service(request: Request) -> GenerationService:
    return request.app.state.generation_service
