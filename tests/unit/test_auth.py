"""Unit tests for auth module."""

import pytest
from fastapi import HTTPException

from backend.app.api.auth import DEV_USER_ID, get_current_context


@pytest.mark.asyncio
async def test_get_current_context_no_header_uses_dev_user() -> None:
    """Test that missing auth header uses the development user."""
    ctx = await get_current_context(authorization=None)

    assert ctx.user_id == DEV_USER_ID


@pytest.mark.asyncio
async def test_get_current_context_bearer_user_id() -> None:
    """Test bearer token is used as the user id."""
    ctx = await get_current_context(authorization="Bearer student-42")

    assert ctx.user_id == "student-42"


@pytest.mark.asyncio
async def test_get_current_context_invalid_bearer_format() -> None:
    """Test invalid bearer format raises 401."""
    with pytest.raises(HTTPException) as exc_info:
        await get_current_context(authorization="NotBearer token")

    assert exc_info.value.status_code == 401
    assert "Invalid authorization header format" in exc_info.value.detail


@pytest.mark.asyncio
async def test_get_current_context_empty_token() -> None:
    """Test empty bearer token raises 401."""
    with pytest.raises(HTTPException) as exc_info:
        await get_current_context(authorization="Bearer    ")

    assert exc_info.value.status_code == 401
