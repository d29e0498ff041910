"""Request/response schemas for identity creation."""
from pydantic import BaseModel, Field

MAX_DISPLAY_NAME_LENGTH = 50


class CreateUserRequest(BaseModel):
    """Request body for POST /api/users/create.

    Attributes:
        displayName: Requested name; trimmed, 1-50 characters.
        isAnonymous: Show this user as anonymous by default.
    """
    displayName: str = Field(default="", description="Requested display name")
    isAnonymous: bool = Field(default=False, description="Anonymous by default")


class CreateUserResponse(BaseModel):
    userId: int = Field(..., description="Store-assigned user id")
    username: str = Field(..., description="Server-generated username")
    displayName: str = Field(..., description="Stored display name")
    isAnonymous: bool = Field(..., description="Anonymous by default")
