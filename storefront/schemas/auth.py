"""Authentication schemas for JWT tokens and admin context."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class UserContext(BaseModel):
    """Authenticated user context extracted from JWT token.

    Populated by the auth dependency from the validated JWT.
    """

    model_config = ConfigDict(from_attributes=True)

    user_id: str = Field(description="Unique identifier for the user (from JWT sub claim)")
    email: str | None = Field(default=None, description="User's email address if available")
    role: str | None = Field(default=None, description="Storefront role (e.g., 'admin', 'subadmin')")

    @property
    def actor(self) -> str:
        """Name recorded in order history for changes made by this user."""
        if self.role == "subadmin":
            return f"subadmin:{self.email or self.user_id}"
        return self.role or f"user:{self.user_id}"


class TokenPayload(BaseModel):
    """JWT token payload structure for Supabase tokens.

    Supabase puts its own database role (``authenticated``) in ``role``;
    the storefront role lives in ``app_metadata.role``.
    """

    model_config = ConfigDict(from_attributes=True)

    sub: str = Field(description="Subject - the user's UUID")
    email: str | None = Field(default=None, description="User's email address")
    role: str | None = Field(default=None, description="Database role")
    app_metadata: dict[str, Any] = Field(default_factory=dict, description="Server-controlled user metadata")
    exp: int = Field(description="Expiration timestamp (Unix epoch)")
    iat: int = Field(description="Issued at timestamp (Unix epoch)")
    aud: str | None = Field(default=None, description="Audience - intended recipient")
    iss: str | None = Field(default=None, description="Issuer - token issuer URL")

    @property
    def expiration_datetime(self) -> datetime:
        """Get expiration as datetime object."""
        return datetime.fromtimestamp(self.exp)

    def to_user_context(self) -> UserContext:
        """Convert token payload to UserContext."""
        return UserContext(
            user_id=self.sub,
            email=self.email,
            role=self.app_metadata.get("role") or self.role,
        )
