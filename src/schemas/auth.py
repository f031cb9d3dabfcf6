"""Authentication schemas for JWT tokens and user context."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class UserContext(BaseModel):
    """Authenticated user context extracted from JWT token.

    This model represents the authenticated user for the current request.
    It is populated by the auth middleware from the validated JWT.
    """

    model_config = ConfigDict(from_attributes=True)

    user_id: str = Field(description="Unique identifier for the user (from JWT sub claim)")
    email: str | None = Field(default=None, description="User's email address if available")
    role: str | None = Field(default=None, description="User's role (e.g., 'authenticated', 'admin')")
    is_admin: bool = Field(default=False, description="Whether the user may administer orders")


class TokenPayload(BaseModel):
    """JWT token payload structure for Supabase tokens.

    Represents the claims contained in a Supabase-issued JWT.
    """

    model_config = ConfigDict(from_attributes=True)

    sub: str = Field(description="Subject - the user's ID")
    email: str | None = Field(default=None, description="User's email address")
    role: str | None = Field(default=None, description="User's role")
    app_role: str | None = Field(default=None, description="Role from app_metadata, set by admins")
    exp: int = Field(description="Expiration timestamp (Unix epoch)")
    iat: int = Field(description="Issued at timestamp (Unix epoch)")
    aud: str | None = Field(default=None, description="Audience - intended recipient")
    iss: str | None = Field(default=None, description="Issuer - token issuer URL")

    @property
    def expiration_datetime(self) -> datetime:
        """Get expiration as datetime object."""
        return datetime.fromtimestamp(self.exp)

    def to_user_context(self, admin_user_ids: list[str] | None = None) -> UserContext:
        """Convert token payload to UserContext.

        Args:
            admin_user_ids: User IDs granted admin rights by configuration.

        Returns:
            UserContext: User context derived from token claims.
        """
        is_admin = (
            self.role == "admin"
            or self.app_role == "admin"
            or self.sub in (admin_user_ids or [])
        )
        return UserContext(
            user_id=self.sub,
            email=self.email,
            role=self.role,
            is_admin=is_admin,
        )
