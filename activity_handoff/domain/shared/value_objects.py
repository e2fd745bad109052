"""
Shared value objects.

Immutable, validated domain primitives.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_NAMESPACE = "continue"


class ActivityPath(BaseModel):
    """
    Store path holding the most recent activity of one user in one application.

    Each (application_name, user_id) pair maps to exactly one path.

    Example:
        >>> path = ActivityPath(application_name="notes", user_id="u1")
        >>> str(path)
        'continue/notes/u1'
    """

    model_config = ConfigDict(frozen=True)

    application_name: str = Field(..., min_length=1, description="Application name")
    user_id: str = Field(..., min_length=1, description="Authenticated user id")
    namespace: str = Field(default=DEFAULT_NAMESPACE, min_length=1)

    @field_validator("application_name", "user_id", "namespace")
    @classmethod
    def no_separator(cls, v: str) -> str:
        """Segments must be non-blank and free of '/'."""
        if not v.strip():
            raise ValueError("Path segment cannot be empty or whitespace")
        if "/" in v:
            raise ValueError(f"Path segment cannot contain '/': {v!r}")
        return v

    @property
    def value(self) -> str:
        """Rendered store path."""
        return f"{self.namespace}/{self.application_name}/{self.user_id}"

    def __str__(self) -> str:
        """String representation."""
        return self.value

    def __repr__(self) -> str:
        """Debug representation."""
        return f"ActivityPath('{self.value}')"

    def __hash__(self) -> int:
        """Allow use as dict key."""
        return hash(self.value)
