"""Defines schema of requests and responses related to security"""

from pydantic import BaseModel


class TokenData(BaseModel):
    """Model representing data contained in an authentication token."""

    username: str | None = None
    scopes: list[str] = []
