from uuid import UUID

from pydantic import BaseModel


class CurrentUser(BaseModel):
    """Lightweight representation of the authenticated user.
    Passed explicitly to services as the acting user (taken_by / received_by).
    """

    id: UUID
    role: str
    full_name: str
