from uuid import UUID

from pydantic import BaseModel


class CurrentUser(BaseModel):
    """Authenticated actor resolved from the access token.
    Billing only needs the id (audit fields) and the role (write access).
    """

    id: UUID
    role: str
