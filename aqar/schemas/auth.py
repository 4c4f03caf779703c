"""Auth schemas: CurrentUser."""

import uuid

from pydantic import BaseModel

from aqar.models.enums import UserRole


class CurrentUser(BaseModel):
    """Caller identity taken from a verified bearer token."""

    user_id: uuid.UUID
    role: UserRole
