"""SQLAlchemy models package: import all models so Base.metadata is populated."""

from aqar.models.base import BaseModel, ModelMixin, TimestampedModel
from aqar.models.core import User
from aqar.models.custody import TrustLine
from aqar.models.enums import TrustLineState, UserRole
from aqar.models.offerings import Investment, Property, RentDistribution

__all__ = [
    "BaseModel",
    "Investment",
    "ModelMixin",
    "Property",
    "RentDistribution",
    "TimestampedModel",
    "TrustLine",
    "TrustLineState",
    "User",
    "UserRole",
]
