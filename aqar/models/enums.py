"""Enums shared by models, schemas and services."""

import enum


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    INVESTOR = "investor"


class TrustLineState(str, enum.Enum):
    """Persisted position of a (user, currency) trust line.

    No row means no trust line has been established yet.
    """

    TRUSTED = "trusted"
    FROZEN = "frozen"
    UNFROZEN = "unfrozen"
