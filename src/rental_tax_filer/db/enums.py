from __future__ import annotations

from enum import StrEnum


class BookingStatus(StrEnum):
    PENDING = "PENDING"
    SUBMITTED = "SUBMITTED"
    DRY_RUN_VERIFIED = "DRY_RUN_VERIFIED"
    ERROR = "ERROR"
    RETRY_LATER = "RETRY_LATER"
    NEEDS_PROPERTY = "NEEDS_PROPERTY"
    CANCELLED = "CANCELLED"


# Statuses the pipeline may pick up. SUBMITTED is deliberately absent.
QUEUE_STATUSES = (BookingStatus.PENDING,)
RETRY_QUEUE_STATUSES = (BookingStatus.PENDING, BookingStatus.RETRY_LATER)


class PortalState(StrEnum):
    LOGIN = "LOGIN"
    USER_INFO = "USER_INFO"
    PROPERTY_REGISTRY = "PROPERTY_REGISTRY"
    DECLARATIONS_LIST = "DECLARATIONS_LIST"
    NEW_DECLARATION = "NEW_DECLARATION"
    DECLARATION_SAVED = "DECLARATION_SAVED"
    UNKNOWN = "UNKNOWN"
