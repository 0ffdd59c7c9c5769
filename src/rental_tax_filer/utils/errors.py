class NotFoundError(Exception):
    """Raised when an expected DB record does not exist."""


class ConflictError(Exception):
    """Raised when an operation violates a uniqueness or business constraint."""


class InvalidBookingError(ValueError):
    """Raised when a booking violates a fiscal invariant and must not be filed."""


class PortalError(Exception):
    """Base class for failures while driving the declaration portal."""


class FatalRunError(PortalError):
    """The session can no longer be trusted; the whole run stops."""


class LoginTimeoutError(FatalRunError):
    """No human login was observed within the configured wait."""


class PortalUnreachableError(FatalRunError):
    """The portal entry page could not be loaded."""


class SessionExpiredError(FatalRunError):
    """The portal logged the session out mid-run."""


class NoPropertiesRegisteredError(PortalError):
    """The account has no registered property to declare against."""

    code = "NO_PROPERTIES_REGISTERED"


class StuckStateMachineError(PortalError):
    """Too many page transitions without reaching the declaration form."""


class PortalNavigationError(PortalError):
    """An expected page element or link was not found."""


class UserInfoError(PortalError):
    """The contact-details page could not be completed."""


class DeclarationFormError(PortalError):
    """The declaration form could not be filled as required."""


class SubmissionRejectedError(PortalError):
    """The portal displayed an error after the final submit."""


class SubmissionUnverifiedError(PortalError):
    """The final submit was clicked but success could not be confirmed."""


class IntentUnavailableError(PortalError):
    """No natural-language intent executor is wired for this run."""
