"""Authentication error taxonomy."""

from enum import Enum


class AuthErrorKind(str, Enum):
    """Kinds of authentication failure, used for branching and logging."""

    CONFIG_INVALID = "config_invalid"
    STATE_MISMATCH = "state_mismatch"
    MISSING_CODE = "missing_code"
    PROVIDER_REJECTED = "provider_rejected"
    NETWORK_FAILURE = "network_failure"
    MALFORMED_RESPONSE = "malformed_response"
    # Never raised; only logged when profile/permission lookups degrade.
    PROFILE_FETCH_FAILED = "profile_fetch_failed"
    PERMISSION_CHECK_FAILED = "permission_check_failed"


class AuthError(Exception):
    """Base class for recoverable authentication failures."""

    kind: AuthErrorKind

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class StateMismatchError(AuthError):
    kind = AuthErrorKind.STATE_MISMATCH

    def __init__(self, message: str = "State parameter does not match this session"):
        super().__init__(message)


class MissingCodeError(AuthError):
    kind = AuthErrorKind.MISSING_CODE

    def __init__(self, message: str = "No authorization code received"):
        super().__init__(message)


class ProviderRejectedError(AuthError):
    """The provider answered with an OAuth error."""

    kind = AuthErrorKind.PROVIDER_REJECTED

    def __init__(self, error: str, error_description: str | None = None):
        self.error = error
        self.error_description = error_description or "Authentication failed"
        super().__init__(f"{self.error} - {self.error_description}")


class NetworkFailureError(AuthError):
    kind = AuthErrorKind.NETWORK_FAILURE


class MalformedResponseError(AuthError):
    kind = AuthErrorKind.MALFORMED_RESPONSE


class ConfigInvalidError(Exception):
    """Required provider configuration is missing or invalid. Fatal at startup."""

    kind = AuthErrorKind.CONFIG_INVALID

    def __init__(self, missing: list[str] | None = None, problems: list[str] | None = None):
        self.missing = missing or []
        self.problems = problems or []
        details = []
        if self.missing:
            details.append(f"missing {', '.join(self.missing)}")
        if self.problems:
            details.append("; ".join(self.problems))
        super().__init__(f"Kinde configuration invalid: {'; '.join(details) or 'unknown error'}")
