from __future__ import annotations


class AppError(Exception):
    """Base error for expected failures."""

    def __init__(self, message: str, *, http_status: int = 400):
        super().__init__(message)
        self.message = message
        self.http_status = http_status


class AuthError(AppError):
    def __init__(self, message: str = "unauthorized"):
        super().__init__(message, http_status=401)


class TokenExpiredError(AuthError):
    def __init__(self, message: str = "token expired"):
        super().__init__(message)


class MalformedTokenError(AuthError):
    def __init__(self, message: str = "invalid token"):
        super().__init__(message)


class WrongTokenClassError(AuthError):
    def __init__(self, message: str = "invalid token type"):
        super().__init__(message)


class ForbiddenError(AppError):
    def __init__(self, message: str = "forbidden"):
        super().__init__(message, http_status=403)


class NotFoundError(AppError):
    def __init__(self, message: str = "not found"):
        super().__init__(message, http_status=404)


class ConflictError(AppError):
    def __init__(self, message: str = "conflict"):
        super().__init__(message, http_status=409)


class InvalidVerificationStateError(AppError):
    def __init__(self, message: str = "invalid verification code"):
        super().__init__(message, http_status=400)


class NoCodeIssuedError(InvalidVerificationStateError):
    def __init__(self, message: str = "no verification code found, please request a new one"):
        super().__init__(message)


class CodeExpiredError(InvalidVerificationStateError):
    def __init__(self, message: str = "verification code expired, please request a new one"):
        super().__init__(message)


class CodeMismatchError(InvalidVerificationStateError):
    def __init__(self, message: str = "invalid verification code"):
        super().__init__(message)


class DeliveryFailedError(AppError):
    def __init__(self, message: str = "failed to send verification code"):
        super().__init__(message, http_status=502)


class ChannelUnavailableError(AppError):
    def __init__(self, message: str = "event channel unavailable"):
        super().__init__(message, http_status=503)


class NotificationError(Exception):
    """Raised by notifiers when a message could not be delivered."""
