class AppError(Exception):
    """Base for errors that map onto an HTTP response with a JSON message."""

    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AppError):
    http_status = 400


class NotFoundError(AppError):
    http_status = 404


class ForbiddenError(AppError):
    http_status = 403


class AccountNotConnectedError(ForbiddenError):
    def __init__(self, message: str = "n8n account not connected"):
        super().__init__(message)


class EngineCallError(AppError):
    """A call to n8n (or the Telegram Bot API) failed.

    ``status_code`` is the upstream status, or None when no response arrived.
    Callers of this API always see a 500.
    """

    def __init__(self, status_code: int | None, message: str):
        super().__init__(message)
        self.status_code = status_code


class EngineProvisioningError(AppError):
    pass
