"""
Error taxonomy for the shop API.

Services raise these; main.py turns them into JSON responses of the form
{"detail": message} with the matching status code.
"""


class ShopError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ShopError):
    status_code = 400


class AuthError(ShopError):
    status_code = 401


class ForbiddenError(ShopError):
    status_code = 403


class NotFoundError(ShopError):
    status_code = 404


class ConflictError(ShopError):
    status_code = 409


class InvalidTransitionError(ConflictError):
    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot change order status from '{current}' to '{target}'")
        self.current = current
        self.target = target


class StoreError(ShopError):
    status_code = 500


class UploadError(ShopError):
    status_code = 502


class ConfigError(Exception):
    pass
