# app/errors.py
from __future__ import annotations


class ServiceError(Exception):
    """Базовая ошибка бизнес-логики; роутеры отдают её клиенту как есть."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"ok": False, "error": self.message}


class ValidationError(ServiceError, ValueError):
    status_code = 400

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        return {**super().to_dict(), "field": self.field}


class NotFound(ServiceError, LookupError):
    status_code = 404


class Conflict(ServiceError):
    status_code = 409


class InvalidState(Conflict):
    # объект есть, но его статус не позволяет операцию
    pass


class Forbidden(ServiceError, PermissionError):
    status_code = 403


class Unavailable(ServiceError):
    status_code = 503

    def __init__(self, message: str, details: str | None = None):
        super().__init__(message)
        self.details = details

    def to_dict(self) -> dict:
        return {**super().to_dict(), "details": self.details}
