"""
API middleware module.
"""
from src.api.middleware.error_handler import (
    AppException,
    NotFoundException,
    UnauthorizedException,
    BadRequestException,
    ValidationException,
    fixed_status_route,
    app_exception_handler,
    validation_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
)

__all__ = [
    "AppException",
    "NotFoundException",
    "UnauthorizedException",
    "BadRequestException",
    "ValidationException",
    "fixed_status_route",
    "app_exception_handler",
    "validation_exception_handler",
    "http_exception_handler",
    "unhandled_exception_handler",
]
