from __future__ import annotations


class AppError(Exception):
    """Base application error. Its text is safe to log, never shown raw to chats."""


class ValidationError(AppError):
    pass


class FetchError(AppError):
    pass


class MetadataError(FetchError):
    pass


class DeliveryError(AppError):
    pass


class TransportError(AppError):
    pass
