"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    DatabaseError,

    # Parsing
    ParseError,
    DuplicateHeaderError,
    UnknownFileTypeError,

    # Pipeline
    MappingError,
    ContextError,
    LoadError,
    LoggingError,

    # Staging
    RawUploadNotFoundError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "DatabaseError",

    # Parsing
    "ParseError",
    "DuplicateHeaderError",
    "UnknownFileTypeError",

    # Pipeline
    "MappingError",
    "ContextError",
    "LoadError",
    "LoggingError",

    # Staging
    "RawUploadNotFoundError",
]
