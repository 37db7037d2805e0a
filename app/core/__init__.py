"""
Core infrastructure shared by domain apps.

Models (import from core.models / core.model_mixins, not from here, to
avoid AppRegistryNotReady):
    - BaseModel: created_at / updated_at timestamps
    - UUIDPrimaryKeyMixin, VersionedMixin

Services:
    - BaseService, ServiceResult

Exceptions:
    - BaseApplicationError and its ValidationError, NotFoundError,
      PermissionDeniedError, ConflictError, ExternalServiceError subclasses

Note:
    Business rules belong in domain apps (see earnings), not here.
"""

from .exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from .services import BaseService, ServiceResult

__all__ = [
    "BaseService",
    "ServiceResult",
    "BaseApplicationError",
    "ValidationError",
    "NotFoundError",
    "PermissionDeniedError",
    "ConflictError",
    "ExternalServiceError",
]
