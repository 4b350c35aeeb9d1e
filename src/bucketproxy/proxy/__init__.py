"""Request pipeline for serving storage objects."""

from .app import create_app
from .backend import BackendError, ObjectAttributes, ObjectNotFound, StorageBackend, StorageError
from .policy import AccessPolicy, BlockRule, BlockRuleError

__all__ = [
    "create_app",
    "AccessPolicy",
    "BackendError",
    "BlockRule",
    "BlockRuleError",
    "ObjectAttributes",
    "ObjectNotFound",
    "StorageBackend",
    "StorageError",
]
