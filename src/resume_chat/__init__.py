"""Conversational resume editing core."""

from .config import CacheConfig, CoreSettings
from .editing.engine import apply_modification, apply_modifications
from .editing.operations import ModificationOperation, OperationKind

__all__ = [
    "CacheConfig",
    "CoreSettings",
    "ModificationOperation",
    "OperationKind",
    "apply_modification",
    "apply_modifications",
]
