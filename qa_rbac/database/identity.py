"""
Identifier schemes per storage backend.

The document backend mints 24-hex-character ObjectId strings, the relational
backend mints canonical UUID v4 strings. An id of unknown provenance must be
checked against the active backend's scheme before it is used, so that ids
minted for the other backend are rejected early.
"""

import re
import uuid
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Union

from bson import ObjectId

from qa_rbac.utils.error_handling import ValidationError


_OBJECT_ID_PATTERN = re.compile(r'^[0-9a-fA-F]{24}$')
_UUID_V4_PATTERN = re.compile(
    r'^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$',
    re.IGNORECASE,
)


class BackendKind(Enum):
    MONGODB = "mongodb"
    POSTGRESQL = "postgresql"

    @classmethod
    def parse(cls, value: Union[str, 'BackendKind']) -> 'BackendKind':
        """Resolve a configuration value to a backend kind."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(
                f"Unsupported database backend: {value!r}",
                field_errors={'DATABASE_BACKEND': f"must be one of {[k.value for k in cls]}"},
            )


class IdScheme(ABC):
    """Mints and validates entity ids for one backend."""

    kind: BackendKind

    @abstractmethod
    def create_id(self) -> str:
        pass

    @abstractmethod
    def is_valid_id(self, value: Any) -> bool:
        pass


class ObjectIdScheme(IdScheme):
    kind = BackendKind.MONGODB

    def create_id(self) -> str:
        return str(ObjectId())

    def is_valid_id(self, value: Any) -> bool:
        # ObjectId.is_valid also accepts 12-byte strings, so pin the textual form
        return (
            isinstance(value, str)
            and _OBJECT_ID_PATTERN.match(value) is not None
            and ObjectId.is_valid(value)
        )


class UuidScheme(IdScheme):
    kind = BackendKind.POSTGRESQL

    def create_id(self) -> str:
        return str(uuid.uuid4())

    def is_valid_id(self, value: Any) -> bool:
        return isinstance(value, str) and _UUID_V4_PATTERN.match(value) is not None


_SCHEMES = {
    BackendKind.MONGODB: ObjectIdScheme(),
    BackendKind.POSTGRESQL: UuidScheme(),
}


def get_id_scheme(kind: Union[str, BackendKind]) -> IdScheme:
    return _SCHEMES[BackendKind.parse(kind)]


def is_id_valid_for_backend(value: Any, kind: Union[str, BackendKind]) -> bool:
    """Return True when ``value`` has the id shape of the given backend."""
    return get_id_scheme(kind).is_valid_id(value)


__all__ = [
    'BackendKind',
    'IdScheme',
    'ObjectIdScheme',
    'UuidScheme',
    'get_id_scheme',
    'is_id_valid_for_backend',
]
