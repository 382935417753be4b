"""
Repository interfaces consumed by the RBAC services.

Services depend on these abstractions only; the concrete repositories sit on
whichever ``DataSource`` implementation the active adapter provides.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from qa_rbac.models.entities import Permission, Role, UserRoleAssignment


class IPermissionRepository(ABC):

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Permission:
        pass

    @abstractmethod
    def find_by_id(self, permission_id: str) -> Permission:
        pass

    @abstractmethod
    def find_by_ids(self, permission_ids: Iterable[str]) -> List[Permission]:
        pass

    @abstractmethod
    def find_by_name(self, name: str) -> Optional[Permission]:
        pass

    @abstractmethod
    def find_all(self) -> List[Permission]:
        pass

    @abstractmethod
    def find_by_resource(self, resource: str) -> List[Permission]:
        pass

    @abstractmethod
    def find_by_category(self, category: Any) -> List[Permission]:
        pass

    @abstractmethod
    def find_active(self) -> List[Permission]:
        pass

    @abstractmethod
    def update_by_id(self, permission_id: str, data: Dict[str, Any]) -> Permission:
        pass

    @abstractmethod
    def delete_by_id(self, permission_id: str) -> Permission:
        pass


class IRoleRepository(ABC):

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Role:
        pass

    @abstractmethod
    def find_by_id(self, role_id: str) -> Role:
        pass

    @abstractmethod
    def find_optional(self, role_id: str) -> Optional[Role]:
        pass

    @abstractmethod
    def find_by_name(self, name: str) -> Optional[Role]:
        pass

    @abstractmethod
    def find_all(self) -> List[Role]:
        pass

    @abstractmethod
    def find_system_roles(self) -> List[Role]:
        pass

    @abstractmethod
    def find_active(self) -> List[Role]:
        pass

    @abstractmethod
    def update_by_id(self, role_id: str, data: Dict[str, Any]) -> Role:
        pass

    @abstractmethod
    def delete_by_id(self, role_id: str) -> Role:
        pass

    @abstractmethod
    def add_permissions(self, role_id: str, permission_ids: Iterable[str]) -> Role:
        pass

    @abstractmethod
    def remove_permissions(self, role_id: str, permission_ids: Iterable[str]) -> Role:
        pass


class IUserRoleRepository(ABC):

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> UserRoleAssignment:
        pass

    @abstractmethod
    def find_by_id(self, assignment_id: str) -> UserRoleAssignment:
        pass

    @abstractmethod
    def find_by_user_id(self, user_id: str) -> List[UserRoleAssignment]:
        pass

    @abstractmethod
    def find_by_role_id(self, role_id: str) -> List[UserRoleAssignment]:
        pass

    @abstractmethod
    def find_active_by_user_and_role(self, user_id: str, role_id: str) -> Optional[UserRoleAssignment]:
        pass

    @abstractmethod
    def find_expired_active(self, now: Optional[datetime] = None) -> List[UserRoleAssignment]:
        pass

    @abstractmethod
    def update_by_id(self, assignment_id: str, data: Dict[str, Any]) -> UserRoleAssignment:
        pass


__all__ = ['IPermissionRepository', 'IRoleRepository', 'IUserRoleRepository']
