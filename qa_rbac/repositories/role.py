from typing import Iterable, List, Optional

from qa_rbac.database.base import RoleDataSource
from qa_rbac.models.entities import Role
from qa_rbac.repositories.base import BaseRepository
from qa_rbac.repositories.interfaces import IRoleRepository


class RoleRepository(BaseRepository[Role], IRoleRepository):

    data_source: RoleDataSource

    def __init__(self, data_source: RoleDataSource):
        super().__init__(data_source)

    def find_by_name(self, name: str) -> Optional[Role]:
        return self.data_source.find_by_name(name)

    def find_system_roles(self) -> List[Role]:
        return self.data_source.find_system_roles()

    def find_active(self) -> List[Role]:
        return self.data_source.find_active()

    def find_by_permission_id(self, permission_id: str) -> List[Role]:
        return self.data_source.find_by_field('permissions', permission_id)

    def add_permissions(self, role_id: str, permission_ids: Iterable[str]) -> Role:
        return self.data_source.add_permissions(role_id, permission_ids)

    def remove_permissions(self, role_id: str, permission_ids: Iterable[str]) -> Role:
        return self.data_source.remove_permissions(role_id, permission_ids)
