from datetime import datetime
from typing import List, Optional

from qa_rbac.database.base import UserRoleDataSource
from qa_rbac.models.entities import UserRoleAssignment
from qa_rbac.repositories.base import BaseRepository
from qa_rbac.repositories.interfaces import IUserRoleRepository


class UserRoleRepository(BaseRepository[UserRoleAssignment], IUserRoleRepository):

    data_source: UserRoleDataSource

    def __init__(self, data_source: UserRoleDataSource):
        super().__init__(data_source)

    def find_by_user_id(self, user_id: str) -> List[UserRoleAssignment]:
        return self.data_source.find_by_field('user_id', user_id)

    def find_by_role_id(self, role_id: str) -> List[UserRoleAssignment]:
        return self.data_source.find_by_field('role_id', role_id)

    def find_active_by_user_id(self, user_id: str) -> List[UserRoleAssignment]:
        return self.data_source.find_by_fields({'user_id': user_id, 'is_active': True})

    def find_active_by_user_and_role(self, user_id: str, role_id: str) -> Optional[UserRoleAssignment]:
        # The storage guard allows at most one active row per pair
        matches = self.data_source.find_by_fields(
            {'user_id': user_id, 'role_id': role_id, 'is_active': True}
        )
        return matches[0] if matches else None

    def find_effective(self, user_id: str, role_id: str,
                       now: Optional[datetime] = None) -> Optional[UserRoleAssignment]:
        assignment = self.find_active_by_user_and_role(user_id, role_id)
        if assignment is not None and assignment.is_effective(now):
            return assignment
        return None

    def find_expired_active(self, now: Optional[datetime] = None) -> List[UserRoleAssignment]:
        return self.data_source.find_expired_active(now)
