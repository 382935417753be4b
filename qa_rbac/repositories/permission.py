from typing import Any, Iterable, List, Optional

from qa_rbac.database.base import DataSource
from qa_rbac.models.entities import Permission, PermissionCategory, unique_ids
from qa_rbac.repositories.base import BaseRepository
from qa_rbac.repositories.interfaces import IPermissionRepository


class PermissionRepository(BaseRepository[Permission], IPermissionRepository):

    def __init__(self, data_source: DataSource[Permission]):
        super().__init__(data_source)

    def find_by_name(self, name: str) -> Optional[Permission]:
        matches = self.data_source.find_by_field('name', name)
        return matches[0] if matches else None

    def find_by_ids(self, permission_ids: Iterable[str]) -> List[Permission]:
        """
        Resolve ids to records, keeping first-seen order.

        Ids that are malformed for the backend or no longer exist are skipped;
        callers compare lengths to detect them.
        """
        found = []
        for permission_id in unique_ids(permission_ids):
            matches = self.data_source.find_by_field('id', permission_id)
            if matches:
                found.append(matches[0])
        return found

    def find_by_resource(self, resource: str) -> List[Permission]:
        return self.data_source.find_by_field('resource', resource)

    def find_by_category(self, category: Any) -> List[Permission]:
        return self.data_source.find_by_field('category', PermissionCategory(category))

    def find_active(self) -> List[Permission]:
        return self.data_source.find_by_field('is_active', True)
