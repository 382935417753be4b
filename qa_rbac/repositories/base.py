"""Shared repository plumbing over a ``DataSource``."""

from typing import Any, Dict, Generic, List, Optional, TypeVar

from qa_rbac.database.base import DataSource


T = TypeVar("T")


class BaseRepository(Generic[T]):
    """
    Delegates CRUD to a data source.

    Concrete repositories add the filtered reads their service needs, always
    expressed as field-equality queries so both backends answer them the same
    way.
    """

    def __init__(self, data_source: DataSource[T]):
        self.data_source = data_source

    def create(self, data: Dict[str, Any]) -> T:
        return self.data_source.create(data)

    def find_by_id(self, entity_id: str) -> T:
        return self.data_source.find_by_id(entity_id)

    def find_optional(self, entity_id: str) -> Optional[T]:
        matches = self.data_source.find_by_field('id', entity_id)
        return matches[0] if matches else None

    def find_all(self) -> List[T]:
        return self.data_source.find_all()

    def update_by_id(self, entity_id: str, data: Dict[str, Any]) -> T:
        return self.data_source.update_by_id(entity_id, data)

    def delete_by_id(self, entity_id: str) -> T:
        return self.data_source.delete_by_id(entity_id)

    def count(self) -> int:
        return self.data_source.count_all()

    def is_valid_id(self, entity_id: Any) -> bool:
        return self.data_source.is_valid_id(entity_id)
