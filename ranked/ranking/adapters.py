from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import inspect

if TYPE_CHECKING:
    from ranked.ranking.policy import RankPolicy


@dataclass(frozen=True)
class Neighbor:
    """
    同组内其他记录的查询结果（只带主键和 rank）。

    邻居是本次 flush 中已排好但尚未落库的记录时，record 指向该对象（新记录的 id 为空）。
    """

    id: Any
    rank: Optional[int]
    record: Any = field(default=None, compare=False, repr=False)


class RecordAdapter:
    """
    把一条 ORM 记录按某个 RankPolicy 暴露成排序所需的最小能力集：
    读写 rank / position、是否新记录、rank 是否变更、主键。
    """

    def __init__(self, record: Any, policy: "RankPolicy") -> None:
        self._record = record
        self._policy = policy
        self._state = inspect(record)

        mapper = self._state.mapper
        if len(mapper.primary_key) != 1:
            raise ValueError(f"{mapper.class_.__name__} 需要单列主键才能参与排序")
        self._id_key = mapper.get_property_by_column(mapper.primary_key[0]).key

    @property
    def record(self) -> Any:
        return self._record

    @property
    def model(self) -> type:
        return self._state.mapper.class_

    @property
    def id_attribute(self):
        return getattr(self.model, self._id_key)

    @property
    def rank_attribute(self):
        return getattr(self.model, self._policy.column)

    @property
    def identity(self) -> Any:
        identity = self._state.identity
        return identity[0] if identity else None

    @property
    def is_new(self) -> bool:
        return self._state.key is None

    @property
    def rank(self) -> Optional[int]:
        return getattr(self._record, self._policy.column)

    def set_rank(self, value: Optional[int]) -> None:
        setattr(self._record, self._policy.column, value)

    @property
    def position(self) -> Any:
        return getattr(self._record, self._policy.position_attribute, None)

    @property
    def rank_changed(self) -> bool:
        # 设置了 position 也视为 rank 变更
        if self.position is not None:
            return True
        return self._state.attrs[self._policy.column].history.has_changes()

    def read(self, field: str) -> Any:
        return getattr(self._record, field)
