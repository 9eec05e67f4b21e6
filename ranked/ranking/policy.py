from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence, Tuple, Union

from sqlalchemy.orm import Session, object_session

from ranked.ranking.errors import InvalidField, InvalidScope, RankingError
from ranked.ranking.mapper import RankMapper


@dataclass(frozen=True)
class RankPolicy:
    """
    一个排序维度的配置（不可变）。

    - name：排序维度名，对应的 position 属性为 `<name>_position`
    - column：落库的 rank 字段，默认与 name 相同
    - scope：Model 上的无参 classmethod 名，返回缩小分组的 SQL 条件（或条件列表）
    - with_same：一个字段名，或字段名列表；与当前记录取值相等的才算同组
    """

    name: str
    column: str
    scope: Optional[str] = None
    with_same: Union[str, Tuple[str, ...], None] = None

    @classmethod
    def create(
        cls,
        name: str,
        column: Optional[str] = None,
        scope: Optional[str] = None,
        with_same: Union[str, Sequence[str], None] = None,
    ) -> "RankPolicy":
        if with_same is not None and not isinstance(with_same, str):
            with_same = tuple(str(field) for field in with_same)
            if not with_same:
                raise ValueError("with_same 字段列表不能为空")
        return cls(name=str(name), column=str(column or name), scope=scope, with_same=with_same)

    @property
    def position_attribute(self) -> str:
        return f"{self.name}_position"

    @property
    def with_same_fields(self) -> Tuple[str, ...]:
        if self.with_same is None:
            return ()
        if isinstance(self.with_same, str):
            return (self.with_same,)
        return self.with_same

    def to_options(self) -> dict:
        return {"name": self.name, "column": self.column, "scope": self.scope, "with_same": self.with_same}

    def validate(self, record: Any) -> None:
        if self.scope and not callable(getattr(type(record), self.scope, None)):
            raise InvalidScope(self.scope)

        if isinstance(self.with_same, str):
            valid = hasattr(record, self.with_same)
        elif self.with_same:
            valid = any(hasattr(record, field) for field in self.with_same)
        else:
            valid = True
        if not valid:
            raise InvalidField(self.with_same)

    def bind(self, record: Any, session: Optional[Session] = None, pending: Sequence[Any] = ()) -> RankMapper:
        """pending：同一次 flush 中已排好 rank、尚未写库的其他记录"""
        self.validate(record)
        session = session or object_session(record)
        if session is None:
            raise RankingError(f"{type(record).__name__} 未关联 Session，无法计算 {self.name} 排序")
        return RankMapper(self, record, session, pending)
