from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Iterator, List, Optional, Sequence

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from ranked.ranking.adapters import Neighbor, RecordAdapter

if TYPE_CHECKING:
    from ranked.ranking.policy import RankPolicy


def _rank_sort_key(neighbor: Neighbor):
    # 与 sqlite / MySQL 的升序一致：NULL 排在最前
    return (neighbor.rank is not None, neighbor.rank or 0)


class GroupQuery:
    """
    同组记录的查询句柄（不含目标记录本身），按 rank 升序。

    组的定义：同一个 Model + 可选 scope + 可选 with_same 等值条件。
    所有查询都在 no_autoflush 下执行，避免在计算 rank 的过程中把目标记录提前 flush。

    pending 是本次 flush 中已经算好 rank、但还没写库的记录。同组的 pending 记录以内存中的
    rank 参与组视图（已落库的则用内存值替换库里的旧值），这样同一次 flush 里的多条记录
    彼此可见。scope 是 SQL 条件，无法在内存里求值，pending 记录只按 with_same 判定是否同组。
    """

    def __init__(
        self,
        session: Session,
        policy: "RankPolicy",
        adapter: RecordAdapter,
        pending: Sequence[Any] = (),
    ) -> None:
        self._session = session
        self._policy = policy
        self._adapter = adapter
        self._pending = pending

    @property
    def model(self) -> type:
        return self._adapter.model

    @property
    def rank_attribute(self):
        return self._adapter.rank_attribute

    @property
    def id_attribute(self):
        return self._adapter.id_attribute

    def pending_members(self) -> List[Any]:
        members = []
        column = self._policy.column
        for record in self._pending:
            if record is self._adapter.record or not isinstance(record, self.model):
                continue
            if getattr(record, column) is None:
                continue
            if all(getattr(record, f) == self._adapter.read(f) for f in self._policy.with_same_fields):
                members.append(record)
        return members

    def _pending_identities(self, members: Sequence[Any]) -> list:
        key = self._adapter.id_attribute.key
        return [getattr(record, key) for record in members if getattr(record, key, None) is not None]

    def criteria(self) -> list:
        model = self.model
        clauses = []
        if self._policy.scope:
            narrowed = getattr(model, self._policy.scope)()
            if isinstance(narrowed, (list, tuple)):
                clauses.extend(narrowed)
            else:
                clauses.append(narrowed)
        if not self._adapter.is_new:
            clauses.append(self.id_attribute != self._adapter.identity)
        for field in self._policy.with_same_fields:
            clauses.append(getattr(model, field) == self._adapter.read(field))
        # 已落库的 pending 记录以内存值为准，库里的旧值不参与
        identities = self._pending_identities(self.pending_members())
        if identities:
            clauses.append(self.id_attribute.not_in(identities))
        return clauses

    def statement(self):
        return (
            select(self.id_attribute, self.rank_attribute)
            .where(*self.criteria())
            .order_by(self.rank_attribute.asc())
        )

    def _fetch(self, stmt) -> List[Neighbor]:
        with self._session.no_autoflush:
            rows = self._session.execute(stmt).all()
        return [Neighbor(id=row[0], rank=row[1]) for row in rows]

    def _fetch_one(self, stmt) -> Optional[Neighbor]:
        rows = self._fetch(stmt.limit(1))
        return rows[0] if rows else None

    def _merged(self, members: Sequence[Any]) -> List[Neighbor]:
        key = self._adapter.id_attribute.key
        column = self._policy.column
        listing = self._fetch(self.statement())
        listing.extend(
            Neighbor(id=getattr(record, key, None), rank=getattr(record, column), record=record)
            for record in members
        )
        return sorted(listing, key=_rank_sort_key)

    def first(self) -> Optional[Neighbor]:
        members = self.pending_members()
        if members:
            return self._merged(members)[0]
        return self._fetch_one(self.statement())

    def last(self) -> Optional[Neighbor]:
        members = self.pending_members()
        if members:
            return self._merged(members)[-1]
        stmt = self.statement().order_by(None).order_by(self.rank_attribute.desc())
        return self._fetch_one(stmt)

    def at_offset(self, offset: int) -> Optional[Neighbor]:
        window = self.at_offset_window(offset, 1)
        return window[0] if window else None

    def at_offset_window(self, offset: int, count: int) -> List[Neighbor]:
        members = self.pending_members()
        if members:
            return self._merged(members)[offset:offset + count]
        return self._fetch(self.statement().offset(offset).limit(count))

    def where_rank_equals(self, value: int) -> Optional[Neighbor]:
        members = self.pending_members()
        if members:
            return next((n for n in self._merged(members) if n.rank == value), None)
        stmt = self.statement().order_by(None).where(self.rank_attribute == value)
        return self._fetch_one(stmt)

    def count_below(self, value: int) -> int:
        stmt = (
            select(func.count())
            .select_from(self.model)
            .where(*self.criteria(), self.rank_attribute < value)
        )
        with self._session.no_autoflush:
            total = int(self._session.execute(stmt).scalar_one())
        column = self._policy.column
        return total + sum(1 for record in self.pending_members() if getattr(record, column) < value)

    def all(self) -> List[Neighbor]:
        members = self.pending_members()
        if members:
            return self._merged(members)
        return self._fetch(self.statement())

    def __iter__(self) -> Iterator[Neighbor]:
        return iter(self.all())


class RankStore:
    """
    排序相关的“裸写”操作：直接发 UPDATE，不经过 ORM 的变更跟踪，
    也不会触发 before_flush 里的排序逻辑（静默写）。
    本次 flush 中尚未写库的同组记录只改内存中的值，随本次 flush 一起落库。
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def bulk_shift(self, group: GroupQuery, compare: Callable[[Any, Any], Any], bound: int, delta: int) -> int:
        """对组内 compare(rank, bound) 成立的所有记录执行 rank = rank + delta（单条语句）"""
        rank = group.rank_attribute
        stmt = (
            update(group.model)
            .where(*group.criteria(), compare(rank, bound))
            .values({rank: rank + delta})
        )
        with self._session.no_autoflush:
            result = self._session.execute(stmt)
        affected = int(result.rowcount or 0)

        column = rank.key
        for record in group.pending_members():
            value = getattr(record, column)
            if compare(value, bound):
                setattr(record, column, value + delta)
                affected += 1

        logger.debug(f"批量平移 rank: model={group.model.__name__}, delta={delta:+d}, affected={affected}")
        return affected

    def assign_rank(self, group: GroupQuery, neighbor: Neighbor, value: int) -> None:
        if neighbor.record is not None:
            setattr(neighbor.record, group.rank_attribute.key, value)
            return
        self.write_rank_silently(group.model, group.id_attribute, group.rank_attribute, neighbor.id, value)

    def write_rank_silently(self, model: type, id_attribute, rank_attribute, record_id: Any, value: int) -> None:
        with self._session.no_autoflush:
            self._session.execute(
                update(model).where(id_attribute == record_id).values({rank_attribute: value})
            )
