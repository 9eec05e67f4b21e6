from __future__ import annotations

import operator
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from loguru import logger
from sqlalchemy.orm import Session

from ranked.ranking.adapters import Neighbor, RecordAdapter
from ranked.ranking.constants import ceil_div, get_rank_range
from ranked.ranking.enums import Position
from ranked.ranking.store import GroupQuery, RankStore

if TYPE_CHECKING:
    from ranked.ranking.policy import RankPolicy


_SYMBOLS = {p.value for p in Position}


def _midpoint(low: int, high: int) -> int:
    """[low, high] 的中点，向 high 方向取整（与 low/high 的大小关系无关）"""
    return ceil_div(high - low, 2) + low


class RankMapper:
    """
    单条记录在某个 RankPolicy 下的排序计算。

    用法：policy.bind(record) -> mapper.handle_ranking()，然后由宿主正常 flush/commit。
    组内的 first/last/order 等邻居数据是惰性加载并缓存在实例上的，
    任何写操作之后都会过期，所以一个 mapper 只用于一次 handle_ranking。
    """

    def __init__(self, policy: "RankPolicy", record: Any, session: Session, pending: Sequence[Any] = ()) -> None:
        self.policy = policy
        self.record = record
        self._adapter = RecordAdapter(record, policy)
        self._session = session
        self._pending = pending
        self._store = RankStore(session)
        self._range = get_rank_range()

        self._finder: Optional[GroupQuery] = None
        self._current_order: Optional[List[Neighbor]] = None
        self._current_first: Optional[Neighbor] = None
        self._current_last: Optional[Neighbor] = None
        self._first_loaded = False
        self._last_loaded = False

    # ------------------------------------------------------------------
    # 对外接口
    # ------------------------------------------------------------------
    def handle_ranking(self) -> None:
        self.update_index_from_position()
        self.assure_unique_position()

    @property
    def rank(self) -> Optional[int]:
        return self._adapter.rank

    @property
    def position(self) -> Any:
        return self._adapter.position

    def current_at_position(self, index: int) -> Optional[Neighbor]:
        return self.finder.at_offset(index)

    def relative_rank(self) -> Optional[int]:
        """目标记录在组内的 0-based 序号（组内 rank 比它小的记录数）"""
        if self.rank is None:
            return None
        return self.finder.count_below(self.rank)

    # ------------------------------------------------------------------
    # position -> rank
    # ------------------------------------------------------------------
    def update_index_from_position(self) -> None:
        self._apply_position(self._adapter.position)

    def _apply_position(self, position: Any) -> None:
        # first/last 等的相互委托只在本地换算，不回写记录上的 position
        bounds = self._range

        if isinstance(position, Position):
            if position is Position.first:
                first = self.current_first
                if first is not None and first.rank is not None:
                    self._adapter.set_rank(_midpoint(first.rank, bounds.min_rank))
                else:
                    self._apply_position(Position.middle)
            elif position is Position.last:
                last = self.current_last
                if last is not None and last.rank is not None:
                    self._adapter.set_rank(_midpoint(last.rank, bounds.max_rank))
                else:
                    self._apply_position(Position.middle)
            else:
                self._adapter.set_rank(bounds.median_rank)
        elif isinstance(position, str):
            text = position.strip()
            if text in _SYMBOLS:
                self._apply_position(Position(text))
            else:
                self._apply_position(int(text))
        elif isinstance(position, bool):
            logger.warning(f"忽略无法识别的 position: {position!r} ({self.policy.name})")
        elif isinstance(position, int):
            if position == 0:
                self._apply_position(Position.first)
            else:
                neighbors = self.neighbors_at_position(position)
                lower = neighbors.get("lower")
                upper = neighbors.get("upper")
                low = lower.rank if lower is not None and lower.rank is not None else bounds.min_rank
                high = upper.rank if upper is not None and upper.rank is not None else bounds.max_rank
                self._adapter.set_rank(_midpoint(low, high))
        elif position is None:
            if self._adapter.rank is None:
                self._apply_position(Position.last)
        else:
            logger.warning(f"忽略无法识别的 position: {position!r} ({self.policy.name})")

        logger.debug(f"position 转换完成: {self.policy.name} position={position!r} rank={self._adapter.rank}")

    def neighbors_at_position(self, position: int) -> Dict[str, Neighbor]:
        if position > 0:
            window = self.finder.at_offset_window(position - 1, 2)
            if len(window) > 1:
                return {"lower": window[0], "upper": window[1]}
            if window:
                return {"lower": window[0]}
            # 超出组大小时挂到末尾之后
            last = self.current_last
            return {"lower": last} if last is not None else {}

        first = self.finder.first()
        return {"upper": first} if first is not None else {}

    # ------------------------------------------------------------------
    # 冲突检测与整理
    # ------------------------------------------------------------------
    def assure_unique_position(self) -> None:
        if not (self._adapter.is_new or self._adapter.rank_changed):
            return

        bounds = self._range
        if self._adapter.rank is None:
            self._adapter.set_rank(bounds.max_rank)

        rank = self._adapter.rank
        if rank < bounds.min_rank:
            rank = bounds.min_rank
            self._adapter.set_rank(rank)
        if rank > bounds.max_rank or self.current_at_rank(rank) is not None:
            self.rearrange_ranks()

    def rearrange_ranks(self) -> None:
        bounds = self._range
        rank = self._adapter.rank
        if rank > bounds.max_rank:
            # 超出上界的显式 rank 先压回上界再整理
            rank = bounds.max_rank
            self._adapter.set_rank(rank)
        first = self.current_first
        last = self.current_last

        first_has_room = first is not None and first.rank is not None and first.rank > bounds.min_rank

        if first_has_room and rank == bounds.max_rank:
            # 顶端已满：把 <= rank 的整体下移一位，目标保留原 rank
            self._store.bulk_shift(self.finder, operator.le, rank, -1)
            logger.info(f"rank 冲突，向下平移腾位: {self.policy.name} rank={rank}")
        elif last is not None and last.rank is not None and last.rank < bounds.max_rank - 1 and rank < last.rank:
            self._store.bulk_shift(self.finder, operator.ge, rank, +1)
            logger.info(f"rank 冲突，向上平移腾位: {self.policy.name} rank={rank}")
        elif first_has_room and rank > first.rank:
            self._store.bulk_shift(self.finder, operator.lt, rank, -1)
            self._adapter.set_rank(rank - 1)
            logger.info(f"rank 冲突，向下平移并占用空位: {self.policy.name} rank={rank - 1}")
        else:
            self.rebalance_ranks()

    def rebalance_ranks(self) -> None:
        """
        把整组（含目标记录）均匀铺满 [min_rank, max_rank]。

        slot k 的 rank = ceil(span * k / total) + min_rank，k 取 1..total-1，
        两端的 slot 0 / total 永远不分配。目标记录插在第一个 rank >= 自身原 rank 的
        记录之前；其他记录直接写库（静默），目标记录只改内存中的值。
        """
        bounds = self._range
        order = self.current_order
        target_rank = self._adapter.rank
        total = len(order) + 2
        has_set_self = False

        logger.info(f"rank 空间耗尽，整组重排: {self.policy.name} size={len(order) + 1}")

        finder = self.finder
        for slot in range(1, total):
            rank_value = ceil_div(bounds.span * slot, total) + bounds.min_rank
            index = slot - 1
            if has_set_self:
                index -= 1
            else:
                occupant = order[index] if index < len(order) else None
                if occupant is None or (
                    occupant.rank is not None and target_rank is not None and occupant.rank >= target_rank
                ):
                    self._adapter.set_rank(rank_value)
                    has_set_self = True
                    continue
            self._store.assign_rank(finder, order[index], rank_value)

    # ------------------------------------------------------------------
    # 组查询（惰性缓存）
    # ------------------------------------------------------------------
    @property
    def finder(self) -> GroupQuery:
        if self._finder is None:
            self._finder = GroupQuery(self._session, self.policy, self._adapter, self._pending)
        return self._finder

    @property
    def current_order(self) -> List[Neighbor]:
        if self._current_order is None:
            self._current_order = self.finder.all()
        return self._current_order

    @property
    def current_first(self) -> Optional[Neighbor]:
        if not self._first_loaded:
            self._current_first = self.finder.first()
            self._first_loaded = True
        return self._current_first

    @property
    def current_last(self) -> Optional[Neighbor]:
        if not self._last_loaded:
            self._current_last = self.finder.last()
            self._last_loaded = True
        return self._current_last

    def current_at_rank(self, rank: int) -> Optional[Neighbor]:
        return self.finder.where_rank_equals(rank)
