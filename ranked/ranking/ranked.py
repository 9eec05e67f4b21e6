"""
Model 接入层

- Ranked mixin：在声明式 Model 上声明排序维度（__ranks__ 或 ranks()）
- `<name>_position`：写入 first/last/middle/下标，下一次 flush 时换算成 rank 后清空
- `<name>_rank`：当前记录在组内的 0-based 序号
- before_flush 监听：对 new / dirty 的 Ranked 记录按加入顺序逐个执行 handle_ranking，
  先处理的记录作为 pending 对后面的记录可见，同一次 flush 里不会产生重复 rank

监听不会自动注册，宿主需要对自己的 sessionmaker（或 Session 子类、Session 实例）
调用一次 install_ranking()。
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, List, Optional, Sequence, Union

from loguru import logger
from sqlalchemy import event, inspect, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from ranked.ranking.policy import RankPolicy


class _PositionAttribute:
    """`<name>_position` 描述符：值存在实例上，不落库"""

    def __init__(self, policy: RankPolicy) -> None:
        self._policy = policy
        self._slot = f"_ranked_{policy.position_attribute}"

    def __get__(self, obj: Any, owner: type) -> Any:
        if obj is None:
            return self
        return obj.__dict__.get(self._slot)

    def __set__(self, obj: Any, value: Any) -> None:
        obj.__dict__[self._slot] = value
        if value is None:
            return
        # 已落库的记录只改 position 时 ORM 看不到变更，这里手动把 rank 字段标脏
        state = inspect(obj)
        if state.persistent:
            getattr(obj, self._policy.column)
            flag_modified(obj, self._policy.column)


class _RelativeRankAttribute:
    def __init__(self, policy: RankPolicy) -> None:
        self._policy = policy

    def __get__(self, obj: Any, owner: type) -> Any:
        if obj is None:
            return self
        return self._policy.bind(obj).relative_rank()


class Ranked:
    """
    声明式 Model 的排序 mixin::

        class Duck(Ranked, Base):
            __tablename__ = "ducks"
            __ranks__ = {"row": {}, "age": {"with_same": "pond"}}

            id = Column(Integer, primary_key=True)
            pond = Column(String(50))
            row = Column(Integer)
            age = Column(Integer)

        install_ranking(SessionLocal)
    """

    __rankers__ = MappingProxyType({})  # name -> RankPolicy；基类只读，子类各自持有 dict

    def __init_subclass__(cls, **kwargs) -> None:
        super().__init_subclass__(**kwargs)
        # 子类继承父类的排序维度，但各自持有一份字典
        cls.__rankers__ = dict(cls.__rankers__)
        for name, options in (cls.__dict__.get("__ranks__") or {}).items():
            cls.ranks(name, **(options or {}))

    @classmethod
    def ranks(
        cls,
        name: str,
        column: Optional[str] = None,
        scope: Optional[str] = None,
        with_same: Union[str, Sequence[str], None] = None,
    ) -> RankPolicy:
        if cls is Ranked:
            raise TypeError("ranks() 只能在 Ranked 的子类上调用")
        policy = RankPolicy.create(name, column=column, scope=scope, with_same=with_same)
        cls.__rankers__[policy.name] = policy
        setattr(cls, policy.position_attribute, _PositionAttribute(policy))
        setattr(cls, f"{policy.name}_rank", _RelativeRankAttribute(policy))
        return policy

    @classmethod
    def ranked(cls, name: str):
        """按某个排序维度升序的 select(cls)"""
        policy = cls.__rankers__[name]
        return select(cls).order_by(getattr(cls, policy.column).asc())


def handle_record_ranking(record: Any, session: Session, pending: Sequence[Any] = ()) -> int:
    """对单条记录执行其全部排序维度，返回处理的维度数"""
    rankers = getattr(type(record), "__rankers__", None)
    if not rankers:
        return 0
    for policy in rankers.values():
        policy.bind(record, session, pending).handle_ranking()
        # position 只消费一次
        setattr(record, policy.position_attribute, None)
    return len(rankers)


def _rank_before_flush(session: Session, flush_context, instances) -> None:
    records = [obj for obj in list(session.new) + list(session.dirty) if isinstance(obj, Ranked)]
    handled: List[Any] = []
    for record in records:
        handle_record_ranking(record, session, handled)
        handled.append(record)
    if records:
        logger.debug(f"flush 前排序处理完成: records={len(records)}")


def install_ranking(target: Any = Session) -> None:
    """在 Session（类、sessionmaker 或实例）上注册 before_flush 排序钩子，可重复调用"""
    if not event.contains(target, "before_flush", _rank_before_flush):
        event.listen(target, "before_flush", _rank_before_flush)
