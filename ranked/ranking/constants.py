from __future__ import annotations

from dataclasses import dataclass

from ranked.core.config import settings


def ceil_div(numerator: int, denominator: int) -> int:
    """整数向上取整除法，避免大整数走 float 时的精度误差"""
    return -(-numerator // denominator)


@dataclass(frozen=True)
class RankRange:
    """rank 的闭区间 [min_rank, max_rank]"""

    min_rank: int
    max_rank: int

    def __post_init__(self) -> None:
        if self.min_rank >= self.max_rank:
            raise ValueError(f"min_rank({self.min_rank}) 必须小于 max_rank({self.max_rank})")

    @property
    def median_rank(self) -> int:
        return self.min_rank + ceil_div(self.max_rank - self.min_rank, 2)

    @property
    def span(self) -> int:
        return self.max_rank - self.min_rank


DEFAULT_RANK_RANGE = RankRange(settings.RANK_MIN, settings.RANK_MAX)

MIN_RANK = DEFAULT_RANK_RANGE.min_rank
MAX_RANK = DEFAULT_RANK_RANGE.max_rank
MEDIAN_RANK = DEFAULT_RANK_RANGE.median_rank

_current_range = DEFAULT_RANK_RANGE


def get_rank_range() -> RankRange:
    return _current_range


def configure_rank_range(min_rank: int | None = None, max_rank: int | None = None) -> RankRange:
    """
    替换进程级的 rank 区间，返回旧区间（便于测试中恢复）。

    注意：只影响之后新建的 RankMapper；已落库的 rank 不会被迁移。
    """
    global _current_range
    previous = _current_range
    _current_range = RankRange(
        previous.min_rank if min_rank is None else int(min_rank),
        previous.max_rank if max_rank is None else int(max_rank),
    )
    return previous


def restore_rank_range(rank_range: RankRange) -> None:
    global _current_range
    _current_range = rank_range
