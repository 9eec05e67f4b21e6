"""
排序模块：
- RankPolicy：一个排序维度的配置（字段、scope、with_same）
- RankMapper：position -> rank 换算、冲突平移与整组重排
- Ranked：声明式 Model 接入（flush 前自动计算 rank）
"""

from .adapters import Neighbor, RecordAdapter
from .constants import MAX_RANK, MEDIAN_RANK, MIN_RANK, RankRange, configure_rank_range, get_rank_range, restore_rank_range
from .enums import Position
from .errors import InvalidField, InvalidScope, RankingError
from .mapper import RankMapper
from .policy import RankPolicy
from .ranked import Ranked, handle_record_ranking, install_ranking
from .store import GroupQuery, RankStore

__all__ = [
    "GroupQuery",
    "InvalidField",
    "InvalidScope",
    "MAX_RANK",
    "MEDIAN_RANK",
    "MIN_RANK",
    "Neighbor",
    "Position",
    "RankMapper",
    "RankPolicy",
    "RankRange",
    "RankStore",
    "Ranked",
    "RankingError",
    "RecordAdapter",
    "configure_rank_range",
    "get_rank_range",
    "handle_record_ranking",
    "install_ranking",
    "restore_rank_range",
]
