"""
ranked：为 SQLAlchemy Model 提供可任意插入的整数排序字段（中点插入 + 冲突平移 + 整组重排）。
"""

from ranked.ranking import (
    InvalidField,
    InvalidScope,
    Position,
    RankMapper,
    RankPolicy,
    Ranked,
    RankingError,
    install_ranking,
)

__all__ = [
    "InvalidField",
    "InvalidScope",
    "Position",
    "RankMapper",
    "RankPolicy",
    "Ranked",
    "RankingError",
    "install_ranking",
]
