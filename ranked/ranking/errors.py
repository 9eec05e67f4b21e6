from __future__ import annotations


class RankingError(Exception):
    """排序配置/接入错误的基类"""


class InvalidScope(RankingError):
    def __init__(self, scope: str) -> None:
        self.scope = scope
        super().__init__(f'No scope called "{scope}" found in model')


class InvalidField(RankingError):
    def __init__(self, field) -> None:
        self.field = field
        super().__init__(f'No field called "{field}" found in model')
