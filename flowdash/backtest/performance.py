"""
Performance Analyzer - 성과 분석
=================================
청산 거래 수익률(%) 기반 승률/평균 손익/Profit Factor/최대 낙폭/Sharpe
"""

import logging
import math
from typing import List, Optional

import numpy as np

logger = logging.getLogger('FlowDash.Performance')


def round_half_up(value: float, digits: int = 2) -> float:
    """toFixed 스타일 반올림 (0.5는 0에서 먼 쪽으로, 음수도 대칭)"""
    scale = 10 ** digits
    return math.copysign(math.floor(abs(value) * scale + 0.5) / scale, value)


class PerformanceAnalyzer:
    """백테스트 성과 분석기"""

    @staticmethod
    def win_stats(profits: List[float]) -> dict:
        """
        청산 수익률 목록 → 승률/평균 이익/평균 손실

        수익률 0은 손실로 집계, 청산이 없으면 승률 0
        """
        wins = [p for p in profits if p > 0]
        losses = [p for p in profits if p <= 0]
        total = len(wins) + len(losses)
        return {
            'wins': len(wins),
            'losses': len(losses),
            'win_rate': len(wins) / total * 100 if total else 0.0,
            'avg_win': sum(wins) / len(wins) if wins else 0.0,
            'avg_loss': abs(sum(losses) / len(losses)) if losses else 0.0,
        }

    @staticmethod
    def profit_factor(avg_win: float, avg_loss: float) -> Optional[float]:
        """평균 이익 / 평균 손실 (손실 없으면 None)"""
        if avg_loss > 0:
            return avg_win / avg_loss
        return None

    @staticmethod
    def max_drawdown(profits: List[float], initial: float = 1.0) -> float:
        """청산 수익률을 복리로 누적한 자본 곡선의 최대 낙폭 (비율)"""
        equity = initial
        peak = initial
        max_dd = 0.0
        for p in profits:
            equity *= 1 + p / 100
            peak = max(peak, equity)
            if peak > 0:
                max_dd = max(max_dd, (peak - equity) / peak)
        return max_dd

    @staticmethod
    def sharpe_ratio(profits: List[float], trade_count: int) -> float:
        """
        청산 수익률 평균 / 모집단 표준편차 × √252

        전체 거래(매수 포함) 2건 미만이거나 편차 0이면 0
        """
        if trade_count < 2 or not profits:
            return 0.0
        returns = np.array(profits) / 100
        std = float(returns.std())
        if std == 0:
            return 0.0
        return float(returns.mean()) / std * math.sqrt(252)
