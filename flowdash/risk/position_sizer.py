"""
Position Sizer - 포지션 사이징
===============================
1/4 켈리 + 변동성 조정 + 유동성 한도(20일 평균 거래대금의 1%)

  kelly      = (승률 × 평균이익 - (1-승률) × 평균손실) / 평균이익
  safe_kelly = clamp(kelly × 0.25, 0, 0.25)
  vol_adj    = clamp(0.2 / 연율 변동성, 0.5, 1)
  size       = min(포트폴리오 × safe_kelly × vol_adj, 평균 거래대금 × 1%)
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List

from flowdash.engine.bars import SeriesLike, as_bars, mean, pct_returns, rms, safe_div

logger = logging.getLogger('FlowDash.Risk.Sizer')

DEFAULT_PORTFOLIO_VALUE = 100_000_000
MIN_BARS = 20


@dataclass
class PositionSize:
    """포지션 사이징 결과"""
    size: int = 0
    leverage: float = 1.0
    reasoning: List[str] = field(default_factory=list)


def calculate_optimal_position_size(data: SeriesLike, index: int,
                                    portfolio_value: float = DEFAULT_PORTFOLIO_VALUE) -> PositionSize:
    """
    i번째 봉 기준 최적 포지션 금액

    Args:
        data: 지표 DataFrame 또는 Bars
        index: 평가 봉 (20 미만이면 0)
        portfolio_value: 운용 자금 (원)
    """
    bars = as_bars(data)
    if index < MIN_BARS or index >= len(bars):
        return PositionSize(0, 1.0, ['최소 20일 데이터 필요'])

    prev = slice(index - 20, index)
    returns = pct_returns(bars.close[prev])

    wins = returns[returns > 0]
    losses = returns[returns < 0]
    win_rate = safe_div(len(wins), len(returns))
    avg_win = float(wins.sum()) / max(1, len(wins))
    avg_loss = abs(float(losses.sum()) / max(1, len(losses)))

    if avg_loss == 0:
        logger.debug(f"[{index}] 손실 표본 없음 → 사이징 0")
        return PositionSize(0, 1.0, ['손실 데이터 부족'])

    kelly = safe_div(win_rate * avg_win - (1 - win_rate) * avg_loss, avg_win)
    safe_kelly = max(0.0, min(0.25, kelly * 0.25))

    vol = rms(returns) * math.sqrt(252)
    vol_adjustment = max(0.5, min(1.0, safe_div(0.2, vol, 1.0)))

    avg_value = mean(bars.volume[prev] * bars.close[prev])
    max_position = avg_value * 0.01

    optimal = min(portfolio_value * safe_kelly * vol_adjustment, max_position)

    reasoning = [
        f"Kelly Fraction: {kelly * 100:.2f}%",
        f"Volatility Adjustment: {vol_adjustment * 100:.0f}%",
        f"Win Rate: {win_rate * 100:.1f}%",
        f"Risk-Adjusted Size: {safe_kelly * 100:.2f}% of portfolio",
    ]
    return PositionSize(size=int(math.floor(optimal + 0.5)),
                        leverage=1.5 if safe_kelly > 0.15 else 1.0,
                        reasoning=reasoning)
