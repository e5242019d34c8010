"""
Risk Metrics - 대시보드 리스크 지표
=====================================
최근 20봉 기준 연율 변동성, 95% 일간 VaR, 평균 거래대금, 안전 거래 한도
"""

import logging
import math
from dataclasses import dataclass

from flowdash.engine.bars import SeriesLike, as_bars, mean, pct_returns, population_std

logger = logging.getLogger('FlowDash.Risk.Metrics')

DEFAULT_FUND_SIZE = 100_000_000
Z_95 = 1.65


@dataclass
class RiskMetrics:
    """리스크 지표 (변동성/VaR는 % 단위)"""
    volatility: float = 0.0         # 연율 변동성 %
    daily_var: float = 0.0          # 95% 일간 VaR %
    position_var: float = 0.0       # 가정 포지션 VaR (원)
    avg_trading_value: float = 0.0  # 20일 평균 거래대금 (원)
    safe_trade_size: float = 0.0    # 평균 거래대금의 5%
    position_size: float = 0.0      # 펀드의 0.1%
    sharpe_ratio: float = 0.0


def calculate_risk_metrics(data: SeriesLike, fund_size: float = DEFAULT_FUND_SIZE) -> RiskMetrics:
    """
    최근 20봉 리스크 지표 (10봉 미만이면 빈 지표)

    Args:
        data: 가격/지표 DataFrame 또는 Bars
        fund_size: 운용 펀드 규모 (원)
    """
    bars = as_bars(data)
    if len(bars) < 10:
        return RiskMetrics()

    returns = pct_returns(bars.close[-21:])
    avg_return = mean(returns)
    volatility = population_std(returns) * math.sqrt(252)
    daily_var = volatility / math.sqrt(252) * Z_95

    avg_value = float((bars.close[-20:] * bars.volume[-20:]).sum()) / 20
    position_size = fund_size * 0.001

    sharpe = avg_return * 252 / volatility if avg_return > 0 and volatility > 0 else 0.0

    return RiskMetrics(
        volatility=volatility * 100,
        daily_var=daily_var * 100,
        position_var=position_size * daily_var,
        avg_trading_value=avg_value,
        safe_trade_size=avg_value * 0.05,
        position_size=position_size,
        sharpe_ratio=sharpe,
    )
