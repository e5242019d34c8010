"""
Market Regime - 시장 레짐 / 기관 활동 국면 / 주문흐름 불균형
=============================================================
레짐 판정 우선순위: 상승추세 → 하락추세 → 고변동성 → 횡보 → 돌파가능 → 전환기

  trend_strength = (현재가 - 60봉 평균) / 60봉 평균
  momentum       = (20봉 평균 - 60봉 평균) / 60봉 평균
  vol20          = 20봉 일간수익률 RMS × √252
  volume_trend   = (20봉 평균 거래량 - 60봉 평균 거래량) / 60봉 평균 거래량
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum

import numpy as np

from flowdash.engine.bars import SeriesLike, as_bars, mean, pct_returns, rms, safe_div

logger = logging.getLogger('FlowDash.Regime')


class MarketRegime(Enum):
    BULL_TRENDING = "BULL_TRENDING"
    BEAR_TRENDING = "BEAR_TRENDING"
    HIGH_VOLATILITY = "HIGH_VOLATILITY"
    RANGE_BOUND = "RANGE_BOUND"
    BREAKOUT_POTENTIAL = "BREAKOUT_POTENTIAL"
    TRANSITIONING = "TRANSITIONING"
    UNKNOWN = "UNKNOWN"


REGIME_LABELS = {
    MarketRegime.BULL_TRENDING: '상승 추세',
    MarketRegime.BEAR_TRENDING: '하락 추세',
    MarketRegime.HIGH_VOLATILITY: '고변동성',
    MarketRegime.RANGE_BOUND: '횡보 구간',
    MarketRegime.BREAKOUT_POTENTIAL: '돌파 가능',
    MarketRegime.TRANSITIONING: '전환기',
    MarketRegime.UNKNOWN: '분석 중',
}


class ActivityPhase(Enum):
    ACCUMULATION = "ACCUMULATION"
    DISTRIBUTION = "DISTRIBUTION"
    CONSOLIDATION = "CONSOLIDATION"
    MARKUP = "MARKUP"
    MARKDOWN = "MARKDOWN"
    NEUTRAL = "NEUTRAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class InstitutionalActivity:
    """기관 활동 국면"""
    phase: ActivityPhase
    strength: float = 0.0


MIN_REGIME_BARS = 10
MIN_ACTIVITY_BARS = 20


def detect_market_regime(data: SeriesLike, index: int) -> MarketRegime:
    """i번째 봉 기준 시장 레짐 (10봉 미만이면 UNKNOWN)"""
    bars = as_bars(data)
    if index < MIN_REGIME_BARS or index >= len(bars):
        return MarketRegime.UNKNOWN

    lb20 = min(20, index + 1)
    lb60 = min(60, index + 1)
    close20 = bars.close[index - lb20 + 1:index + 1]
    close60 = bars.close[index - lb60 + 1:index + 1]
    vol20s = bars.volume[index - lb20 + 1:index + 1]
    vol60s = bars.volume[index - lb60 + 1:index + 1]

    ma20 = mean(close20)
    ma60 = mean(close60)
    price = bars.close[index]

    trend_strength = safe_div(price - ma60, ma60)
    momentum = safe_div(ma20 - ma60, ma60)
    vol20 = rms(pct_returns(close20)) * math.sqrt(252)

    avg_vol20 = mean(vol20s)
    avg_vol60 = mean(vol60s)
    volume_trend = safe_div(avg_vol20 - avg_vol60, avg_vol60)

    if trend_strength > 0.1 and momentum > 0.05 and vol20 < 0.3:
        return MarketRegime.BULL_TRENDING
    if trend_strength < -0.1 and momentum < -0.05:
        return MarketRegime.BEAR_TRENDING
    if vol20 > 0.4:
        return MarketRegime.HIGH_VOLATILITY
    if abs(trend_strength) < 0.05 and vol20 < 0.2:
        return MarketRegime.RANGE_BOUND
    if volume_trend > 0.5 and abs(trend_strength) > 0.05:
        return MarketRegime.BREAKOUT_POTENTIAL
    return MarketRegime.TRANSITIONING


def order_flow_imbalance(data: SeriesLike, index: int) -> float:
    """
    최근 5봉 종가의 전형가격 대비 위치로 추정한 매수/매도 압력 불균형

    Returns:
        -1.0 ~ 1.0 (5봉 미만이면 0)
    """
    bars = as_bars(data)
    if index < 5 or index >= len(bars):
        return 0.0

    sl = slice(index - 4, index + 1)
    high, low, close, volume = bars.high[sl], bars.low[sl], bars.close[sl], bars.volume[sl]
    tp = (high + low + close) / 3
    with np.errstate(divide='ignore', invalid='ignore'):
        pressure = np.where(tp != 0, (close - tp) / tp, 0.0)

    buy = float((np.where(pressure > 0, pressure, 0.0) * volume).sum())
    sell = float((np.where(pressure <= 0, -pressure, 0.0) * volume).sum())
    total = buy + sell
    if total == 0:
        return 0.0
    return (buy - sell) / total


def detect_institutional_activity(data: SeriesLike, index: int) -> InstitutionalActivity:
    """
    20봉 거래량 비율 / 가격 변화 / 당일 변동폭 / 스마트머니 부호로 국면 분류

    우선순위: 매집 → 분산 → 횡보 → 상승(markup) → 하락(markdown) → 중립
    """
    bars = as_bars(data)
    if index < MIN_ACTIVITY_BARS or index >= len(bars):
        return InstitutionalActivity(ActivityPhase.UNKNOWN, 0.0)

    prev = slice(index - 20, index)
    avg_volume = mean(bars.volume[prev])
    volume_ratio = safe_div(bars.volume[index], avg_volume)

    base_close = bars.close[index - 20]
    price_change = safe_div(bars.close[index] - base_close, base_close)
    daily_range = safe_div(bars.high[index] - bars.low[index], bars.close[index])

    smart = bars.foreign[index] + bars.inst[index]

    if volume_ratio > 2 and smart > 0 and daily_range < 0.02:
        return InstitutionalActivity(ActivityPhase.ACCUMULATION, min(100.0, volume_ratio * 25))
    if volume_ratio > 1.5 and smart < 0 and price_change < -0.01:
        return InstitutionalActivity(ActivityPhase.DISTRIBUTION, min(100.0, volume_ratio * 20))
    if volume_ratio < 0.5 and abs(price_change) < 0.01:
        return InstitutionalActivity(ActivityPhase.CONSOLIDATION, 30.0)
    if smart > 0 and price_change > 0:
        return InstitutionalActivity(ActivityPhase.MARKUP, 50.0)
    if smart < 0 and price_change < 0:
        return InstitutionalActivity(ActivityPhase.MARKDOWN, 50.0)
    return InstitutionalActivity(ActivityPhase.NEUTRAL, 0.0)
