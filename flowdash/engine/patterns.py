"""
Pattern Detector - 세력 매집 / 돌파 / 급락 반등 / 고점 분산 패턴
==================================================================
가중 점수제, 패턴별 감지 기준:
  매집 ≥ 60, 돌파 ≥ 70, 반등 ≥ 60, 분산 ≥ 60
10봉 미만이면 미감지 (신뢰도 0)
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from flowdash.engine.bars import SeriesLike, as_bars, mean, safe_div

logger = logging.getLogger('FlowDash.Pattern')

MIN_BARS = 10


@dataclass
class PatternResult:
    """패턴 감지 결과"""
    detected: bool = False
    confidence: float = 0.0
    type: str = ""
    description: Optional[str] = None
    warning: Optional[str] = None


def _window(index: int, size: int) -> slice:
    """현재 봉 포함 최근 size봉"""
    lookback = min(size, index + 1)
    return slice(index - lookback + 1, index + 1)


def detect_accumulation_pattern(data: SeriesLike, index: int) -> PatternResult:
    """
    세력 매집: 횡보 + 기관 지속 매수, 거래량 감소, 스마트머니/개인 교체, 지지선 반복 테스트
    """
    bars = as_bars(data)
    if index < MIN_BARS or index >= len(bars):
        return PatternResult()

    w = _window(index, 20)
    high, low, close, volume = bars.high[w], bars.low[w], bars.close[w], bars.volume[w]
    inst, person = bars.inst[w], bars.person[w]
    smart = inst + bars.foreign[w]
    points = 0

    # ── 1. 가격 횡보(10% 이내) + 기관 매수일 12일 초과 ──
    price_range = float(high.max() - low.min())
    avg_price = mean(close)
    price_stable = avg_price != 0 and price_range / avg_price < 0.1
    inst_buying = int((inst > 0).sum())
    if price_stable and inst_buying > 12:
        points += 30

    # ── 2. 거래량 감소 (최근 5봉 / 처음 5봉 < 0.7) ──
    first5 = float(volume[:5].sum())
    if first5 > 0:
        vol_trend = float(volume[-5:].sum()) / first5
        if vol_trend < 0.7 and inst_buying > 10:
            points += 25

    # ── 3. 스마트머니 매수 + 개인 매도 교체 ──
    swap_days = int(((smart > 0) & (person < 0)).sum())
    if swap_days > 12:
        points += 25

    # ── 4. 저점 1% 이내 지지 테스트 3회 초과 ──
    min_low = float(low.min())
    if min_low != 0:
        tests = int((np.abs(low - min_low) / min_low < 0.01).sum())
        if tests > 3:
            points += 20

    detected = points >= 60
    return PatternResult(detected, min(100, points), '매집',
                         '세력 매집 진행 중' if detected else None)


def detect_breakout_pattern(data: SeriesLike, index: int) -> PatternResult:
    """상승 돌파: 60봉 최고가 돌파 + 거래량 2배 + 스마트머니 평균 3배"""
    bars = as_bars(data)
    if index < MIN_BARS or index >= len(bars):
        return PatternResult()

    w20 = _window(index, 20)
    w60 = _window(index, 60)
    close = bars.close[index]
    points = 0

    high60 = float(bars.high[w60][:-1].max())
    if close > high60:
        points += 40

    prev_volume = bars.volume[w20][:-1]
    if bars.volume[index] > mean(prev_volume) * 2:
        points += 30

    smart = bars.smart
    prev_smart = smart[w20][:-1]
    if smart[index] > mean(prev_smart) * 3:
        points += 30

    detected = points >= 70
    return PatternResult(detected, min(100, points), '돌파',
                         '상승 돌파 신호' if detected else None)


def detect_reversal_pattern(data: SeriesLike, index: int) -> PatternResult:
    """급락(-10%) 후 반등: 당일 3% 상승 + 기관 매수 전환 + 거래량 1.5배"""
    bars = as_bars(data)
    if index < MIN_BARS or index >= len(bars):
        return PatternResult()

    w = slice(index - 9, index + 1)
    high, low = bars.high[w], bars.low[w]
    high_point = float(high[:5].max())
    low_point = float(low[5:].min())
    drop_rate = safe_div(low_point - high_point, high_point)

    if drop_rate >= -0.1:
        return PatternResult()

    points = 0
    if bars.close[index] > bars.close[index - 1] * 1.03:
        points += 30
    if bars.inst[index] > 0 and bars.inst[index - 1] <= 0:
        points += 40
    if bars.volume[index] > bars.volume[index - 1] * 1.5:
        points += 30

    detected = points >= 60
    return PatternResult(detected, min(100, points), '반등',
                         '급락 후 반등 시작' if detected else None,
                         '데드캣 바운스 주의' if points < 80 else None)


def detect_distribution_pattern(data: SeriesLike, index: int) -> PatternResult:
    """고점 분산: 20봉 고점 부근 기관 매도, 거래량 증가 + 가격 정체, 개인 매수 폭증"""
    bars = as_bars(data)
    if index < MIN_BARS or index >= len(bars):
        return PatternResult()

    w = _window(index, 20)
    high, close, volume = bars.high[w], bars.close[w], bars.volume[w]
    current_close = bars.close[index]
    inst_selling = bars.inst[index] < 0
    points = 0

    if current_close > float(high.max()) * 0.95 and inst_selling:
        points += 40

    price_change = safe_div(current_close - close[0], close[0])
    vol_increase = bars.volume[index] > volume[0] * 1.5
    if abs(price_change) < 0.02 and vol_increase and inst_selling:
        points += 30

    retail = bars.person[index]
    avg_retail = mean(np.abs(bars.person[w][:-1]))
    if retail > 0 and abs(retail) > avg_retail * 2 and inst_selling:
        points += 30

    detected = points >= 60
    return PatternResult(detected, min(100, points), '분산',
                         '고점 분산 매도 진행' if detected else None)
