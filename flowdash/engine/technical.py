"""
Technical Factors - 종합 신호용 기술적 팩터
=============================================
ADX, 고급 기술 신호, 변동성 조정 수익률, 시장 미시구조, 위험 조정 계수,
차트 체크리스트 점수 (정배열/볼린저/RSI/MFI/거래량/수급)
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List

import numpy as np

from flowdash.engine.bars import (
    Bars, SeriesLike, as_bars, mean, pct_returns, population_std, safe_div,
)

logger = logging.getLogger('FlowDash.Technical')


def _truthy(value: float) -> bool:
    """NaN/0이 아닌 값"""
    return not math.isnan(value) and value != 0


def _or_default(value: float, default: float) -> float:
    return value if _truthy(value) else default


def calculate_adx(data: SeriesLike, index: int, period: int = 14) -> float:
    """최근 period봉 DM/TR 기반 DX (period*2 미만이면 0)"""
    bars = as_bars(data)
    if index < period * 2 or index >= len(bars):
        return 0.0

    plus_dm = minus_dm = tr = 0.0
    for i in range(index - period + 1, index + 1):
        high_diff = bars.high[i] - bars.high[i - 1]
        low_diff = bars.low[i - 1] - bars.low[i]
        if high_diff > low_diff and high_diff > 0:
            plus_dm += high_diff
        if low_diff > high_diff and low_diff > 0:
            minus_dm += low_diff
        tr += max(bars.high[i] - bars.low[i],
                  abs(bars.high[i] - bars.close[i - 1]),
                  abs(bars.low[i] - bars.close[i - 1]))

    if tr == 0:
        return 0.0
    plus_di = plus_dm / tr * 100
    minus_di = minus_dm / tr * 100
    return safe_div(abs(plus_di - minus_di), plus_di + minus_di) * 100


def advanced_technical_signal(data: SeriesLike, index: int) -> float:
    """
    RSI 기울기 반전 + MACD 히스토그램 가속 + 거래량-가격 확인 + 20봉 지지/저항 위치

    60봉 미만이면 0
    """
    bars = as_bars(data)
    if index < 60 or index >= len(bars):
        return 0.0

    signal = 0.0

    # ── 1. 모멘텀 품질 ──
    rsi = _or_default(bars.rsi14[index], 50.0)
    rsi_prev = _or_default(bars.rsi14[index - 1], 50.0)
    rsi_slope = rsi - rsi_prev
    if rsi < 30 and rsi_slope > 0:
        signal += 20            # 과매도 반전
    elif rsi > 70 and rsi_slope < 0:
        signal -= 20            # 과매수 반전
    elif 50 < rsi < 70 and rsi_slope > 0:
        signal += 10
    elif 30 < rsi < 50 and rsi_slope < 0:
        signal -= 10

    # ── 2. MACD 히스토그램 가속 ──
    hist = bars.macd_histogram[index]
    hist_prev = bars.macd_histogram[index - 1]
    if _truthy(hist) and _truthy(hist_prev):
        signal += max(-15.0, min(15.0, (hist - hist_prev) * 100))

    # ── 3. 거래량-가격 확인 ──
    vol_ma = mean(bars.volume[index - 10:index])
    price_change = safe_div(bars.close[index] - bars.close[index - 1], bars.close[index - 1])
    vol_ratio = safe_div(bars.volume[index], vol_ma)
    if price_change > 0 and vol_ratio > 1.5:
        signal += 15
    elif price_change < 0 and vol_ratio > 1.5:
        signal -= 15
    elif abs(price_change) > 0.02 and vol_ratio < 0.7:
        signal -= 10

    # ── 4. 지지/저항 근접 ──
    high20 = float(bars.high[index - 20:index].max())
    low20 = float(bars.low[index - 20:index].min())
    price_range = high20 - low20
    if price_range > 0:
        position = (bars.close[index] - low20) / price_range
        if position < 0.2:
            signal += 10
        elif position > 0.8:
            signal -= 10

    return signal


def volatility_adjusted_return(data: SeriesLike, index: int, lookback: int = 20) -> float:
    """최근 lookback 수익률 평균 / 표준편차 (샤프 스타일, 변동성 0이면 0)"""
    bars = as_bars(data)
    if index < lookback or index >= len(bars):
        return 0.0
    returns = pct_returns(bars.close[index - lookback:index + 1])
    vol = population_std(returns)
    if vol == 0:
        return 0.0
    return mean(returns) / vol


def price_efficiency(closes: np.ndarray) -> float:
    """순이동 / 총이동 → 1 (>0.7), 0.5 (>0.3), -0.5"""
    if len(closes) < 2:
        return 0.0
    total_move = float(np.abs(np.diff(closes)).sum())
    if total_move == 0:
        return 0.0
    efficiency = abs(closes[-1] - closes[0]) / total_move
    if efficiency > 0.7:
        return 1.0
    return 0.5 if efficiency > 0.3 else -0.5


def volume_profile(bars: Bars, index: int, hist: slice) -> float:
    """현재 거래량 / 과거 평균: 정상 0.5, 이상 급증 ±1, 부족 -0.5"""
    avg_volume = mean(bars.volume[hist])
    if avg_volume == 0:
        return 0.0
    ratio = bars.volume[index] / avg_volume
    if 0.8 <= ratio <= 2:
        return 0.5
    if ratio > 3:
        return 1.0 if bars.close[index] > bars.close[hist.stop - 1] else -1.0
    if ratio < 0.5:
        return -0.5
    return 0.0


def spread_quality(bars: Bars, index: int, hist: slice) -> float:
    """당일 고저폭 vs 과거 평균 고저폭 (좁을수록 유동성 양호)"""
    avg_range = mean(bars.high[hist] - bars.low[hist])
    current_range = bars.high[index] - bars.low[index]
    if current_range < avg_range * 0.7:
        return 1.0
    if current_range < avg_range:
        return 0.5
    if current_range > avg_range * 1.5:
        return -1.0
    return 0.0


def market_microstructure(data: SeriesLike, index: int) -> float:
    """가격효율 0.3 + 거래량 프로파일 0.3 + 스프레드 0.4 (20봉 미만이면 0)"""
    bars = as_bars(data)
    if index < 20 or index >= len(bars):
        return 0.0
    hist = slice(index - 20, index)
    return (price_efficiency(bars.close[hist]) * 0.3
            + volume_profile(bars, index, hist) * 0.3
            + spread_quality(bars, index, hist) * 0.4)


def daily_volatility(closes: np.ndarray) -> float:
    """일간 수익률 모집단 표준편차 (평균 차감)"""
    if len(closes) < 2:
        return 0.0
    return population_std(pct_returns(closes))


def risk_adjustment(data: SeriesLike, index: int) -> float:
    """직전 20봉 변동성 기반 신호 배수 (60봉 미만이면 1)"""
    bars = as_bars(data)
    if index < 60 or index >= len(bars):
        return 1.0
    vol = daily_volatility(bars.close[index - 20:index])
    if vol > 0.03:
        return 0.7
    if vol > 0.02:
        return 0.85
    if vol < 0.01:
        return 1.1
    return 1.0


# ──────────────────────────────────────────────
#  차트 체크리스트 점수
# ──────────────────────────────────────────────

@dataclass
class ChecklistSignal:
    name: str
    type: str       # 'bullish' | 'bearish'
    weight: int


@dataclass
class SignalScore:
    """체크리스트 점수 결과"""
    score: int = 0
    signals: List[ChecklistSignal] = field(default_factory=list)


def calculate_signal_score(data: SeriesLike, index: int) -> SignalScore:
    """
    차트 지표 체크리스트 점수 (60봉 미만이면 0)

    정배열 ±20, 20일선 ±10, 볼린저 ±15, RSI ±15, MFI ±10, 거래량 급증 ±10,
    스마트머니(외국인 + 기관합계) ±20
    """
    bars = as_bars(data)
    result = SignalScore()
    if index < 60 or index >= len(bars):
        return result

    def add(name: str, weight: int):
        result.score += weight
        result.signals.append(ChecklistSignal(name, 'bullish' if weight > 0 else 'bearish', weight))

    close = bars.close[index]
    ma20 = bars.ma20[index]
    ma60 = bars.ma60[index]
    ma120 = bars.ma120[index]

    # ── 1. 이평선 배열 ──
    if _truthy(ma20) and _truthy(ma60) and _truthy(ma120):
        if ma20 > ma60 > ma120:
            add("정배열", 20)
        elif ma20 < ma60 < ma120:
            add("역배열", -20)

    # ── 2. 20일선 위/아래 ──
    if _truthy(ma20):
        if close > ma20:
            add("20일선 위", 10)
        else:
            add("20일선 아래", -10)

    # ── 3. 볼린저 ──
    upper = bars.bb_upper[index]
    lower = bars.bb_lower[index]
    if _truthy(upper) and _truthy(lower):
        if close > upper:
            add("BB 상단 돌파", -15)
        elif close < lower:
            add("BB 하단 돌파", 15)

    # ── 4. RSI ──
    rsi = bars.rsi14[index]
    if not math.isnan(rsi):
        if rsi > 70:
            add("RSI 과매수", -15)
        elif rsi < 30:
            add("RSI 과매도", 15)

    # ── 5. MFI ──
    mfi = bars.mfi14[index]
    if not math.isnan(mfi):
        if mfi > 80:
            add("MFI 과매수", -10)
        elif mfi < 20:
            add("MFI 과매도", 10)

    # ── 6. 거래량 급증 ──
    avg_volume = mean(bars.volume[index - 20:index])
    surge = bars.volume[index] > avg_volume * 1.5
    if surge and close > bars.close[index - 1]:
        add("거래량 급증(상승)", 10)
    elif surge and close < bars.close[index - 1]:
        add("거래량 급증(하락)", -10)

    # ── 7. 수급 ──
    smart = bars.foreign_only[index] + bars.inst[index]
    if smart > 0:
        add("스마트머니 매수", 20)
    elif smart < 0:
        add("스마트머니 매도", -20)

    return result
