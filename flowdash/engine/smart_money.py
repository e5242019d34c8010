"""
Smart Money Score - 기관/외국인 스마트머니 점수 (0~100)
=========================================================
중립 50에서 시작하여 항목별 가감 후 레짐 배수 적용

  1. 수급 강도 + 주문흐름 불균형   (±30)
  2. 방향 지속성 (5봉 연속 + 10봉 일관성) (±25)
  3. 개인 역행                     (±15)
  4. 20봉 vs 60봉 수급 모멘텀       (±15)
  5. 대량 거래일 수급 확인           (±10)
  6. 기관 활동 국면 + 외국인 주도     (±20)

레짐 배수: 상승추세 1.2, 하락추세 0.8, 고변동성 0.7, 돌파가능 1.3, 그 외 1.0
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Union

from flowdash.engine.bars import SeriesLike, as_bars, mean
from flowdash.engine.market_regime import (
    ActivityPhase, MarketRegime, detect_institutional_activity,
    detect_market_regime, order_flow_imbalance,
)

logger = logging.getLogger('FlowDash.SmartMoney')

MIN_BARS = 10
NO_DATA = "데이터 부족"

REGIME_MULTIPLIER = {
    MarketRegime.BULL_TRENDING: 1.2,
    MarketRegime.BEAR_TRENDING: 0.8,
    MarketRegime.HIGH_VOLATILITY: 0.7,
    MarketRegime.BREAKOUT_POTENTIAL: 1.3,
}


@dataclass
class SmartMoneyScore:
    """스마트머니 점수 결과"""
    score: float
    breakdown: Dict[str, Union[float, str]] = field(default_factory=dict)
    interpretation: str = ""


def interpret_score(score: float) -> str:
    """점수 → 해석 문구"""
    if score >= 80:
        return "💰 기관/외인 대량 매집 중 → 강력 매수 시그널"
    if score >= 65:
        return "📈 스마트머니 순매수 → 매수 고려"
    if score >= 50:
        return "⚖️ 수급 균형 → 관망 추천"
    if score >= 35:
        return "📉 스마트머니 이탈 시작 → 주의 필요"
    return "🚨 기관/외인 대량 매도 → 매도 고려"


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def calculate_institutional_smart_money_score(data: SeriesLike, index: int) -> SmartMoneyScore:
    """
    i번째 봉의 스마트머니 점수

    Args:
        data: 지표/수급 병합 DataFrame 또는 Bars
        index: 평가 봉 (10 미만이면 중립 50)
    """
    bars = as_bars(data)
    if index < MIN_BARS or index >= len(bars):
        return SmartMoneyScore(score=50, breakdown={}, interpretation=NO_DATA)

    lb20 = min(20, index)
    lb60 = min(60, index)
    prev20 = slice(index - lb20, index)
    prev60 = slice(index - lb60, index)
    smart = bars.smart

    breakdown: Dict[str, Union[float, str]] = {}
    total = 0.0

    regime = detect_market_regime(bars, index)
    multiplier = REGIME_MULTIPLIER.get(regime, 1.0)
    breakdown['market_regime'] = regime.value

    foreign = float(bars.foreign[index])
    inst = float(bars.inst[index])
    retail = float(bars.person[index])
    smart_total = foreign + inst

    # ── 1. 수급 강도 (±30) ──
    total_abs = abs(foreign) + abs(inst) + abs(retail)
    if total_abs > 0:
        intensity = smart_total / total_abs * 20
        enhanced = intensity + order_flow_imbalance(bars, index) * 10
        breakdown['flow_intensity'] = _clamp(enhanced, -30, 30)
        total += breakdown['flow_intensity']

    # ── 2. 지속성 (5봉 연속 + 10봉 일관성) ──
    consecutive = 0
    last_direction = 0
    for value in smart[max(0, index - 4):index + 1]:
        direction = 1 if value > 0 else (-1 if value < 0 else 0)
        if direction == last_direction and direction != 0:
            consecutive += 1
        else:
            consecutive = 1 if direction != 0 else 0
        last_direction = direction
    short_term = min(15, consecutive * 3 * last_direction)

    recent10 = smart[max(0, index - 9):index + 1]
    positive_days = int((recent10 > 0).sum())
    long_term = (positive_days / len(recent10) - 0.5) * 20

    breakdown['persistence'] = short_term + long_term
    total += breakdown['persistence']

    # ── 3. 개인 역행 (±15) ──
    if smart_total > 0 and retail < 0:
        breakdown['retail_divergence'] = 15
    elif smart_total < 0 and retail > 0:
        breakdown['retail_divergence'] = -15
    else:
        breakdown['retail_divergence'] = 0
    total += breakdown['retail_divergence']

    # ── 4. 수급 모멘텀 (±15) ──
    avg20 = mean(smart[prev20])
    avg60 = mean(smart[prev60])
    if avg20 > avg60:
        breakdown['momentum'] = 15
    elif avg20 < avg60 * 0.5:
        breakdown['momentum'] = -15
    else:
        breakdown['momentum'] = 0
    total += breakdown['momentum']

    # ── 5. 대량 거래 (±10, 평균 2.5배 초과) ──
    avg_volume = mean(bars.volume[prev20])
    volume_signal = 0
    if bars.volume[index] > avg_volume * 2.5:
        if smart_total > 0:
            volume_signal = 10
        elif smart_total < 0:
            volume_signal = -10
    breakdown['volume_signal'] = volume_signal
    total += volume_signal

    # ── 6. 기관 활동 국면 + 외국인 주도 (±20) ──
    activity = detect_institutional_activity(bars, index)
    inst_score = 0.0
    if activity.phase == ActivityPhase.ACCUMULATION:
        inst_score = activity.strength * 0.2
    elif activity.phase == ActivityPhase.DISTRIBUTION:
        inst_score = -activity.strength * 0.2
    elif activity.phase == ActivityPhase.MARKUP and foreign > 0:
        inst_score = 15
    elif activity.phase == ActivityPhase.MARKDOWN and foreign < 0:
        inst_score = -15

    if foreign > 0 and inst <= 0:
        inst_score += 5         # 외국인 단독 매수
    elif foreign > 0 and inst > 0 and foreign > inst * 1.5:
        inst_score += 10        # 외국인 주도 매수
    elif foreign < 0 and inst >= 0:
        inst_score -= 5         # 외국인 단독 매도
    elif foreign < 0 and inst < 0 and foreign < inst * 1.5:
        inst_score -= 10        # 외국인 주도 매도

    breakdown['institutional_pattern'] = _clamp(inst_score, -20, 20)
    total += breakdown['institutional_pattern']

    total *= multiplier
    score = _clamp(total + 50, 0, 100)

    return SmartMoneyScore(score=score, breakdown=breakdown,
                           interpretation=interpret_score(score))
