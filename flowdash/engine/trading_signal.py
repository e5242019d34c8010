"""
Institutional Trading Signal - 기관급 종합 매매 신호 (-100 ~ +100)
===================================================================
7개 팩터 가중합 × 레짐 리스크 배수 → ±100 클램프

  팩터               가중치
  시장 레짐           0.00 (맥락 표시용)
  멀티타임프레임 추세  0.20 (ADX + 이평 정배열)
  고급 기술적 신호     0.25
  변동성 조정 수익률   0.15
  시장 미시구조       0.20
  기관 스마트머니      0.30 (매집/분산 국면 ×1.5)
  주문 흐름 불균형     0.15

리스크 배수: 고변동성 0.6, 하락추세 0.7, 상승추세 1.2, 돌파가능 1.1,
            그 외 직전 20봉 변동성 기반 0.7~1.1
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union

from flowdash.engine.bars import SeriesLike, as_bars
from flowdash.engine.market_regime import (
    ActivityPhase, MarketRegime, detect_institutional_activity,
    detect_market_regime, order_flow_imbalance,
)
from flowdash.engine.smart_money import calculate_institutional_smart_money_score
from flowdash.engine.technical import (
    advanced_technical_signal, calculate_adx, market_microstructure,
    risk_adjustment, volatility_adjusted_return,
)
from flowdash.risk.position_sizer import PositionSize, calculate_optimal_position_size

logger = logging.getLogger('FlowDash.Signal')

MIN_BARS = 10

RISK_MULTIPLIER = {
    MarketRegime.HIGH_VOLATILITY: 0.6,
    MarketRegime.BEAR_TRENDING: 0.7,
    MarketRegime.BULL_TRENDING: 1.2,
    MarketRegime.BREAKOUT_POTENTIAL: 1.1,
}


class Action(Enum):
    STRONG_BUY = "STRONG BUY"
    BUY = "BUY"
    ACCUMULATE = "ACCUMULATE"
    HOLD = "HOLD"
    REDUCE = "REDUCE"
    SELL = "SELL"
    EXIT = "EXIT"
    WAIT = "WAIT"


@dataclass
class Recommendation:
    """매매 권고"""
    action: Action
    description: str
    target_allocation: str = ""
    stop_loss: str = ""
    confidence: float = 0.0


@dataclass
class SignalFactor:
    """종합 신호 구성 팩터"""
    name: str
    value: Union[float, str]
    weight: float
    description: str = ""
    phase: Optional[ActivityPhase] = None


@dataclass
class TradingSignal:
    """종합 매매 신호 결과"""
    signal: float
    factors: List[SignalFactor] = field(default_factory=list)
    recommendation: Optional[Recommendation] = None
    confidence: float = 0.0
    position_size: PositionSize = field(default_factory=PositionSize)
    market_regime: MarketRegime = MarketRegime.UNKNOWN
    risk_multiplier: float = 1.0

    @property
    def action(self) -> Action:
        return self.recommendation.action if self.recommendation else Action.WAIT


def get_trading_recommendation(signal: float) -> Recommendation:
    """신호값 → 8단계 권고 (신뢰도 = min(100, |signal| × 1.2))"""
    urgency = "즉시" if abs(signal) > 70 else "단계적"
    confidence = min(100.0, abs(signal) * 1.2)

    if signal >= 70:
        return Recommendation(Action.STRONG_BUY, f"{urgency} 매수 포지션 구축",
                              "15-20%", "진입가 -3%", confidence)
    if signal >= 40:
        return Recommendation(Action.BUY, "분할 매수 진행", "10-15%", "진입가 -5%", confidence)
    if signal >= 15:
        return Recommendation(Action.ACCUMULATE, "저가 분할매수 검토", "5-10%", "진입가 -7%", confidence)
    if signal >= -15:
        return Recommendation(Action.HOLD, "현 포지션 유지", "현재 유지", "동적 조정", confidence)
    if signal >= -40:
        return Recommendation(Action.REDUCE, "단계적 비중 축소", "50% 감소", "즉시 실행", confidence)
    if signal >= -70:
        return Recommendation(Action.SELL, "포지션 청산 진행", "20% 이하", "N/A", confidence)
    return Recommendation(Action.EXIT, f"{urgency} 전량 청산", "0%", "N/A", confidence)


def signal_confidence(factors: List[SignalFactor]) -> float:
    """팩터 방향 일치도 60% + 평균 강도 40% (수치 팩터만)"""
    values = [f.value for f in factors if isinstance(f.value, (int, float))]
    if not values:
        return 0.0
    positive = sum(1 for v in values if v > 0)
    negative = sum(1 for v in values if v < 0)
    unanimity = max(positive, negative) / len(values)
    avg_strength = sum(abs(v) for v in values) / len(values)
    return float(math.floor((unanimity * 0.6 + avg_strength / 100 * 0.4) * 100 + 0.5))


def waiting_signal() -> TradingSignal:
    """데이터 부족 시 중립 결과"""
    return TradingSignal(
        signal=0.0,
        factors=[],
        recommendation=Recommendation(Action.WAIT, "데이터 수집 중"),
        confidence=0.0,
        position_size=PositionSize(),
        market_regime=MarketRegime.UNKNOWN,
        risk_multiplier=1.0,
    )


def _trend_score(bars, index: int) -> float:
    """ADX 추세 강도 × 방향 + 5/20/60 이평 배열 확인"""
    adx = calculate_adx(bars, index, 14)
    direction = 1 if bars.close[index] > bars.ma20[index] else -1
    score = 0.0
    if adx > 40:
        score = direction * 30
    elif adx > 25:
        score = direction * 20

    ma5, ma20, ma60 = bars.ma5[index], bars.ma20[index], bars.ma60[index]
    if ma5 > ma20 and ma20 > ma60:
        score = max(score, 25)
    elif ma5 < ma20 and ma20 < ma60:
        score = min(score, -25)
    return score


def calculate_institutional_trading_signal(data: SeriesLike, index: int,
                                           portfolio_value: Optional[float] = None) -> TradingSignal:
    """
    i번째 봉의 기관급 종합 매매 신호

    Args:
        data: 지표 DataFrame 또는 Bars
        index: 평가 봉 (10 미만이면 WAIT)
        portfolio_value: 포지션 사이징 기준 자금 (None이면 1억)
    """
    bars = as_bars(data)
    if index < MIN_BARS or index >= len(bars):
        return waiting_signal()

    factors: List[SignalFactor] = []
    total = 0.0

    regime = detect_market_regime(bars, index)
    factors.append(SignalFactor("시장 레짐", regime.value, 0.0, description=regime.value))

    # ── 1. 멀티타임프레임 추세 ──
    trend = _trend_score(bars, index)
    factors.append(SignalFactor("멀티타임프레임 추세", trend, 0.20))
    total += trend * 0.20

    # ── 2. 고급 기술적 신호 ──
    technical = advanced_technical_signal(bars, index)
    factors.append(SignalFactor("고급 기술적 신호", technical, 0.25))
    total += technical * 0.25

    # ── 3. 변동성 조정 수익률 ──
    vol_adj = volatility_adjusted_return(bars, index)
    factors.append(SignalFactor("변동성 조정 수익률", vol_adj * 100, 0.15))
    total += vol_adj * 15

    # ── 4. 시장 미시구조 ──
    micro = market_microstructure(bars, index)
    factors.append(SignalFactor("시장 미시구조", micro * 100, 0.20))
    total += micro * 20

    # ── 5. 스마트머니 (국면 부스트) ──
    smart = calculate_institutional_smart_money_score(bars, index)
    activity = detect_institutional_activity(bars, index)
    smart_signal = (smart.score - 50) / 50
    if activity.phase == ActivityPhase.ACCUMULATION:
        smart_signal = min(1.0, smart_signal * 1.5)
    elif activity.phase == ActivityPhase.DISTRIBUTION:
        smart_signal = max(-1.0, smart_signal * 1.5)
    factors.append(SignalFactor("기관 스마트머니", smart_signal * 100, 0.30, phase=activity.phase))
    total += smart_signal * 30

    # ── 6. 주문 흐름 불균형 ──
    ofi = order_flow_imbalance(bars, index)
    factors.append(SignalFactor("주문 흐름 불균형", ofi * 100, 0.15))
    total += ofi * 15

    multiplier = RISK_MULTIPLIER.get(regime)
    if multiplier is None:
        multiplier = risk_adjustment(bars, index)
    total *= multiplier

    if portfolio_value is None:
        position = calculate_optimal_position_size(bars, index)
    else:
        position = calculate_optimal_position_size(bars, index, portfolio_value)

    signal = max(-100.0, min(100.0, total))
    logger.debug(f"[{index}] signal={signal:.1f} regime={regime.value} x{multiplier}")

    return TradingSignal(
        signal=signal,
        factors=factors,
        recommendation=get_trading_recommendation(signal),
        confidence=signal_confidence(factors),
        position_size=position,
        market_regime=regime,
        risk_multiplier=multiplier,
    )
