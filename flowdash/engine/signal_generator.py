"""
Signal Generator - 진입/청산 신호 생성
========================================
패턴 감지 + 종합 신호 + 스마트머니 점수 → 우선순위 매수/매도 신호 목록

  매수: 매집(스마트머니 > 55), 돌파(종합 신호 > 50), 반등(경고 없음)
  매도: 분산, 종합 신호 < -50 + 스마트머니 < 40
  해당 없음: 스마트머니 점수 기준 WEAK 매수/매도 1건

신뢰도 내림차순 정렬, 첫 번째가 best_signal
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from flowdash.engine.bars import SeriesLike, as_bars
from flowdash.engine.patterns import (
    detect_accumulation_pattern, detect_breakout_pattern,
    detect_distribution_pattern, detect_reversal_pattern,
)
from flowdash.engine.smart_money import calculate_institutional_smart_money_score
from flowdash.engine.technical import daily_volatility
from flowdash.engine.trading_signal import calculate_institutional_trading_signal
from flowdash.risk.position_sizer import PositionSize, calculate_optimal_position_size

logger = logging.getLogger('FlowDash.SignalGen')

MIN_BARS = 10


class Signal(Enum):
    BUY = "BUY"
    SELL = "SELL"


class Strength(Enum):
    STRONG = "STRONG"
    MODERATE = "MODERATE"
    WEAK = "WEAK"


class RiskLevel(Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


@dataclass
class TradeSignal:
    """매매 신호 데이터 (매수는 entry/stop/targets, 매도는 exit/action)"""
    signal: Signal
    strength: Strength
    reason: str
    confidence: float
    entry: Optional[float] = None
    stop_loss: Optional[float] = None
    targets: List[float] = field(default_factory=list)
    risk_reward: Optional[float] = None
    exit: Optional[float] = None
    action: Optional[str] = None
    warning: Optional[str] = None

    @property
    def is_buy(self) -> bool:
        return self.signal == Signal.BUY

    @property
    def is_sell(self) -> bool:
        return self.signal == Signal.SELL


@dataclass
class SignalReport:
    """i번째 봉 신호 종합"""
    signals: List[TradeSignal]
    best_signal: Optional[TradeSignal]
    risk_level: RiskLevel
    suggested_position: PositionSize
    summary: str


def _buy(close: float, strength: Strength, reason: str, confidence: float,
         stop: float, targets: List[float], risk_reward: float,
         warning: Optional[str] = None) -> TradeSignal:
    return TradeSignal(
        signal=Signal.BUY,
        strength=strength,
        reason=reason,
        confidence=confidence,
        entry=close,
        stop_loss=close * stop,
        targets=[close * t for t in targets],
        risk_reward=risk_reward,
        warning=warning,
    )


def _sell(close: float, strength: Strength, reason: str, confidence: float,
          action: str) -> TradeSignal:
    return TradeSignal(
        signal=Signal.SELL,
        strength=strength,
        reason=reason,
        confidence=confidence,
        exit=close,
        action=action,
    )


def classify_risk_level(volatility: float) -> RiskLevel:
    if volatility > 0.03:
        return RiskLevel.HIGH
    if volatility > 0.02:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def generate_trading_signals(data: SeriesLike, index: int) -> Optional[SignalReport]:
    """
    i번째 봉의 매매 신호 목록

    Args:
        data: 지표 DataFrame 또는 Bars
        index: 평가 봉

    Returns:
        SignalReport 또는 None (10봉 미만)
    """
    bars = as_bars(data)
    if index < MIN_BARS or index >= len(bars):
        return None

    close = float(bars.close[index])
    signals: List[TradeSignal] = []

    accumulation = detect_accumulation_pattern(bars, index)
    breakout = detect_breakout_pattern(bars, index)
    reversal = detect_reversal_pattern(bars, index)
    distribution = detect_distribution_pattern(bars, index)

    trading = calculate_institutional_trading_signal(bars, index)
    smart = calculate_institutional_smart_money_score(bars, index)

    # ── 1. 매수 신호 ──
    if accumulation.detected and smart.score > 55:
        signals.append(_buy(close, Strength.STRONG, '세력 매집 완료 + 스마트머니 유입',
                            (accumulation.confidence + smart.score) / 2,
                            0.95, [1.05, 1.10, 1.20], 2.0))

    if breakout.detected and trading.signal > 50:
        signals.append(_buy(close, Strength.STRONG, '돌파 매수 신호',
                            breakout.confidence, 0.97, [1.08, 1.15, 1.30], 3.5))

    if reversal.detected and not reversal.warning:
        signals.append(_buy(close, Strength.MODERATE, '급락 후 반등',
                            reversal.confidence, 0.93, [1.07, 1.12], 1.7,
                            warning='분할 매수 권장'))

    # ── 2. 매도 신호 ──
    if distribution.detected:
        signals.append(_sell(close, Strength.STRONG, '기관 분산 매도',
                             distribution.confidence, '전량 매도 또는 50% 이상 비중 축소'))

    if trading.signal < -50 and smart.score < 40:
        signals.append(_sell(close, Strength.STRONG, '종합 매도 신호 + 스마트머니 이탈',
                             85, '즉시 청산'))

    # ── 3. 기본 약신호 ──
    if not signals:
        if smart.score > 50:
            signals.append(_buy(close, Strength.WEAK, '스마트머니 점수 양호',
                                smart.score, 0.97, [1.03, 1.05], 1.0))
        elif smart.score < 50:
            signals.append(_sell(close, Strength.WEAK, '스마트머니 점수 부진',
                                 100 - smart.score, '부분 익절 고려'))

    signals.sort(key=lambda s: s.confidence, reverse=True)

    volatility = daily_volatility(bars.close[max(0, index - 19):index + 1])
    position = calculate_optimal_position_size(bars, index)

    if signals:
        buys = sum(1 for s in signals if s.is_buy)
        summary = f"{buys}개 매수, {len(signals) - buys}개 매도 신호"
    else:
        summary = '관망'

    return SignalReport(
        signals=signals,
        best_signal=signals[0] if signals else None,
        risk_level=classify_risk_level(volatility),
        suggested_position=position,
        summary=summary,
    )
