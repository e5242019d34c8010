"""
Signal Backtester - 신호 기반 워크포워드 백테스터
==================================================
generate_trading_signals의 best_signal을 다음 봉에 체결하는 단일 포지션 시뮬레이션

  진입: 무포지션 + BUY 신호 → 다음 봉 시가, 자본의 30%, 비용 0.3%
  청산: 다음 봉 종가 기준 익절(+10% 초과) → 손절(-5% 미만) → STRONG SELL 신호
  종료: 잔여 포지션은 마지막 종가로 정산
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional

from flowdash.backtest.performance import PerformanceAnalyzer, round_half_up
from flowdash.engine.bars import SeriesLike, as_bars
from flowdash.engine.signal_generator import Signal, Strength, generate_trading_signals

logger = logging.getLogger('FlowDash.Backtester')

MIN_BARS = 20


@dataclass
class BacktestConfig:
    """백테스트 설정"""
    initial_capital: float = 100_000_000
    position_ratio: float = 0.3       # 진입 시 자본 대비 비중
    cost_rate: float = 0.003          # 편도 비용 0.3%
    take_profit: float = 0.10
    stop_loss: float = 0.05
    keep_trades: int = 10             # 결과에 남길 최근 거래 수


@dataclass
class BacktestTrade:
    """개별 체결 기록"""
    date: str
    type: str           # "BUY" | "SELL"
    price: float
    shares: int
    reason: str
    profit: Optional[float] = None   # 청산 수익률 %


@dataclass
class BacktestSummary:
    """백테스트 결과 (비율은 % 단위, toFixed 반올림)"""
    total_return: float
    total_trades: int
    win_rate: float
    avg_win: float
    avg_loss: float
    profit_factor: Optional[float]
    max_drawdown: float
    sharpe_ratio: float
    trades: List[BacktestTrade] = field(default_factory=list)
    final_capital: float = 0.0


def backtest_signal_performance(data: SeriesLike, lookback: int = 60,
                                config: Optional[BacktestConfig] = None) -> Optional[BacktestSummary]:
    """
    워크포워드 신호 백테스트

    Args:
        data: 지표 DataFrame 또는 Bars
        lookback: 시작 봉 (max(20, lookback)봉 미만이면 None, 이력이 짧으면 20까지 축소)
        config: BacktestConfig (None이면 기본값)

    Returns:
        BacktestSummary 또는 None
    """
    cfg = config or BacktestConfig()
    bars = as_bars(data)
    n = len(bars)
    if n < max(MIN_BARS, lookback):
        logger.info(f"백테스트 생략: {n}봉 < {max(MIN_BARS, lookback)}")
        return None

    start = min(lookback, max(MIN_BARS, n - MIN_BARS))
    buy_cost = 1 + cfg.cost_rate
    sell_cost = 1 - cfg.cost_rate

    trades: List[BacktestTrade] = []
    capital = float(cfg.initial_capital)
    position = 0
    entry_price = 0.0

    for i in range(start, n - 1):
        report = generate_trading_signals(bars, i)
        if report is None or report.best_signal is None:
            continue

        signal = report.best_signal
        next_date = bars.date[i + 1]
        next_open = float(bars.open[i + 1])

        # ── 1. 진입 ──
        if signal.is_buy and position == 0 and next_open > 0:
            shares = int(math.floor(capital * cfg.position_ratio / next_open))
            position = shares
            entry_price = next_open
            capital -= shares * next_open * buy_cost
            trades.append(BacktestTrade(next_date, Signal.BUY.value, next_open, shares, signal.reason))

        # ── 2. 청산 ──
        if position > 0:
            price = float(bars.close[i + 1])
            profit_rate = (price - entry_price) / entry_price

            if profit_rate > cfg.take_profit:
                reason = '목표가 도달 (익절)'
            elif profit_rate < -cfg.stop_loss:
                reason = '손절'
            elif signal.is_sell and signal.strength == Strength.STRONG:
                reason = signal.reason
            else:
                continue

            capital += position * price * sell_cost
            trades.append(BacktestTrade(next_date, Signal.SELL.value, price, position,
                                        reason, profit=profit_rate * 100))
            logger.debug(f"[{i + 1}] 청산 {reason}: {profit_rate * 100:+.2f}%")
            position = 0

    if position > 0:
        capital += position * float(bars.close[-1]) * sell_cost

    profits = [t.profit for t in trades if t.type == Signal.SELL.value]
    stats = PerformanceAnalyzer.win_stats(profits)
    profit_factor = PerformanceAnalyzer.profit_factor(stats['avg_win'], stats['avg_loss'])
    total_return = (capital - cfg.initial_capital) / cfg.initial_capital * 100

    logger.info(f"백테스트 완료: {len(trades)}건, 수익률 {total_return:+.2f}%")

    return BacktestSummary(
        total_return=round_half_up(total_return, 2),
        total_trades=len(trades),
        win_rate=round_half_up(stats['win_rate'], 1),
        avg_win=round_half_up(stats['avg_win'], 2),
        avg_loss=round_half_up(stats['avg_loss'], 2),
        profit_factor=None if profit_factor is None else round_half_up(profit_factor, 2),
        max_drawdown=round_half_up(PerformanceAnalyzer.max_drawdown(profits) * 100, 2),
        sharpe_ratio=round_half_up(PerformanceAnalyzer.sharpe_ratio(profits, len(trades)), 2),
        trades=trades[-cfg.keep_trades:] if cfg.keep_trades > 0 else [],
        final_capital=capital,
    )
