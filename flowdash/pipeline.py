"""
FlowDash Pipeline - 공개 진입점
=================================
raw 텍스트 → 가격/수급 로드 → 단위 환산 → 병합 → 지표 → 신호/리스크/백테스트

  from flowdash.pipeline import run_pipeline
  result = run_pipeline(price_text, flow_text, anchor_index=0)
  result.data            # 지표 포함 DataFrame
  result.trading_signal  # 최신 봉 종합 신호
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Union

import pandas as pd

from flowdash.backtest.backtester import (
    BacktestConfig, BacktestSummary, backtest_signal_performance,
)
from flowdash.data.csv_parser import ParseReport
from flowdash.data.flow_loader import (
    SHARE_COUNT_THRESHOLD, UnitMode, convert_shares_to_amount,
    derive_flows_from_prices, load_flows, load_flows_with_report,
    parse_simple_flows, resolve_unit_mode, unmatched_flow_dates,
)
from flowdash.data.flow_merger import merge_flows
from flowdash.data.indicator_calc import (
    add_chart_indicators, compute_indicators, enhanced_vwap,
)
from flowdash.data.price_loader import load_prices, load_prices_with_report
from flowdash.engine.bars import Bars
from flowdash.engine.signal_generator import SignalReport, generate_trading_signals
from flowdash.engine.smart_money import (
    SmartMoneyScore, calculate_institutional_smart_money_score,
)
from flowdash.engine.technical import SignalScore, calculate_signal_score
from flowdash.engine.trading_signal import (
    TradingSignal, calculate_institutional_trading_signal,
)
from flowdash.risk.risk_metrics import RiskMetrics, calculate_risk_metrics
from flowdash.shared.config_loader import load_config

logger = logging.getLogger('FlowDash.Pipeline')

__all__ = [
    'load_prices', 'load_flows', 'process_flow_data', 'compute_indicators',
    'calculate_institutional_smart_money_score', 'calculate_institutional_trading_signal',
    'generate_trading_signals', 'backtest_signal_performance',
    'run_pipeline', 'DashboardResult',
]


def process_flow_data(text: Union[str, bytes, None], prices: pd.DataFrame,
                      unit_mode: Union[str, UnitMode, None] = 'auto',
                      threshold: float = SHARE_COUNT_THRESHOLD) -> Tuple[pd.DataFrame, ParseReport]:
    """
    수급 CSV + 가격 → 병합 DataFrame

    순서: 파싱 전략 → simple 2컬럼 → 가격 CSV 수급 컬럼.
    모두 실패하면 수급 0으로 병합한 가격 시계열.

    Args:
        text: 수급 CSV 원문
        prices: load_prices 결과
        unit_mode: 'auto' | 'currency' | 'shares' (auto는 파일 순서 첫 레코드 크기로 판정)
        threshold: 주식수 판정 기준
    """
    flows, report = load_flows_with_report(text)

    if flows.empty and text:
        flows = parse_simple_flows(text)
        if not flows.empty:
            report.strategy = 'simple'
            report.row_count = len(flows)
        else:
            report.notes.append('simple: 0행')

    if flows.empty:
        flows = derive_flows_from_prices(prices)
        if not flows.empty:
            report.strategy = 'price_columns'
            report.row_count = len(flows)

    if flows.empty:
        logger.warning("수급 데이터 없음 → 가격만 병합")
        report.notes.append('수급 없음: 0으로 병합')
        return merge_flows(prices, flows), report

    mode, detected = resolve_unit_mode(flows, unit_mode, threshold)
    report.unit_mode = mode.value
    report.unit_detected = detected
    if mode == UnitMode.SHARES:
        flows = convert_shares_to_amount(flows, prices)
        if detected:
            report.notes.append('주식수로 자동 판정 → 종가 곱해 금액 환산')
        missing = unmatched_flow_dates(flows, prices)
        if missing:
            report.notes.append(f"가격 없는 {len(missing)}행 미변환: {', '.join(missing[:5])}")

    logger.info(f"수급 처리: {report}")
    return merge_flows(prices, flows), report


@dataclass
class DashboardResult:
    """대시보드 한 번 계산 결과 (최신 봉 기준 분석 포함)"""
    data: pd.DataFrame
    price_report: ParseReport
    flow_report: ParseReport
    obv_max: float = 0.0
    smart_money: Optional[SmartMoneyScore] = None
    trading_signal: Optional[TradingSignal] = None
    checklist: Optional[SignalScore] = None
    signal_report: Optional[SignalReport] = None
    risk: Optional[RiskMetrics] = None
    backtest: Optional[BacktestSummary] = None


def _backtest_config(section: dict) -> BacktestConfig:
    return BacktestConfig(
        initial_capital=float(section.get('initial_capital', 100_000_000)),
        position_ratio=float(section.get('position_ratio', 0.3)),
        cost_rate=float(section.get('cost_rate', 0.003)),
        take_profit=float(section.get('take_profit', 0.10)),
        stop_loss=float(section.get('stop_loss', 0.05)),
    )


def run_pipeline(price_text: Union[str, bytes, None], flow_text: Union[str, bytes, None],
                 anchor_index: Optional[int] = None, config: Optional[dict] = None,
                 run_backtest: Optional[bool] = None) -> DashboardResult:
    """
    전체 파이프라인 실행

    Args:
        price_text: 가격 CSV 원문
        flow_text: 수급 CSV 원문 (없으면 가격 CSV 수급 컬럼 사용)
        anchor_index: VWAP 시작 봉 (None이면 config indicators.anchor_index, 기본 0)
        config: load_config 결과 (None이면 기본 설정)
        run_backtest: None이면 config backtest.enabled 또는 min_bars 이상일 때 실행
    """
    cfg = config if config is not None else load_config()
    flow_cfg = cfg.get('flow', {})
    ind_cfg = cfg.get('indicators', {})
    risk_cfg = cfg.get('risk', {})
    bt_cfg = cfg.get('backtest', {})

    prices, price_report = load_prices_with_report(price_text)
    merged, flow_report = process_flow_data(
        flow_text, prices,
        unit_mode=flow_cfg.get('unit_mode', 'auto'),
        threshold=float(flow_cfg.get('share_threshold', SHARE_COUNT_THRESHOLD)),
    )

    if merged.empty:
        logger.warning("가격 데이터 없음")
        return DashboardResult(data=merged, price_report=price_report, flow_report=flow_report)

    if anchor_index is None:
        anchor_index = int(ind_cfg.get('anchor_index', 0))

    result = compute_indicators(merged, anchor_index)
    data = add_chart_indicators(result.data)
    data = enhanced_vwap(data, lookback=int(ind_cfg.get('vwap_lookback', 60)))
    # avwap은 사용자 앵커 기준 값 유지
    data['avwap'] = result.data['avwap']

    bars = Bars.from_frame(data)
    last = len(bars) - 1
    portfolio_value = float(risk_cfg.get('portfolio_value', 100_000_000))

    dashboard = DashboardResult(
        data=data,
        price_report=price_report,
        flow_report=flow_report,
        obv_max=result.obv_max,
        smart_money=calculate_institutional_smart_money_score(bars, last),
        trading_signal=calculate_institutional_trading_signal(bars, last, portfolio_value),
        checklist=calculate_signal_score(bars, last),
        signal_report=generate_trading_signals(bars, last),
        risk=calculate_risk_metrics(bars, float(risk_cfg.get('fund_size', 100_000_000))),
    )

    if run_backtest is None:
        run_backtest = bool(bt_cfg.get('enabled')) or len(bars) >= int(bt_cfg.get('min_bars', 100))
    if run_backtest:
        dashboard.backtest = backtest_signal_performance(
            bars, int(bt_cfg.get('lookback', 60)), _backtest_config(bt_cfg))

    logger.info(f"파이프라인 완료: {len(data)}봉, 신호 {dashboard.trading_signal.signal:+.1f}")
    return dashboard
