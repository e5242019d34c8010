"""
Dashboard Report - 텍스트 대시보드 리포트
==========================================
DashboardResult → 요약 텍스트 (최신 봉 수급/지표/신호/리스크/백테스트)
"""

import logging
import math
from typing import List

logger = logging.getLogger('FlowDash.Report')

FLOW_ROWS = [('외국인합계', '외국인합계'), ('기관합계', '기관합계'), ('개인', '개인')]


def format_krw(value: float) -> str:
    """원 단위 금액 → 조원/억원/만원/원 표기"""
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return '-'
    sign = '-' if value < 0 else ''
    v = abs(value)
    if v >= 1e12:
        return f"{sign}{v / 1e12:,.2f}조원"
    if v >= 1e8:
        return f"{sign}{v / 1e8:,.1f}억원"
    if v >= 1e4:
        return f"{sign}{v / 1e4:,.0f}만원"
    return f"{sign}{v:,.0f}원"


def _fmt(value, spec: str = ',.2f') -> str:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return '-'
    return format(value, spec)


def build_report(result) -> str:
    """DashboardResult → 리포트 문자열"""
    lines: List[str] = [f"{'='*55}", "  FlowDash - 투자자 수급 대시보드", f"{'='*55}"]

    data = result.data
    if data is None or data.empty:
        lines += ["  데이터 없음", f"  가격: {result.price_report}", f"  수급: {result.flow_report}",
                  f"{'='*55}"]
        return '\n'.join(lines)

    last = data.iloc[-1]
    lines += [
        f"  기간      : {data['date'].iloc[0]} ~ {last['date']} ({len(data)}봉)",
        f"  가격 파싱 : {result.price_report}",
        f"  수급 파싱 : {result.flow_report}",
    ]
    for note in result.flow_report.notes:
        lines.append(f"    - {note}")

    lines += ["", "  [최신 봉]",
              f"  종가: {_fmt(last['close'], ',.0f')}  거래량: {_fmt(last['volume'], ',.0f')}"]
    for label, col in FLOW_ROWS:
        if col in data.columns:
            lines.append(f"  {label:<6}: {format_krw(float(last[col])):>14}  "
                         f"(누적 {format_krw(float(last[col + '_누적']))})")

    lines += ["", "  [지표]",
              f"  OBV: {_fmt(last.get('obv'), ',.0f')}  ATR14: {_fmt(last.get('atr14'))}  "
              f"MFI14: {_fmt(last.get('mfi14'), '.1f')}",
              f"  AVWAP: {_fmt(last.get('avwap'), ',.0f')}  RSI14: {_fmt(last.get('rsi14'), '.1f')}"]

    smart = result.smart_money
    signal = result.trading_signal
    lines += ["", "  [신호]",
              f"  스마트머니: {smart.score:.0f}점 ({smart.interpretation})",
              f"  종합 신호 : {signal.signal:+.1f} → {signal.action.value} "
              f"(신뢰도 {signal.confidence:.0f}%, 레짐 {signal.market_regime.value})"]
    if result.checklist.signals:
        names = ', '.join(s.name for s in result.checklist.signals)
        lines.append(f"  체크리스트: {result.checklist.score:+d} ({names})")

    report = result.signal_report
    if report is not None:
        lines.append(f"  매매 신호 : {report.summary} / 리스크 {report.risk_level.value}")
        if report.best_signal is not None:
            best = report.best_signal
            lines.append(f"  최우선    : {best.signal.value} {best.strength.value} - "
                         f"{best.reason} ({best.confidence:.0f})")

    risk = result.risk
    lines += ["", "  [리스크]",
              f"  연 변동성: {risk.volatility:.2f}%  일간 VaR(95%): {risk.daily_var:.2f}%",
              f"  평균 거래대금: {format_krw(risk.avg_trading_value)}  "
              f"안전 거래 한도: {format_krw(risk.safe_trade_size)}",
              f"  권장 포지션: {format_krw(signal.position_size.size)} (x{signal.position_size.leverage})"]

    bt = result.backtest
    if bt is not None:
        pf = '-' if bt.profit_factor is None else f"{bt.profit_factor:.2f}"
        lines += ["", "  [백테스트]",
                  f"  총 수익률: {bt.total_return:+.2f}%  거래: {bt.total_trades}회  "
                  f"승률: {bt.win_rate:.1f}%",
                  f"  평균 이익: {bt.avg_win:.2f}%  평균 손실: {bt.avg_loss:.2f}%  PF: {pf}",
                  f"  최대 낙폭: {bt.max_drawdown:.2f}%  Sharpe: {bt.sharpe_ratio:.2f}"]

    lines.append(f"{'='*55}")
    return '\n'.join(lines)
