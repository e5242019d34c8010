"""
Indicator Calculator - 기술 지표 계산
=======================================
OBV, 전형가격, ATR(14), MFI(14), 앵커 VWAP + 차트용 이평선/볼린저/RSI/MACD

규칙:
  - ATR/MFI는 index < 14 구간 NaN (첫 값은 index 14)
  - 앵커 VWAP: 앵커 이전 NaN, 앵커부터 누적 (누적 거래량 0이면 NaN)
  - 모든 함수는 입력 DataFrame을 변경하지 않음 (새 DataFrame 반환)
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

logger = logging.getLogger('FlowDash.Indicator')

WARMUP = 14


@dataclass
class IndicatorResult:
    """지표 계산 결과"""
    data: pd.DataFrame
    obv_max: float


class IndicatorCalc:
    """기술 지표 계산 유틸리티 (모두 정적 메서드)"""

    @staticmethod
    def sma(series: pd.Series, period: int) -> pd.Series:
        """단순이동평균 (SMA): period-1 이전은 NaN"""
        return series.rolling(window=period, min_periods=period).mean()

    @staticmethod
    def ema(series: pd.Series, period: int) -> pd.Series:
        """지수이동평균 (EMA), 첫 period개 SMA로 시작

        선행 NaN은 건너뛰고 첫 유효값부터 계산.
        ewm(adjust=False)는 첫 값에서 시작하므로 SMA 시드를 위해 직접 순회
        """
        values = series.to_numpy(dtype=float)
        out = np.full(len(values), np.nan)
        valid = np.flatnonzero(~np.isnan(values))
        if len(valid) < period:
            return pd.Series(out, index=series.index)

        start = valid[0]
        seed = start + period - 1
        if seed >= len(values):
            return pd.Series(out, index=series.index)
        out[seed] = values[start:seed + 1].mean()
        k = 2 / (period + 1)
        for i in range(seed + 1, len(values)):
            out[i] = (values[i] - out[i - 1]) * k + out[i - 1]
        return pd.Series(out, index=series.index)

    @staticmethod
    def typical_price(df: pd.DataFrame) -> pd.Series:
        return (df['high'] + df['low'] + df['close']) / 3

    @staticmethod
    def rsi(series: pd.Series, period: int = 14) -> pd.Series:
        """RSI (Wilder 평활, 첫 평균은 단순평균): 첫 값은 index period

        ewm(alpha=1/period)는 단순평균 시드가 없어 직접 순회
        """
        closes = series.to_numpy(dtype=float)
        out = np.full(len(closes), np.nan)
        if len(closes) <= period:
            return pd.Series(out, index=series.index)

        delta = np.diff(closes)
        gains = np.where(delta > 0, delta, 0.0)
        losses = np.where(delta < 0, -delta, 0.0)

        avg_gain = gains[:period].mean()
        avg_loss = losses[:period].mean()
        for i in range(period, len(closes)):
            if i > period:
                avg_gain = (avg_gain * (period - 1) + gains[i - 1]) / period
                avg_loss = (avg_loss * (period - 1) + losses[i - 1]) / period
            rs = 100.0 if avg_loss == 0 else avg_gain / avg_loss
            out[i] = 100 - (100 / (1 + rs))
        return pd.Series(out, index=series.index)

    @staticmethod
    def bollinger_bands(series: pd.Series, period: int = 20,
                        std_dev: float = 2.0) -> Tuple[pd.Series, pd.Series, pd.Series]:
        """볼린저밴드 → (upper, middle, lower), 모집단 표준편차"""
        middle = series.rolling(window=period, min_periods=period).mean()
        std = series.rolling(window=period, min_periods=period).std(ddof=0)
        upper = middle + std_dev * std
        lower = middle - std_dev * std
        return upper, middle, lower

    @staticmethod
    def macd(series: pd.Series, fast: int = 12, slow: int = 26,
             signal: int = 9) -> Tuple[pd.Series, pd.Series, pd.Series]:
        """MACD → (macd_line, signal_line, histogram)

        macd_line은 slow-1 이전 NaN, signal은 유효 MACD 값에 대한 EMA
        """
        ema_fast = IndicatorCalc.ema(series, fast)
        ema_slow = IndicatorCalc.ema(series, slow)
        macd_line = ema_fast - ema_slow
        signal_line = IndicatorCalc.ema(macd_line, signal)
        histogram = macd_line - signal_line
        return macd_line, signal_line, histogram

    @staticmethod
    def obv(close: pd.Series, volume: pd.Series) -> pd.Series:
        """OBV 계산: 가격 방향에 따라 거래량 누적 (첫 봉 0)"""
        direction = np.sign(close.diff().fillna(0.0))
        return (direction * volume).cumsum()

    @staticmethod
    def true_range(high: pd.Series, low: pd.Series, close: pd.Series) -> pd.Series:
        """True Range (첫 봉은 high - low)"""
        prev_close = close.shift(1)
        tr1 = high - low
        tr2 = (high - prev_close).abs()
        tr3 = (low - prev_close).abs()
        tr = pd.concat([tr1, tr2, tr3], axis=1).max(axis=1)
        if len(tr):
            tr.iloc[0] = tr1.iloc[0]
        return tr

    @staticmethod
    def atr(high: pd.Series, low: pd.Series, close: pd.Series,
            period: int = WARMUP) -> pd.Series:
        """Average True Range (index < period 구간 NaN)"""
        tr = IndicatorCalc.true_range(high, low, close)
        atr = tr.rolling(window=period, min_periods=period).mean()
        return _mask_warmup(atr, period)

    @staticmethod
    def money_flow(df: pd.DataFrame) -> Tuple[pd.Series, pd.Series]:
        """전형가격 방향별 자금흐름 → (positive, negative)"""
        tp = IndicatorCalc.typical_price(df)
        raw = tp * df['volume']
        diff = tp.diff()
        positive = raw.where(diff > 0, 0.0)
        negative = raw.where(diff < 0, 0.0)
        return positive, negative

    @staticmethod
    def mfi(df: pd.DataFrame, period: int = WARMUP) -> pd.Series:
        """Money Flow Index (음의 흐름 합 0이면 ratio=100)"""
        positive, negative = IndicatorCalc.money_flow(df)
        pos_sum = positive.rolling(window=period, min_periods=period).sum()
        neg_sum = negative.rolling(window=period, min_periods=period).sum()
        ratio = (pos_sum / neg_sum.replace(0, np.nan)).where(neg_sum != 0, 100.0)
        mfi = 100 - 100 / (1 + ratio)
        return _mask_warmup(mfi, period)

    @staticmethod
    def anchored_vwap(df: pd.DataFrame, anchor_index: int = 0) -> pd.Series:
        """앵커 VWAP: 앵커는 [0, len-1]로 보정, 앵커 이전 NaN"""
        n = len(df)
        out = pd.Series(np.nan, index=df.index)
        if n == 0:
            return out
        start = max(0, min(int(anchor_index or 0), n - 1))
        tp = IndicatorCalc.typical_price(df).iloc[start:]
        vol = df['volume'].iloc[start:]
        cum_pv = (tp * vol).cumsum()
        cum_v = vol.cumsum()
        out.iloc[start:] = (cum_pv / cum_v.replace(0, np.nan)).values
        return out


def _mask_warmup(series: pd.Series, period: int) -> pd.Series:
    out = series.copy()
    out.iloc[:period] = np.nan
    return out


def compute_indicators(merged: pd.DataFrame, anchor_index: int = 0) -> IndicatorResult:
    """
    병합 시계열 → obv/tp/atr14/mfi14/avwap 추가된 새 DataFrame

    Args:
        merged: merge_flows 결과 (또는 가격 DataFrame)
        anchor_index: VWAP 시작 봉 (범위 밖이면 보정)
    """
    if merged is None or merged.empty:
        return IndicatorResult(data=pd.DataFrame() if merged is None else merged.copy(),
                               obv_max=0.0)

    df = merged.copy()
    df['obv'] = IndicatorCalc.obv(df['close'], df['volume'])
    df['tp'] = IndicatorCalc.typical_price(df)
    df['atr14'] = IndicatorCalc.atr(df['high'], df['low'], df['close'])
    df['mfi14'] = IndicatorCalc.mfi(df)
    df['avwap'] = IndicatorCalc.anchored_vwap(df, anchor_index)

    obv_max = float(df['obv'].abs().max())
    logger.debug(f"지표 계산: {len(df)}봉, anchor={anchor_index}, obv_max={obv_max:,.0f}")
    return IndicatorResult(data=df, obv_max=obv_max)


def add_chart_indicators(df: pd.DataFrame) -> pd.DataFrame:
    """차트용 지표: MA5/20/60/120, 볼린저(20,2), RSI(14), MACD(12,26,9)"""
    out = df.copy()
    close = out['close'].astype(float)
    for period in (5, 20, 60, 120):
        out[f'ma{period}'] = IndicatorCalc.sma(close, period)

    upper, middle, lower = IndicatorCalc.bollinger_bands(close)
    out['bb_upper'] = upper
    out['bb_middle'] = middle
    out['bb_lower'] = lower

    out['rsi14'] = IndicatorCalc.rsi(close)

    macd_line, signal_line, histogram = IndicatorCalc.macd(close)
    out['macd'] = macd_line
    out['macd_signal'] = signal_line
    out['macd_histogram'] = histogram
    return out


def enhanced_vwap(df: pd.DataFrame, anchors: Optional[Sequence[int]] = None,
                  lookback: int = 60) -> pd.DataFrame:
    """
    다중 앵커 VWAP → vwap0..vwapN 컬럼, avwap = vwap0

    anchors 미지정 시: 시작봉 (+ lookback 초과 시 최근 lookback 봉 최고가/최저가 봉)
    누적 거래량 0 구간은 전형가격 사용
    """
    out = df.copy()
    n = len(out)
    if n == 0:
        return out

    if anchors is None:
        anchors = default_vwap_anchors(out, lookback)

    tp = IndicatorCalc.typical_price(out)
    for idx, anchor in enumerate(anchors):
        start = max(0, min(int(anchor), n - 1))
        col = pd.Series(np.nan, index=out.index)
        seg_tp = tp.iloc[start:]
        seg_vol = out['volume'].iloc[start:]
        cum_pv = (seg_tp * seg_vol).cumsum()
        cum_v = seg_vol.cumsum()
        col.iloc[start:] = (cum_pv / cum_v.replace(0, np.nan)).fillna(seg_tp).values
        out[f'vwap{idx}'] = col

    if len(anchors):
        out['avwap'] = out['vwap0']
    return out


def default_vwap_anchors(df: pd.DataFrame, lookback: int = 60) -> List[int]:
    """시작봉 + (lookback 초과 시) 최근 lookback 봉 최고가 봉, 최저가 봉"""
    anchors = [0]
    if len(df) > lookback:
        start = len(df) - lookback
        recent = df.iloc[start:]
        anchors.append(start + int(np.argmax(recent['high'].to_numpy())))
        anchors.append(start + int(np.argmin(recent['low'].to_numpy())))
    return anchors
