"""
Bars - 시그널 엔진용 배열 뷰
==============================
지표 DataFrame → 컬럼별 numpy 배열 묶음

엔진 함수는 봉 인덱스 단위로 여러 번 접근하므로 DataFrame.iloc 대신
한 번 변환한 배열을 공유한다 (백테스트는 봉마다 수십 회 호출).

필요 차트 지표(이평선/볼린저/rsi14/macd_histogram)가 없으면 계산해서 붙인다.
수급 컬럼이 없으면 0 배열.
"""

from dataclasses import dataclass
from typing import List, Union

import numpy as np
import pandas as pd

from flowdash.data.indicator_calc import add_chart_indicators

CHART_COLUMNS = ['ma5', 'ma20', 'ma60', 'ma120', 'bb_upper', 'bb_lower',
                 'rsi14', 'macd_histogram']


@dataclass(frozen=True, eq=False)
class Bars:
    """봉 배열 묶음 (읽기 전용으로 취급)"""
    date: List[str]
    open: np.ndarray
    high: np.ndarray
    low: np.ndarray
    close: np.ndarray
    volume: np.ndarray
    foreign: np.ndarray         # 외국인합계
    foreign_only: np.ndarray    # 외국인 (기타외국인 제외)
    inst: np.ndarray            # 기관합계
    person: np.ndarray          # 개인
    ma5: np.ndarray
    ma20: np.ndarray
    ma60: np.ndarray
    ma120: np.ndarray
    bb_upper: np.ndarray
    bb_lower: np.ndarray
    rsi14: np.ndarray
    mfi14: np.ndarray
    macd_histogram: np.ndarray

    def __len__(self) -> int:
        return len(self.close)

    @property
    def smart(self) -> np.ndarray:
        """스마트머니 = 외국인합계 + 기관합계"""
        return self.foreign + self.inst

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> 'Bars':
        if df is None or df.empty:
            empty = np.zeros(0)
            return cls([], *([empty] * 18))

        if any(col not in df.columns for col in CHART_COLUMNS):
            df = add_chart_indicators(df)

        def col(name: str, default: float = 0.0) -> np.ndarray:
            if name in df.columns:
                return pd.to_numeric(df[name], errors='coerce').to_numpy(dtype=float)
            return np.full(len(df), default)

        return cls(
            date=[str(d) for d in df['date']] if 'date' in df.columns else [''] * len(df),
            open=col('open'),
            high=col('high'),
            low=col('low'),
            close=col('close'),
            volume=col('volume'),
            foreign=np.nan_to_num(col('외국인합계')),
            foreign_only=np.nan_to_num(col('외국인')),
            inst=np.nan_to_num(col('기관합계')),
            person=np.nan_to_num(col('개인')),
            ma5=col('ma5', np.nan),
            ma20=col('ma20', np.nan),
            ma60=col('ma60', np.nan),
            ma120=col('ma120', np.nan),
            bb_upper=col('bb_upper', np.nan),
            bb_lower=col('bb_lower', np.nan),
            rsi14=col('rsi14', np.nan),
            mfi14=col('mfi14', np.nan),
            macd_histogram=col('macd_histogram', np.nan),
        )


SeriesLike = Union[pd.DataFrame, Bars]


def as_bars(data: SeriesLike) -> Bars:
    """DataFrame이면 변환, 이미 Bars면 그대로"""
    if isinstance(data, Bars):
        return data
    return Bars.from_frame(data)


def mean(values: np.ndarray) -> float:
    """빈 배열이면 0"""
    return float(values.mean()) if len(values) else 0.0


def pct_returns(closes: np.ndarray) -> np.ndarray:
    """일간 수익률 (이전 종가 0이면 0)"""
    if len(closes) < 2:
        return np.zeros(0)
    prev = closes[:-1]
    with np.errstate(divide='ignore', invalid='ignore'):
        ret = np.where(prev != 0, (closes[1:] - prev) / prev, 0.0)
    return ret


def population_std(values: np.ndarray) -> float:
    """모집단 표준편차 (빈 배열이면 0)"""
    return float(values.std()) if len(values) else 0.0


def rms(values: np.ndarray) -> float:
    """제곱평균제곱근 (평균 미차감 변동성)"""
    return float(np.sqrt((values ** 2).mean())) if len(values) else 0.0


def safe_div(num: float, den: float, default: float = 0.0) -> float:
    return num / den if den else default
