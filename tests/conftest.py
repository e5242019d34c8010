"""
공용 테스트 픽스처 - KRX 수급 샘플 CSV, 결정적 합성 OHLCV/수급 시계열
"""

import numpy as np
import pandas as pd
import pytest

from flowdash.data.flow_loader import INST_PARTS, to_frame
from flowdash.data.flow_merger import merge_flows
from flowdash.data.indicator_calc import compute_indicators

KRX_HEADER = '날짜,금융투자,보험,투신,사모,은행,기타금융,연기금,기타법인,개인,외국인,기타외국인,기관합계'

SCENARIO_A_ROW = ('2020-08-10,-1.1E+09,-3.3E+08,-2.3E+08,44312800,0,0,'
                  '8486650,143419300,5094342700,-3.6E+09,10170600,')

PRICE_CSV = """날짜,시가,고가,저가,종가,거래량
2020-08-12,53000,53500,52600,53300,1500000
2020-08-10,52000,52800,51800,52500,1200000
2020-08-11,52500,53100,52200,53000,1300000
"""


def make_ohlcv(n: int = 150, seed: int = 7, start: str = '2023-01-02') -> pd.DataFrame:
    """랜덤워크 가격 (영업일 날짜, 고가 ≥ max(시가, 종가), 저가 ≤ min(시가, 종가))"""
    rng = np.random.RandomState(seed)
    dates = pd.bdate_range(start, periods=n).strftime('%Y-%m-%d')
    close = 50000 * np.cumprod(1 + rng.normal(0.001, 0.018, n))
    open_ = close * (1 + rng.normal(0, 0.006, n))
    high = np.maximum(open_, close) * (1 + rng.uniform(0.001, 0.02, n))
    low = np.minimum(open_, close) * (1 - rng.uniform(0.001, 0.02, n))
    volume = rng.randint(500_000, 3_000_000, n).astype(float)
    return pd.DataFrame({
        'date': list(dates),
        'open': open_.round(0),
        'high': high.round(0),
        'low': low.round(0),
        'close': close.round(0),
        'volume': volume,
    })


def make_flows(prices: pd.DataFrame, seed: int = 11) -> pd.DataFrame:
    """가격 날짜별 투자자 수급 (금액 단위, 개인 = 나머지 합의 반대)"""
    rng = np.random.RandomState(seed)
    records = []
    for d in prices['date']:
        rec = {'date': d}
        for cat in INST_PARTS:
            rec[cat] = float(rng.normal(0, 2e8))
        rec['외국인'] = float(rng.normal(0, 1.5e9))
        rec['기타외국인'] = float(rng.normal(0, 5e7))
        inst = sum(rec[cat] for cat in INST_PARTS)
        rec['개인'] = -(inst + rec['외국인'] + rec['기타외국인'])
        rec['기관합계'] = 0.0
        records.append(rec)
    return to_frame(records)


def frame_to_csv(df: pd.DataFrame) -> str:
    return df.to_csv(index=False)


@pytest.fixture
def prices() -> pd.DataFrame:
    return make_ohlcv()


@pytest.fixture
def flows(prices) -> pd.DataFrame:
    return make_flows(prices)


@pytest.fixture
def merged(prices, flows) -> pd.DataFrame:
    return merge_flows(prices, flows)


@pytest.fixture
def enriched(merged) -> pd.DataFrame:
    return compute_indicators(merged).data


@pytest.fixture
def krx_csv() -> str:
    rows = [
        KRX_HEADER,
        SCENARIO_A_ROW,
        '2020-08-11,2.0E+08,0,1.0E+08,0,0,0,5.0E+07,0,-4.0E+08,1.5E+08,1.0E+07,3.5E+08',
        '2020-08-12,-5.0E+07,0,0,0,0,0,0,0,1.0E+08,-6.0E+07,0,-5.0E+07',
    ]
    return '\n'.join(rows) + '\n'
