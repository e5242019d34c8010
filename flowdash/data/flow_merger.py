"""
Flow Merger - 가격 + 수급 병합
================================
가격 날짜 기준 left join → 날짜별 수급 스냅샷 + 카테고리별 누적합

출력 컬럼:
  가격 컬럼 그대로
  13개 카테고리 일별 값 (매칭 없으면 0)
  '<카테고리>_누적' 13개
  foreign/inst/person, cum_foreign/cum_inst/cum_person
"""

import logging
from typing import Dict

import pandas as pd

from flowdash.data.csv_parser import normalize_date
from flowdash.data.flow_loader import FLOW_CATEGORIES

logger = logging.getLogger('FlowDash.Merge')

CUM_SUFFIX = '_누적'
CUM_COLUMNS = [f'{cat}{CUM_SUFFIX}' for cat in FLOW_CATEGORIES]


def merge_flows(prices: pd.DataFrame, flows: pd.DataFrame) -> pd.DataFrame:
    """
    가격 DataFrame에 수급 병합 (출력 길이 == 가격 길이)

    Args:
        prices: load_prices 결과
        flows: load_flows 결과 (같은 날짜가 여럿이면 마지막 행 사용)
    """
    out = prices.copy().reset_index(drop=True)
    keys = out['date'].map(normalize_date) if len(out) else pd.Series(dtype=object)

    if flows is not None and not flows.empty:
        flow_map = flows.copy()
        flow_map['date'] = flow_map['date'].map(normalize_date)
        flow_map = (flow_map[flow_map['date'] != '']
                    .drop_duplicates(subset='date', keep='last')
                    .set_index('date'))
        matched = flow_map.reindex(keys.values)[FLOW_CATEGORIES]
        matched = matched.astype(float).fillna(0.0).reset_index(drop=True)
        hit = int(keys.isin(flow_map.index).sum())
    else:
        matched = pd.DataFrame(0.0, index=range(len(out)), columns=FLOW_CATEGORIES)
        hit = 0

    for cat in FLOW_CATEGORIES:
        out[cat] = matched[cat].values
    cum = matched.cumsum()
    for cat in FLOW_CATEGORIES:
        out[f'{cat}{CUM_SUFFIX}'] = cum[cat].values

    out['foreign'] = out['외국인합계']
    out['inst'] = out['기관합계']
    out['person'] = out['개인']
    out['cum_foreign'] = out[f'외국인합계{CUM_SUFFIX}']
    out['cum_inst'] = out[f'기관합계{CUM_SUFFIX}']
    out['cum_person'] = out[f'개인{CUM_SUFFIX}']

    logger.debug(f"수급 병합: 가격 {len(out)}일 중 {hit}일 매칭")
    return out


def flow_snapshot(df: pd.DataFrame, i: int) -> Dict[str, float]:
    """i번째 봉의 일별 수급 (독립 dict 복사본)"""
    row = df.iloc[i]
    return {cat: float(row[cat]) for cat in FLOW_CATEGORIES}


def cum_snapshot(df: pd.DataFrame, i: int) -> Dict[str, float]:
    """i번째 봉까지의 누적 수급 (독립 dict 복사본)"""
    row = df.iloc[i]
    return {cat: float(row[f'{cat}{CUM_SUFFIX}']) for cat in FLOW_CATEGORIES}
