"""
Price Loader - 가격(OHLCV) 시계열 로더
========================================
CSV 행 → date/open/high/low/close/volume DataFrame (날짜 오름차순)

컬럼 별칭:
  날짜/일자/date, 시가/open, 고가/high, 저가/low, 종가/close, 거래량/volume
  (영문은 대소문자 무관, 먼저 존재하는 헤더 우선)

가격 CSV에 수급 컬럼(외국인/기관)이 섞여 있으면 foreign/institution 으로 보존
→ 수급 CSV가 없을 때 파이프라인이 price 기반 수급으로 사용
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd

from flowdash.data.csv_parser import (
    ParseReport, RawRow, date_sort_key, normalize_date, pick,
    to_number, tokenize_with_report,
)

logger = logging.getLogger('FlowDash.Price')

PRICE_COLUMNS = ['date', 'open', 'high', 'low', 'close', 'volume']

PRICE_ALIASES: Dict[str, List[str]] = {
    'date': ['date', 'Date', 'DATE', '날짜', '일자'],
    'open': ['open', 'Open', 'OPEN', '시가'],
    'high': ['high', 'High', 'HIGH', '고가'],
    'low': ['low', 'Low', 'LOW', '저가'],
    'close': ['close', 'Close', 'CLOSE', '종가'],
    'volume': ['volume', 'Volume', 'VOLUME', '거래량'],
}

# 병합 CSV(가격+수급)용 보조 컬럼
FOREIGN_ALIASES = ['foreign', 'Foreign', '외국인', 'ForeignNetBuy', 'ForeignNetBuy_MKRW']
INSTITUTION_ALIASES = ['institution', 'Institution', '기관',
                       'InstitutionNetBuy', 'InstitutionNetBuy_MKRW']

RowsOrText = Union[str, bytes, None, Sequence[RawRow]]


def _resolve(row: RawRow, aliases: List[str]) -> Optional[str]:
    """정확 일치 우선, 없으면 대소문자 무시 일치"""
    value = pick(row, aliases)
    if value is not None:
        return value
    lowered = {a.lower() for a in aliases if a.isascii()}
    for key, cell in row.items():
        if key.lower() in lowered:
            return cell
    return None


def _has_any(rows: Sequence[RawRow], aliases: List[str]) -> bool:
    return any(pick(row, aliases) is not None for row in rows[:1])


def _to_rows(source: RowsOrText) -> Tuple[List[RawRow], ParseReport]:
    if source is None or isinstance(source, (str, bytes)):
        return tokenize_with_report(source)
    rows = list(source)
    report = ParseReport(line_count=len(rows) + 1, row_count=len(rows),
                         headers=list(rows[0].keys()) if rows else [])
    return rows, report


def load_prices_with_report(source: RowsOrText) -> Tuple[pd.DataFrame, ParseReport]:
    """
    가격 CSV(또는 이미 토큰화된 행) → (가격 DataFrame, 진단 리포트)

    - 날짜 없거나 종가 0인 행 제거
    - 실제 날짜 기준 안정 정렬 (해석 불가 날짜는 뒤로)
    - 같은 날짜 중복은 정렬 후 마지막 행 유지
    """
    rows, report = _to_rows(source)
    report.strategy = 'prices'

    has_foreign = _has_any(rows, FOREIGN_ALIASES)
    has_inst = _has_any(rows, INSTITUTION_ALIASES)

    records = []
    dropped = 0
    for row in rows:
        raw_date = _resolve(row, PRICE_ALIASES['date'])
        key = normalize_date(raw_date)
        close = to_number(_resolve(row, PRICE_ALIASES['close']))
        if not key or close == 0:
            dropped += 1
            continue

        record = {'date': key}
        for col in PRICE_COLUMNS[1:]:
            record[col] = to_number(_resolve(row, PRICE_ALIASES[col]))
        if has_foreign:
            record['foreign'] = to_number(pick(row, FOREIGN_ALIASES))
        if has_inst:
            record['institution'] = to_number(pick(row, INSTITUTION_ALIASES))
        records.append(record)

    if dropped:
        report.notes.append(f'날짜/종가 없는 행 {dropped}개 제외')
        logger.debug(f"가격 행 제외: {dropped}개")

    if not records:
        report.row_count = 0
        return pd.DataFrame(columns=PRICE_COLUMNS), report

    df = pd.DataFrame(records)
    df = sort_by_date(df)

    dup_mask = df.duplicated(subset='date', keep='last')
    if dup_mask.any():
        dups = sorted(set(df.loc[dup_mask, 'date']))
        logger.warning(f"가격 데이터 중복 날짜 {len(dups)}개 → 마지막 행 사용: {dups[:5]}")
        report.notes.append(f'중복 날짜 {len(dups)}개 (마지막 행 유지)')
        df = df[~dup_mask].reset_index(drop=True)

    report.row_count = len(df)
    logger.debug(f"가격 로드: {report}")
    return df, report


def load_prices(source: RowsOrText) -> pd.DataFrame:
    """가격 CSV → 가격 DataFrame"""
    df, _ = load_prices_with_report(source)
    return df


def sort_by_date(df: pd.DataFrame) -> pd.DataFrame:
    """date 컬럼 기준 시간순 안정 정렬 (NaT는 맨 뒤)"""
    order = date_sort_key(df['date'])
    return (df.assign(_order=order)
              .sort_values('_order', kind='mergesort', na_position='last')
              .drop(columns='_order')
              .reset_index(drop=True))
