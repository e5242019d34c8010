"""
Flow Loader - 투자자별 수급 CSV 로더
=====================================
KRX 투자자별 순매수 CSV → 12개 투자자 카테고리 + 외국인합계 DataFrame

파싱 전략 (순서대로, 행이 나오는 첫 전략 채택):
  1. krx_keyed   : 한글 KRX 헤더 정확 일치 (날짜, 금융투자, ..., 기관합계)
  2. aliased     : 영문/별칭 헤더 (Securities, Pension, Foreign ...)
  3. whitespace  : 공백 구분 붙여넣기 → 콤마 변환 후 aliased 재시도
  (파이프라인 단계) simple 2컬럼 CSV → 가격 CSV의 외국인/기관 컬럼

단위 판정:
  파일 순서 첫 레코드의 0이 아닌 카테고리 절대값 최대치 < 1,000,000 → 주식수(SHARES)
  주식수면 같은 날짜 종가를 곱해 금액으로 환산
"""

import logging
import re
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple, Union

import pandas as pd

from flowdash.data.csv_parser import (
    ParseReport, RawRow, decode_bytes, normalize_date, pick, strip_bom,
    to_number, tokenize_with_report,
)
from flowdash.data.price_loader import sort_by_date

logger = logging.getLogger('FlowDash.Flow')

# 기관 세부 8개 (기관합계 재계산용)
INST_PARTS = ['금융투자', '보험', '투신', '사모', '은행', '기타금융', '연기금', '기타법인']

# 원본 12개 카테고리
BASE_CATEGORIES = INST_PARTS + ['개인', '외국인', '기타외국인', '기관합계']

# 파생 포함 13개 (외국인합계 = 외국인 + 기타외국인)
FLOW_CATEGORIES = BASE_CATEGORIES + ['외국인합계']

FLOW_ALIASES: Dict[str, List[str]] = {
    '금융투자': ['금융투자', 'Securities', 'FinancialInvestment'],
    '보험': ['보험', 'Insurance'],
    '투신': ['투신', 'InvestmentTrust'],
    '사모': ['사모', 'PrivateEquity', '사모펀드'],
    '은행': ['은행', 'Bank'],
    '기타금융': ['기타금융', 'OtherFinance'],
    '연기금': ['연기금', 'Pension'],
    '기타법인': ['기타법인', 'OtherCorporation'],
    '개인': ['개인', 'Individual'],
    '외국인': ['외국인', 'Foreigner', 'Foreign'],
    '기타외국인': ['기타외국인', 'OtherForeigner'],
    '기관합계': ['기관합계', '기관', 'InstitutionTotal'],
}

DATE_HEADERS = ['날짜', 'date', 'Date']

SIMPLE_FOREIGN = ['foreign', 'Foreign', '외국인', 'ForeignNetBuy', 'ForeignNetBuy_MKRW']
SIMPLE_INSTITUTION = ['institution', 'Institution', '기관',
                      'InstitutionNetBuy', 'InstitutionNetBuy_MKRW']

SHARE_COUNT_THRESHOLD = 1_000_000

# 어느 전략이든 수급 컬럼으로 읽히는 헤더 전체
FLOW_HEADERS = ({alias for aliases in FLOW_ALIASES.values() for alias in aliases}
                | set(SIMPLE_FOREIGN) | set(SIMPLE_INSTITUTION))

FlowRecord = Dict[str, object]


class UnitMode(Enum):
    CURRENCY = "currency"
    SHARES = "shares"


def empty_flows() -> pd.DataFrame:
    return pd.DataFrame(columns=['date'] + FLOW_CATEGORIES)


def finalize_record(record: FlowRecord) -> FlowRecord:
    """기관합계(0이면) 재계산 + 외국인합계 계산"""
    if not record.get('기관합계'):
        record['기관합계'] = sum(float(record.get(k, 0.0)) for k in INST_PARTS)
    record['외국인합계'] = float(record.get('외국인', 0.0)) + float(record.get('기타외국인', 0.0))
    return record


def to_frame(records: List[FlowRecord]) -> pd.DataFrame:
    """
    레코드 리스트 → 날짜 정규화/정렬된 수급 DataFrame (날짜 없는 행 제외)

    정렬 전 파일 순서 첫 레코드는 attrs['first_record']에 보관 (단위 판정용)
    """
    cleaned = []
    for rec in records:
        key = normalize_date(rec.get('date'))
        if not key:
            continue
        out = {'date': key}
        for cat in BASE_CATEGORIES:
            out[cat] = to_number(rec.get(cat, 0.0))
        cleaned.append(finalize_record(out))

    if not cleaned:
        return empty_flows()

    df = sort_by_date(pd.DataFrame(cleaned, columns=['date'] + FLOW_CATEGORIES))
    df.attrs['first_record'] = {cat: float(cleaned[0][cat]) for cat in BASE_CATEGORIES}
    return df


# ──────────────────────────────────────────────
#  파싱 전략
# ──────────────────────────────────────────────

def _foreign_headers(headers: List[str], readable) -> List[str]:
    """이 전략이 못 읽는 수급 헤더 (다른 전략 몫)"""
    return [h for h in headers if h in FLOW_HEADERS and h not in readable]


def _find_date_header(headers: List[str]) -> Optional[str]:
    for name in DATE_HEADERS:
        if name in headers:
            return name
    for name in headers:
        if '날짜' in name:
            return name
    return headers[0] if headers else None


def parse_krx_keyed(text: str) -> List[FlowRecord]:
    """1단계: 한글 KRX 헤더 정확 일치"""
    rows, report = tokenize_with_report(text)
    if not rows:
        return []
    headers = report.headers
    if not any(cat in headers for cat in BASE_CATEGORIES):
        return []
    skipped = _foreign_headers(headers, BASE_CATEGORIES)
    if skipped:
        logger.debug(f"krx_keyed 건너뜀: 별칭 헤더 {skipped}")
        return []

    date_col = _find_date_header(headers)
    records = []
    for row in rows:
        rec = {'date': row.get(date_col, '')}
        for cat in BASE_CATEGORIES:
            rec[cat] = to_number(row.get(cat))
        records.append(rec)
    return records


def _normalize_aliased_row(row: RawRow) -> FlowRecord:
    date_value = pick(row, DATE_HEADERS)
    if date_value is None:
        date_value = next(iter(row.values()), '')
    rec = {'date': date_value}
    for cat, aliases in FLOW_ALIASES.items():
        rec[cat] = to_number(pick(row, aliases, '0'))
    return rec


def parse_aliased(text: str) -> List[FlowRecord]:
    """2단계: 영문/별칭 헤더"""
    rows, report = tokenize_with_report(text)
    if not rows:
        return []
    known = {alias for aliases in FLOW_ALIASES.values() for alias in aliases}
    if not known.intersection(report.headers):
        return []
    skipped = _foreign_headers(report.headers, known)
    if skipped:
        logger.debug(f"aliased 건너뜀: simple 헤더 {skipped}")
        return []
    return [_normalize_aliased_row(row) for row in rows]


def looks_whitespace_delimited(text: str) -> bool:
    """헤더에 콤마/탭 없이 공백만 있는 붙여넣기"""
    text, _ = strip_bom(text)
    lines = [line for line in re.split(r'\r?\n', text.strip()) if line.strip()]
    if not lines:
        return False
    head = lines[0]
    return ',' not in head and '\t' not in head and bool(re.search(r'\s', head.strip()))


def parse_whitespace(text: str) -> List[FlowRecord]:
    """3단계: 공백 구분 → 콤마 변환 후 aliased 재시도"""
    if not looks_whitespace_delimited(text):
        return []
    text, _ = strip_bom(text)
    lines = [re.sub(r'\s+', ',', line.strip())
             for line in re.split(r'\r?\n', text) if line.strip()]
    return parse_aliased('\n'.join(lines))


STRATEGIES: List[Tuple[str, Callable[[str], List[FlowRecord]]]] = [
    ('krx_keyed', parse_krx_keyed),
    ('aliased', parse_aliased),
    ('whitespace', parse_whitespace),
]


def load_flows_with_report(text: Union[str, bytes, None]) -> Tuple[pd.DataFrame, ParseReport]:
    """
    수급 CSV → (수급 DataFrame, 진단 리포트)

    전략 목록을 순서대로 시도하여 행이 나오는 첫 결과 반환.
    모두 실패하면 빈 DataFrame (예외 없음)
    """
    report = ParseReport()
    if not text:
        report.notes.append('수급 CSV 없음')
        return empty_flows(), report
    if isinstance(text, bytes):
        text = decode_bytes(text)

    _, report = tokenize_with_report(text)
    for name, strategy in STRATEGIES:
        df = to_frame(strategy(text))
        if not df.empty:
            report.strategy = name
            report.row_count = len(df)
            logger.debug(f"수급 파싱 성공: {report}")
            return df, report
        report.notes.append(f'{name}: 0행')

    report.row_count = 0
    logger.debug(f"수급 파싱 실패: {report.notes}")
    return empty_flows(), report


def load_flows(text: Union[str, bytes, None]) -> pd.DataFrame:
    """수급 CSV → 수급 DataFrame"""
    df, _ = load_flows_with_report(text)
    return df


# ──────────────────────────────────────────────
#  파이프라인 폴백 (simple / 가격 파생)
# ──────────────────────────────────────────────

def parse_simple_flows(text: Union[str, bytes, None]) -> pd.DataFrame:
    """date, foreign, institution 2컬럼 CSV → 외국인/기관합계만 채운 수급"""
    rows, _ = tokenize_with_report(text)
    records = []
    for row in rows:
        records.append({
            'date': pick(row, DATE_HEADERS, ''),
            '외국인': to_number(pick(row, SIMPLE_FOREIGN)),
            '기관합계': to_number(pick(row, SIMPLE_INSTITUTION)),
        })
    return to_frame(records)


def derive_flows_from_prices(prices: pd.DataFrame) -> pd.DataFrame:
    """가격 데이터에 보존된 foreign/institution 컬럼 → 수급"""
    if prices is None or prices.empty:
        return empty_flows()
    if 'foreign' not in prices.columns and 'institution' not in prices.columns:
        return empty_flows()

    records = []
    for row in prices.itertuples(index=False):
        records.append({
            'date': row.date,
            '외국인': getattr(row, 'foreign', 0.0),
            '기관합계': getattr(row, 'institution', 0.0),
        })
    return to_frame(records)


# ──────────────────────────────────────────────
#  단위 판정 / 환산
# ──────────────────────────────────────────────

def detect_unit_mode(flows: pd.DataFrame,
                     threshold: float = SHARE_COUNT_THRESHOLD) -> UnitMode:
    """
    파일 순서 첫 레코드의 0이 아닌 값 최대 절대값으로 주식수/금액 판정

    to_frame이 보관한 attrs['first_record'] 우선, 없으면 첫 행
    """
    if flows is None or flows.empty:
        return UnitMode.CURRENCY

    first = flows.attrs.get('first_record')
    if first is None:
        first = flows.iloc[0]
    values = [abs(float(first[cat])) for cat in BASE_CATEGORIES
              if cat in first and float(first[cat]) != 0]
    if not values:
        return UnitMode.CURRENCY

    max_value = max(values)
    mode = UnitMode.SHARES if max_value < threshold else UnitMode.CURRENCY
    logger.debug(f"단위 판정: max={max_value:,.0f} → {mode.value}")
    return mode


def resolve_unit_mode(flows: pd.DataFrame, declared: Union[str, UnitMode, None] = 'auto',
                      threshold: float = SHARE_COUNT_THRESHOLD) -> Tuple[UnitMode, bool]:
    """
    호출자 지정 단위 우선, 'auto'면 자동 판정

    Returns:
        (UnitMode, 자동 판정 여부): 자동 판정은 신뢰도 낮음
    """
    if isinstance(declared, UnitMode):
        return declared, False
    key = (declared or 'auto').strip().lower()
    if key == UnitMode.CURRENCY.value:
        return UnitMode.CURRENCY, False
    if key == UnitMode.SHARES.value:
        return UnitMode.SHARES, False
    if key != 'auto':
        logger.warning(f"알 수 없는 단위 지정 '{declared}' → 자동 판정")
    return detect_unit_mode(flows, threshold), True


def _close_map(prices: pd.DataFrame) -> Dict[str, float]:
    price_map = {}
    for date_key, close in zip(prices['date'], prices['close']):
        key = normalize_date(date_key)
        if key and close:
            price_map[key] = float(close)
    return price_map


def unmatched_flow_dates(flows: pd.DataFrame, prices: pd.DataFrame) -> List[str]:
    """종가가 없어 주식수 환산이 안 되는 수급 날짜"""
    if flows is None or flows.empty:
        return []
    price_map = _close_map(prices) if prices is not None and not prices.empty else {}
    return [normalize_date(d) for d in flows['date'] if normalize_date(d) not in price_map]


def convert_shares_to_amount(flows: pd.DataFrame, prices: pd.DataFrame) -> pd.DataFrame:
    """주식수 → 금액 (같은 날짜 종가 곱). 매칭 가격 없는 행은 그대로"""
    if flows is None or flows.empty or prices is None or prices.empty:
        return flows

    price_map = _close_map(prices)
    out = flows.copy()
    closes = out['date'].map(lambda d: price_map.get(normalize_date(d)))
    matched = closes.notna()
    for cat in BASE_CATEGORIES:
        out.loc[matched, cat] = out.loc[matched, cat].astype(float) * closes[matched].astype(float)
    out['외국인합계'] = out['외국인'] + out['기타외국인']

    unmatched = int((~matched).sum())
    if unmatched:
        logger.debug(f"단위 환산: 가격 매칭 없는 {unmatched}행 미변환")
    return out
