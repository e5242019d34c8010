"""
CSV Parser - 붙여넣기/업로드 CSV 토크나이저
============================================
가격/수급 CSV 원문 텍스트를 헤더 기준 dict 행으로 변환

지원:
  - BOM 제거 (UTF-8/UTF-16/깨진 UTF-8 BOM)
  - 콤마/탭 구분자 자동 감지, 공백 정렬 붙여넣기 폴백
  - 따옴표 필드 ("a,b", "" → ")
  - 숫자 셀: 콤마, 원/주/% 단위, 지수표기 (-1.1E+09), '-'
  - 날짜 셀: YYYY-MM-DD, YYYY/MM/DD, 0패딩 없는 월/일, ISO datetime

사용법:
  from flowdash.data.csv_parser import tokenize, to_number, normalize_date
  rows = tokenize(text)
  rows, report = tokenize_with_report(text)
"""

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import pandas as pd

logger = logging.getLogger('FlowDash.Parser')

RawRow = Dict[str, str]

# 선행 BOM 후보 (긴 것부터)
BOM_MARKS = ('\xef\xbb\xbf', '\ufeff', '\ufffe')

_WS_RUN = re.compile(r'\s{2,}')
_UNIT_GLYPHS = re.compile(r'[원주%]')
_DATE_WITH_TIME = re.compile(r'^\d{4}[-/]\d{1,2}[-/]\d{1,2}\s+\d')


@dataclass
class ParseReport:
    """파싱 진단 정보 (로그 대신 호출자에게 반환)"""
    separator: str = ','
    headers: List[str] = field(default_factory=list)
    line_count: int = 0
    row_count: int = 0
    bom_stripped: bool = False
    strategy: str = ''
    unit_mode: str = ''
    unit_detected: bool = False
    notes: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.row_count == 0

    def __str__(self):
        sep = {'\t': 'TAB', ',': 'COMMA', 'ws': 'WHITESPACE'}.get(self.separator, self.separator)
        text = (f"[{self.strategy or 'tokenize'}] sep={sep} "
                f"headers={len(self.headers)} rows={self.row_count}/{self.line_count}")
        if self.unit_mode:
            text += f" unit={self.unit_mode}{'(auto)' if self.unit_detected else ''}"
        return text


def strip_bom(text: str) -> Tuple[str, bool]:
    """선행 BOM 제거 → (text, 제거 여부)"""
    stripped = False
    changed = True
    while changed:
        changed = False
        for mark in BOM_MARKS:
            if text.startswith(mark):
                text = text[len(mark):]
                stripped = changed = True
    return text, stripped


def decode_bytes(raw: bytes) -> str:
    """바이트 → 텍스트 (UTF-8 우선, 한글 엑셀 cp949 폴백)"""
    try:
        return raw.decode('utf-8-sig')
    except UnicodeDecodeError:
        logger.debug("UTF-8 디코딩 실패 → cp949 재시도")
        return raw.decode('cp949')


def read_text(path: Union[str, Path]) -> str:
    """CSV 파일을 텍스트로 읽기"""
    return decode_bytes(Path(path).read_bytes())


def split_line(line: str, separator: str) -> List[str]:
    """CSV 한 줄 파싱 (따옴표 처리 포함)

    구분자가 'ws'이면 2칸 이상 공백 덩어리로 분리
    """
    if separator == 'ws':
        return [cell.strip() for cell in _WS_RUN.split(line.strip())]

    result = []
    current = []
    in_quotes = False
    i = 0
    n = len(line)
    while i < n:
        ch = line[i]
        if ch == '"':
            if in_quotes and i + 1 < n and line[i + 1] == '"':
                # 이중 따옴표는 하나의 따옴표로
                current.append('"')
                i += 1
            else:
                in_quotes = not in_quotes
        elif ch == separator and not in_quotes:
            result.append(''.join(current).strip())
            current = []
        else:
            current.append(ch)
        i += 1

    result.append(''.join(current).strip())
    return result


def detect_separator(header_line: str) -> str:
    """헤더 줄에서 구분자 감지: 탭 > 콤마 > 공백 덩어리"""
    if '\t' in header_line:
        return '\t'
    if ',' in header_line:
        return ','
    if _WS_RUN.search(header_line.strip()):
        return 'ws'
    return ','


def tokenize_with_report(text: Union[str, bytes, None]) -> Tuple[List[RawRow], ParseReport]:
    """
    CSV 텍스트 → 헤더 기준 dict 행 리스트 + 진단 리포트

    Returns:
        (rows, report): 2줄 미만이면 rows는 빈 리스트
    """
    report = ParseReport()
    if not text:
        return [], report
    if isinstance(text, bytes):
        text = decode_bytes(text)

    text, report.bom_stripped = strip_bom(text)

    lines = [line for line in re.split(r'\r?\n', text) if line.strip()]
    report.line_count = len(lines)
    if len(lines) < 2:
        report.notes.append('header/data 2줄 미만')
        logger.debug(f"CSV 줄 수 부족: {len(lines)}")
        return [], report

    separator = detect_separator(lines[0])
    report.separator = separator

    headers = []
    for cell in split_line(lines[0], separator):
        cell, _ = strip_bom(cell.strip())
        headers.append(cell.strip())
    report.headers = headers

    rows: List[RawRow] = []
    for line in lines[1:]:
        values = split_line(line, separator)
        row = {}
        for idx, header in enumerate(headers):
            row[header] = values[idx] if idx < len(values) else ''
        rows.append(row)

    report.row_count = len(rows)
    logger.debug(f"CSV 파싱: {report}")
    return rows, report


def tokenize(text: Union[str, bytes, None]) -> List[RawRow]:
    """CSV 텍스트 → dict 행 리스트"""
    rows, _ = tokenize_with_report(text)
    return rows


def to_number(value) -> float:
    """셀 값 → 유한 실수 (실패 시 0, 절대 예외 없음)

    '1,234' → 1234, '-1.1E+09' → -1.1e9, '-' → 0, 'abc' → 0
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        num = float(value)
        return num if math.isfinite(num) else 0.0

    s = str(value).strip()
    if s == '' or s == '-':
        return 0.0

    cleaned = _UNIT_GLYPHS.sub('', s.replace(',', '')).strip()
    if cleaned == '':
        return 0.0
    if '_' in cleaned:
        return 0.0
    try:
        num = float(cleaned)
    except (TypeError, ValueError):
        return 0.0
    return num if math.isfinite(num) else 0.0


def normalize_date(value) -> str:
    """날짜 셀 → 'YYYY-MM-DD' 정규 키 (해석 불가면 원문 그대로)"""
    if value is None:
        return ''
    if isinstance(value, (datetime, date)):
        return value.strftime('%Y-%m-%d')

    s = str(value).strip()
    if not s:
        return ''

    # ISO datetime → 날짜 부분만
    if 'T' in s:
        head = s.split('T')[0].strip()
        if head:
            s = head
    # '2020-08-10 00:00:00' 같은 타임스탬프 문자열
    if _DATE_WITH_TIME.match(s):
        s = s.split()[0]

    cleaned = s.replace('/', '-')
    parts = cleaned.split('-')
    if len(parts) == 3:
        year, month, day = (p.strip() for p in parts)
        return f"{year}-{month.zfill(2)}-{day.zfill(2)}"

    parsed = pd.to_datetime(cleaned, errors='coerce')
    if not pd.isna(parsed):
        return parsed.strftime('%Y-%m-%d')
    return s


def date_sort_key(values: pd.Series) -> pd.Series:
    """날짜 키 문자열 → 시간순 정렬용 Timestamp (해석 불가는 NaT)"""
    return pd.to_datetime(values, errors='coerce', format='mixed')


def pick(row: RawRow, aliases, default: Optional[str] = None) -> Optional[str]:
    """별칭 목록 중 처음 존재하는 헤더의 값"""
    for key in aliases:
        if key in row:
            return row[key]
    return default
