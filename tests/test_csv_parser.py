"""CSV 토크나이저 / 숫자 변환 / 날짜 정규화"""

import math

import pytest

from flowdash.data.csv_parser import (
    decode_bytes, detect_separator, normalize_date, split_line, strip_bom,
    to_number, tokenize, tokenize_with_report,
)


class TestTokenizer:

    def test_comma_rows(self):
        rows = tokenize("date,close\n2020-08-10,100\n2020-08-11,101\n")
        assert rows == [{'date': '2020-08-10', 'close': '100'},
                        {'date': '2020-08-11', 'close': '101'}]

    def test_tab_separator_wins(self):
        assert detect_separator("a\tb,c") == '\t'
        rows = tokenize("a\tb\n1\t2")
        assert rows == [{'a': '1', 'b': '2'}]

    def test_quoted_fields_keep_commas(self):
        assert split_line('"1,234",x,"a ""q"""', ',') == ['1,234', 'x', 'a "q"']

    def test_short_rows_padded_blank(self):
        rows = tokenize("a,b,c\n1,2")
        assert rows == [{'a': '1', 'b': '2', 'c': ''}]

    def test_blank_lines_skipped(self):
        rows = tokenize("a,b\r\n\r\n1,2\r\n   \r\n3,4\r\n")
        assert [r['a'] for r in rows] == ['1', '3']

    def test_header_only_is_empty(self):
        rows, report = tokenize_with_report("a,b\n")
        assert rows == []
        assert report.is_empty
        assert report.notes

    @pytest.mark.parametrize("text", [None, "", b""])
    def test_empty_input(self, text):
        assert tokenize(text) == []

    def test_duplicate_header_last_wins(self):
        rows = tokenize("a,a\n1,2")
        assert rows == [{'a': '2'}]

    def test_whitespace_run_separator(self):
        assert detect_separator("날짜   금융투자  보험") == 'ws'
        rows = tokenize("날짜   금융투자\n2020-08-10   -1,000")
        assert rows == [{'날짜': '2020-08-10', '금융투자': '-1,000'}]


class TestBom:

    @pytest.mark.parametrize("bom", ['\ufeff', '\xef\xbb\xbf', '\ufeff\ufeff', '\ufffe'])
    def test_bom_invariance(self, bom):
        text = "날짜,종가\n2020-08-10,100"
        assert tokenize(bom + text) == tokenize(text)

    def test_report_flags_bom(self):
        _, report = tokenize_with_report('\ufeffa,b\n1,2')
        assert report.bom_stripped
        assert report.headers == ['a', 'b']

    def test_strip_bom_no_mark(self):
        assert strip_bom('abc') == ('abc', False)

    def test_decode_utf8_sig_bytes(self):
        raw = '\ufeff날짜,종가\n'.encode('utf-8')
        assert decode_bytes(raw) == '날짜,종가\n'

    def test_decode_cp949_fallback(self):
        raw = '날짜,종가\n'.encode('cp949')
        assert decode_bytes(raw) == '날짜,종가\n'


class TestToNumber:

    @pytest.mark.parametrize("raw, expected", [
        ('1,234', 1234.0),
        ('-1.1E+09', -1.1e9),
        ('5094342700', 5094342700.0),
        ('-', 0.0),
        ('', 0.0),
        (None, 0.0),
        ('abc', 0.0),
        ('1,000원', 1000.0),
        ('500주', 500.0),
        ('12.5%', 12.5),
        (42, 42.0),
        (float('nan'), 0.0),
        (float('inf'), 0.0),
        ('  7 ', 7.0),
    ])
    def test_coercion_table(self, raw, expected):
        assert to_number(raw) == expected

    def test_always_finite(self):
        for raw in ['1e999', '-1e999', 'NaN', 'inf', '--', ',,,']:
            assert math.isfinite(to_number(raw))


class TestNormalizeDate:

    @pytest.mark.parametrize("raw, expected", [
        ('2020-08-10', '2020-08-10'),
        ('2020/8/1', '2020-08-01'),
        ('2020-8-10', '2020-08-10'),
        ('2020-08-10T00:00:00', '2020-08-10'),
        ('2020-08-10T09:30:00.000Z', '2020-08-10'),
        ('2020-08-10 00:00:00', '2020-08-10'),
        ('20200810', '2020-08-10'),
        ('', ''),
        (None, ''),
    ])
    def test_formats(self, raw, expected):
        assert normalize_date(raw) == expected

    @pytest.mark.parametrize("raw", ['2020/8/1', '2020-08-10T00:00:00', '20200810',
                                     'not a date', '2020-08-10'])
    def test_idempotent(self, raw):
        once = normalize_date(raw)
        assert normalize_date(once) == once

    def test_unparseable_passthrough(self):
        assert normalize_date('not a date') == 'not a date'
