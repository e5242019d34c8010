"""전체 파이프라인 / 리포트 / CLI"""

import pytest

from conftest import KRX_HEADER, PRICE_CSV, frame_to_csv, make_flows, make_ohlcv
from flowdash.data.price_loader import load_prices
from flowdash.engine.trading_signal import Action
from flowdash.main import main
from flowdash.output.report import build_report, format_krw
from flowdash.pipeline import process_flow_data, run_pipeline
from flowdash.shared.config_loader import load_config


@pytest.fixture
def csv_pair():
    prices = make_ohlcv(130)
    return frame_to_csv(prices), frame_to_csv(make_flows(prices))


def test_run_pipeline_full(csv_pair):
    price_text, flow_text = csv_pair
    result = run_pipeline(price_text, flow_text, anchor_index=10, config=load_config())

    assert len(result.data) == 130
    assert result.flow_report.strategy == 'krx_keyed'
    assert result.flow_report.unit_mode == 'currency'
    for col in ('obv', 'tp', 'atr14', 'mfi14', 'avwap', 'ma20', 'rsi14', 'vwap0', '기관합계_누적'):
        assert col in result.data.columns
    assert result.data['avwap'].iloc[:10].isna().all()
    assert 0 <= result.smart_money.score <= 100
    assert -100 <= result.trading_signal.signal <= 100
    assert result.signal_report is not None
    assert result.backtest is not None


def test_backtest_skipped_for_short_history(csv_pair):
    price_text, flow_text = csv_pair
    short_prices = '\n'.join(price_text.splitlines()[:51])
    result = run_pipeline(short_prices, flow_text, config=load_config())
    assert len(result.data) == 50
    assert result.backtest is None


def test_run_pipeline_forced_backtest_flag(csv_pair):
    price_text, flow_text = csv_pair
    short_prices = '\n'.join(price_text.splitlines()[:81])
    result = run_pipeline(short_prices, flow_text, config=load_config(), run_backtest=True)
    assert result.backtest is not None


def test_run_pipeline_short_series_neutral():
    flows = f"{KRX_HEADER}\n2020-08-10,1,1,1,1,1,1,1,1,-8,0,0,\n"
    result = run_pipeline(PRICE_CSV, flows, config=load_config())
    assert len(result.data) == 3
    assert result.smart_money.score == 50
    assert result.trading_signal.action == Action.WAIT
    assert result.signal_report is None
    assert result.flow_report.unit_mode == 'shares'


def test_anchor_defaults_to_config(csv_pair):
    price_text, flow_text = csv_pair
    config = load_config()
    data = run_pipeline(price_text, flow_text, config=config, run_backtest=False).data
    assert data['avwap'].notna().iloc[0]

    config['indicators']['anchor_index'] = 7
    data = run_pipeline(price_text, flow_text, config=config, run_backtest=False).data
    assert data['avwap'].iloc[:7].isna().all()
    assert data['avwap'].notna().iloc[7]


def test_newest_first_currency_batch_not_scaled():
    rows = [','.join(['2020-08-11', '5000000'] + ['0'] * 11),
            ','.join(['2020-08-10', '50000'] + ['0'] * 11)]
    merged, report = process_flow_data('\n'.join([KRX_HEADER] + rows), load_prices(PRICE_CSV))
    assert report.unit_mode == 'currency'
    assert report.unit_detected
    assert merged['금융투자'].iloc[0] == 50_000
    assert merged['금융투자'].iloc[1] == 5_000_000


def test_shares_batch_unmatched_date_left_unconverted():
    text = "날짜,외국인\n2021-01-04,7000\n2020-08-10,50000\n"
    merged, report = process_flow_data(text, load_prices(PRICE_CSV))
    assert report.unit_mode == 'shares'
    assert merged['외국인'].iloc[0] == 50_000 * 52500
    assert merged['cum_foreign'].iloc[2] == 50_000 * 52500
    assert '가격 없는 1행 미변환: 2021-01-04' in report.notes


def test_mixed_header_reads_both_columns():
    text = "date,외국인,institution\n2020-08-11,3000000,-2000000\n"
    merged, report = process_flow_data(text, load_prices(PRICE_CSV))
    assert report.strategy == 'simple'
    assert report.unit_mode == 'currency'
    assert merged['외국인'].iloc[1] == 3_000_000
    assert merged['기관합계'].iloc[1] == -2_000_000

def test_run_pipeline_empty_prices():
    result = run_pipeline("", None, config=load_config())
    assert result.data.empty
    assert result.trading_signal is None
    assert '데이터 없음' in build_report(result)


def test_report_text(csv_pair):
    price_text, flow_text = csv_pair
    text = build_report(run_pipeline(price_text, flow_text, config=load_config()))
    assert '스마트머니' in text
    assert '[백테스트]' in text
    assert '기관합계' in text


@pytest.mark.parametrize("value, expected", [
    (1.5e12, '1.50조원'),
    (-2.34e8, '-2.3억원'),
    (56_789, '6만원'),
    (999, '999원'),
    (0, '0원'),
    (float('nan'), '-'),
])
def test_format_krw(value, expected):
    assert format_krw(value) == expected


def test_cli_runs(tmp_path, csv_pair, capsys):
    price_text, flow_text = csv_pair
    price_file = tmp_path / 'prices.csv'
    flow_file = tmp_path / 'flows.csv'
    price_file.write_text(price_text, encoding='utf-8')
    flow_file.write_text(flow_text, encoding='cp949')

    code = main(['--price', str(price_file), '--flow', str(flow_file), '--anchor', '5'])
    assert code == 0
    assert 'FlowDash' in capsys.readouterr().out


def test_cli_missing_file(tmp_path):
    assert main(['--price', str(tmp_path / 'nope.csv')]) == 1


def test_cli_missing_config(tmp_path):
    price_file = tmp_path / 'prices.csv'
    price_file.write_text(PRICE_CSV, encoding='utf-8')
    assert main(['--price', str(price_file), '--config', str(tmp_path / 'none.yaml')]) == 1
