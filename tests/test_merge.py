"""가격 + 수급 병합 / 누적합"""

import numpy as np
import pytest

from conftest import PRICE_CSV
from flowdash.data.flow_loader import FLOW_CATEGORIES, load_flows
from flowdash.data.flow_merger import CUM_COLUMNS, cum_snapshot, flow_snapshot, merge_flows
from flowdash.data.price_loader import load_prices
from flowdash.pipeline import process_flow_data

FLOW_CSV_TWO_DAYS = """날짜,외국인,기타외국인,개인,금융투자
2020/08/10,100,10,-50,5
2020/8/11,-30,0,20,5
"""


def test_scenario_d_unmatched_date_zero_and_running_total():
    prices = load_prices(PRICE_CSV)
    merged = merge_flows(prices, load_flows(FLOW_CSV_TWO_DAYS))

    assert len(merged) == 3
    last = flow_snapshot(merged, 2)
    assert all(v == 0 for v in last.values())

    cum_last = cum_snapshot(merged, 2)
    cum_prev = cum_snapshot(merged, 1)
    assert cum_last == cum_prev
    assert cum_last['외국인'] == 70
    assert cum_last['외국인합계'] == 80
    assert cum_last['기관합계'] == 10
    assert merged['cum_person'].iloc[2] == -30


def test_merge_length_equals_price_length(prices, flows):
    partial = flows.iloc[::3]
    merged = merge_flows(prices, partial)
    assert len(merged) == len(prices)
    assert list(merged['date']) == list(prices['date'])


def test_cumulative_consistency(merged):
    for cat in FLOW_CATEGORIES:
        daily = merged[cat].to_numpy()
        cum = merged[f'{cat}_누적'].to_numpy()
        assert cum[0] == pytest.approx(daily[0])
        np.testing.assert_allclose(cum[1:], cum[:-1] + daily[1:], rtol=1e-9)


def test_convenience_columns(merged):
    assert (merged['foreign'] == merged['외국인합계']).all()
    assert (merged['inst'] == merged['기관합계']).all()
    assert (merged['person'] == merged['개인']).all()
    assert (merged['cum_inst'] == merged['기관합계_누적']).all()
    assert set(CUM_COLUMNS) <= set(merged.columns)


def test_inputs_not_mutated(prices, flows):
    before_p = prices.copy()
    before_f = flows.copy()
    merge_flows(prices, flows)
    assert prices.equals(before_p)
    assert flows.equals(before_f)


def test_snapshots_are_independent_copies(merged):
    snap = flow_snapshot(merged, 0)
    snap['외국인'] = 123456789.0
    assert merged['외국인'].iloc[0] != 123456789.0


def test_duplicate_flow_dates_last_wins():
    prices = load_prices(PRICE_CSV)
    flows = load_flows("날짜,외국인\n2020-08-10,1\n2020-08-10,7\n")
    merged = merge_flows(prices, flows)
    assert merged['외국인'].iloc[0] == 7


def test_no_flows_merges_zeros():
    prices = load_prices(PRICE_CSV)
    merged, report = process_flow_data(None, prices)
    assert len(merged) == 3
    assert (merged['기관합계_누적'] == 0).all()
    assert any('수급 없음' in note for note in report.notes)


def test_process_flow_data_converts_shares():
    prices = load_prices(PRICE_CSV)
    merged, report = process_flow_data("날짜,외국인\n2020-08-10,50000\n", prices)
    assert report.unit_mode == 'shares'
    assert report.unit_detected
    assert merged['외국인'].iloc[0] == 50_000 * 52500


def test_process_flow_data_declared_currency_skips_conversion():
    prices = load_prices(PRICE_CSV)
    merged, report = process_flow_data("날짜,외국인\n2020-08-10,50000\n", prices,
                                       unit_mode='currency')
    assert report.unit_mode == 'currency'
    assert not report.unit_detected
    assert merged['외국인'].iloc[0] == 50_000


def test_process_flow_data_simple_fallback():
    prices = load_prices(PRICE_CSV)
    merged, report = process_flow_data(
        "date,foreign,institution\n2020-08-11,3000000,-2000000\n", prices)
    assert report.strategy == 'simple'
    assert merged['외국인'].iloc[1] == 3_000_000
    assert merged['cum_inst'].iloc[2] == -2_000_000
