"""지표 엔진: OBV / ATR / MFI / 앵커 VWAP / 차트 지표 / 다중 앵커 VWAP"""

import numpy as np
import pandas as pd
import pytest

from conftest import make_ohlcv
from flowdash.data.indicator_calc import (
    IndicatorCalc, add_chart_indicators, compute_indicators, default_vwap_anchors,
    enhanced_vwap,
)


def _bars(closes, volumes=None):
    closes = np.asarray(closes, dtype=float)
    volumes = np.full(len(closes), 100.0) if volumes is None else np.asarray(volumes, dtype=float)
    return pd.DataFrame({
        'date': [f'2020-01-{i + 1:02d}' for i in range(len(closes))],
        'open': closes, 'high': closes + 1, 'low': closes - 1,
        'close': closes, 'volume': volumes,
    })


class TestComputeIndicators:

    def test_obv_path(self):
        df = _bars([10, 11, 11, 10, 12], [100, 200, 300, 400, 500])
        res = compute_indicators(df)
        assert list(res.data['obv']) == [0, 200, 200, -200, 300]
        assert res.obv_max == 300

    def test_typical_price(self):
        res = compute_indicators(_bars([10, 20]))
        assert list(res.data['tp']) == [10.0, 20.0]

    def test_atr_mfi_warmup(self, merged):
        data = compute_indicators(merged).data
        assert data['atr14'].iloc[:14].isna().all()
        assert data['mfi14'].iloc[:14].isna().all()
        assert data['atr14'].iloc[14:].notna().all()
        assert data['mfi14'].iloc[14:].notna().all()

    def test_mfi_bounded(self, enriched):
        mfi = enriched['mfi14'].dropna()
        assert ((mfi >= 0) & (mfi <= 100)).all()

    def test_mfi_without_negative_flow(self):
        data = compute_indicators(_bars(np.arange(1, 31))).data
        np.testing.assert_allclose(data['mfi14'].iloc[14:], 100 - 100 / 101)

    def test_atr_constant_range(self):
        data = compute_indicators(_bars([10] * 20)).data
        assert data['atr14'].iloc[14] == pytest.approx(2.0)

    def test_vwap_null_prefix(self, merged):
        data = compute_indicators(merged, anchor_index=30).data
        assert data['avwap'].iloc[:30].isna().all()
        assert data['avwap'].iloc[30] == pytest.approx(data['tp'].iloc[30])
        assert data['avwap'].iloc[30:].notna().all()

    def test_vwap_anchor_clamped(self):
        df = _bars([10, 11, 12])
        assert compute_indicators(df, anchor_index=99).data['avwap'].iloc[:2].isna().all()
        assert compute_indicators(df, anchor_index=-5).data['avwap'].notna().all()

    def test_vwap_zero_volume_is_nan(self):
        df = _bars([10, 11, 12], [0, 0, 100])
        avwap = compute_indicators(df).data['avwap']
        assert avwap.iloc[:2].isna().all()
        assert avwap.iloc[2] == pytest.approx(12.0)

    def test_input_not_mutated(self, merged):
        cols = list(merged.columns)
        compute_indicators(merged)
        assert list(merged.columns) == cols

    def test_empty(self):
        res = compute_indicators(pd.DataFrame())
        assert res.data.empty
        assert res.obv_max == 0


class TestChartIndicators:

    def test_sma_prefix(self):
        out = add_chart_indicators(make_ohlcv(130))
        assert out['ma20'].iloc[:19].isna().all()
        assert out['ma20'].iloc[19] == pytest.approx(out['close'].iloc[:20].mean())
        assert out['ma120'].iloc[119] == pytest.approx(out['close'].iloc[:120].mean())

    def test_bollinger_population_std(self):
        out = add_chart_indicators(make_ohlcv(40))
        window = out['close'].iloc[:20]
        assert out['bb_upper'].iloc[19] == pytest.approx(window.mean() + 2 * window.std(ddof=0))
        assert out['bb_middle'].iloc[19] == pytest.approx(out['ma20'].iloc[19])

    def test_rsi_first_value_and_bounds(self):
        out = add_chart_indicators(make_ohlcv(80))
        assert out['rsi14'].iloc[:14].isna().all()
        assert out['rsi14'].iloc[14:].between(0, 100).all()

    def test_rsi_no_losses(self):
        rsi = IndicatorCalc.rsi(pd.Series(np.arange(1.0, 21.0)))
        assert rsi.iloc[14] == pytest.approx(100 - 100 / 101)

    def test_ema_seeded_with_sma(self):
        s = pd.Series(np.arange(1.0, 11.0))
        ema = IndicatorCalc.ema(s, 3)
        assert ema.iloc[:2].isna().all()
        assert ema.iloc[2] == pytest.approx(2.0)
        assert ema.iloc[3] == pytest.approx(3.0)

    def test_macd_signal_starts_after_valid_macd(self):
        out = add_chart_indicators(make_ohlcv(60))
        assert out['macd'].iloc[:25].isna().all()
        assert out['macd'].iloc[25:].notna().all()
        assert out['macd_signal'].iloc[:33].isna().all()
        assert out['macd_signal'].iloc[33:].notna().all()
        np.testing.assert_allclose(out['macd_histogram'].iloc[33:],
                                   (out['macd'] - out['macd_signal']).iloc[33:])


class TestEnhancedVwap:

    def test_default_anchors_short_series(self):
        assert default_vwap_anchors(make_ohlcv(40)) == [0]

    def test_default_anchors_long_series(self):
        df = make_ohlcv(100)
        anchors = default_vwap_anchors(df)
        recent = df.iloc[40:]
        assert anchors == [0, int(recent['high'].idxmax()), int(recent['low'].idxmin())]

    def test_columns_and_avwap_mirror(self):
        out = enhanced_vwap(make_ohlcv(100))
        assert {'vwap0', 'vwap1', 'vwap2'} <= set(out.columns)
        assert out['avwap'].equals(out['vwap0'])

    def test_zero_volume_uses_typical_price(self):
        df = _bars([10, 11, 12], [0, 0, 100])
        out = enhanced_vwap(df, anchors=[0])
        assert out['vwap0'].iloc[0] == pytest.approx(10.0)
        assert out['vwap0'].iloc[2] == pytest.approx(12.0)
