"""설정 로더 + .env 덮어쓰기"""

import pytest

from flowdash.shared.config_loader import (
    DEFAULT_CONFIG_PATH, apply_env_overrides, load_config, load_env,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    # load_env가 os.environ에 남긴 값까지 테스트 후 제거
    for key in ('FLOWDASH_LOG_LEVEL', 'FLOWDASH_UNIT_MODE', 'FLOWDASH_PORTFOLIO_VALUE'):
        monkeypatch.setenv(key, '')
        monkeypatch.delenv(key)


def test_bundled_default():
    assert DEFAULT_CONFIG_PATH.exists()
    config = load_config()
    assert config['flow']['unit_mode'] == 'auto'
    assert config['flow']['share_threshold'] == 1_000_000
    assert config['backtest']['lookback'] == 60
    assert config['output']['log_level'] == 'INFO'


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError, match="설정 파일 없음"):
        load_config(str(tmp_path / 'missing.yaml'))


def test_env_file_overrides(tmp_path):
    cfg = tmp_path / 'config.yaml'
    cfg.write_text("output:\n  log_level: INFO\nflow:\n  unit_mode: auto\n", encoding='utf-8')
    env = tmp_path / '.env'
    env.write_text("FLOWDASH_LOG_LEVEL=debug\nFLOWDASH_UNIT_MODE=SHARES\n"
                   "FLOWDASH_PORTFOLIO_VALUE=250000000\n", encoding='utf-8')

    config = load_config(str(cfg), env_path=str(env))
    assert config['output']['log_level'] == 'DEBUG'
    assert config['flow']['unit_mode'] == 'shares'
    assert config['risk']['portfolio_value'] == 250_000_000.0


def test_existing_environment_wins(tmp_path, monkeypatch):
    env = tmp_path / '.env'
    env.write_text("FLOWDASH_UNIT_MODE=shares\n", encoding='utf-8')
    monkeypatch.setenv('FLOWDASH_UNIT_MODE', 'currency')
    values = load_env(str(env))
    assert values == {'FLOWDASH_UNIT_MODE': 'shares'}
    assert apply_env_overrides({})['flow']['unit_mode'] == 'currency'


def test_invalid_number_ignored(monkeypatch):
    monkeypatch.setenv('FLOWDASH_PORTFOLIO_VALUE', 'lots')
    config = apply_env_overrides({'risk': {'portfolio_value': 1.0}})
    assert config['risk']['portfolio_value'] == 1.0
