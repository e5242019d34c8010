"""
Shared Config Loader
=====================
YAML 설정 파일 로더 + .env 환경변수 통합
"""

import logging
from pathlib import Path
import os
from typing import Optional

import yaml
from dotenv import dotenv_values

logger = logging.getLogger('FlowDash.Config')

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.yaml"

# .env 키 → (섹션, 필드, 변환)
ENV_MAP = {
    'FLOWDASH_LOG_LEVEL': ('output', 'log_level', str.upper),
    'FLOWDASH_UNIT_MODE': ('flow', 'unit_mode', str.lower),
    'FLOWDASH_PORTFOLIO_VALUE': ('risk', 'portfolio_value', float),
}


def load_env(env_path: Optional[str] = None) -> dict:
    """.env 파일을 읽어 os.environ에 세팅하고 dict로 반환 (기존 환경변수 우선)"""
    if env_path is None:
        # 프로젝트 루트의 .env 탐색
        candidates = [
            DEFAULT_CONFIG_PATH.parent.parent / ".env",
            Path.cwd() / ".env",
        ]
        for c in candidates:
            if c.exists():
                env_path = str(c)
                break

    env_vars = {}
    if env_path and Path(env_path).exists():
        for key, value in dotenv_values(env_path, encoding='utf-8').items():
            if value:
                os.environ.setdefault(key, value)
                env_vars[key] = value
    return env_vars


def apply_env_overrides(config: dict) -> dict:
    """FLOWDASH_* 환경변수 → config 값 덮어쓰기 (변환 실패 값은 무시)"""
    for env_key, (section, field, convert) in ENV_MAP.items():
        val = os.environ.get(env_key, '')
        if not val:
            continue
        try:
            config.setdefault(section, {})[field] = convert(val)
        except ValueError:
            logger.warning(f"환경변수 무시: {env_key}={val}")
    return config


def load_config(path: Optional[str] = None, env_path: Optional[str] = None) -> dict:
    """YAML 설정 파일 로드 + .env 환경변수 주입 (path 미지정 시 패키지 기본 설정)"""
    filepath = Path(path) if path else DEFAULT_CONFIG_PATH
    if not filepath.exists():
        raise FileNotFoundError(f"설정 파일 없음: {filepath}")
    with open(filepath, 'r', encoding='utf-8') as f:
        config = yaml.safe_load(f) or {}

    load_env(env_path)
    return apply_env_overrides(config)
