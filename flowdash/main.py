"""
FlowDash - 투자자 수급 대시보드 코어
=====================================
가격 CSV + 투자자별 수급 CSV → 지표/스마트머니/매매 신호 텍스트 리포트

Usage:
  python -m flowdash.main --price prices.csv --flow flows.csv
  python -m flowdash.main --price prices.csv --flow flows.csv --anchor 30
  python -m flowdash.main --price prices.csv --flow flows.csv --unit shares
  python -m flowdash.main --price prices.csv --backtest       # 가격 CSV 수급 컬럼 사용
  python -m flowdash.main --price prices.csv --config my.yaml
"""

import sys
import argparse
import logging
from datetime import datetime
from pathlib import Path

from flowdash.data.csv_parser import read_text
from flowdash.output.report import build_report
from flowdash.pipeline import run_pipeline
from flowdash.shared.config_loader import load_config


# 로깅 설정
def setup_logging(config: dict):
    output = config.get('output', {})
    level = getattr(logging, str(output.get('log_level', 'INFO')).upper(), logging.INFO)

    handlers = [logging.StreamHandler()]
    log_dir = output.get('log_dir')
    if log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        today = datetime.now().strftime('%Y%m%d')
        handlers.append(logging.FileHandler(Path(log_dir) / f"flowdash_{today}.log", encoding='utf-8'))

    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(name)s] %(levelname)s: %(message)s',
        datefmt='%H:%M:%S',
        handlers=handlers,
    )
    return logging.getLogger('FlowDash')


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='FlowDash 투자자 수급 대시보드')
    parser.add_argument('--price', required=True, help='가격 CSV 경로')
    parser.add_argument('--flow', default=None, help='투자자별 수급 CSV 경로')
    parser.add_argument('--anchor', type=int, default=None, help='VWAP 시작 봉 인덱스')
    parser.add_argument('--unit', choices=['auto', 'currency', 'shares'], default=None,
                        help='수급 단위 (기본: 설정값)')
    parser.add_argument('--backtest', action='store_true', help='신호 백테스트 실행')
    parser.add_argument('--config', default=None, help='설정 파일 경로')
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        logging.basicConfig(level=logging.ERROR)
        logging.getLogger('FlowDash').error(str(e))
        return 1

    if args.unit:
        config.setdefault('flow', {})['unit_mode'] = args.unit

    logger = setup_logging(config)

    try:
        price_text = read_text(args.price)
        flow_text = read_text(args.flow) if args.flow else None
    except (FileNotFoundError, UnicodeDecodeError) as e:
        logger.error(f"CSV 읽기 실패: {e}")
        return 1

    result = run_pipeline(price_text, flow_text, anchor_index=args.anchor, config=config,
                          run_backtest=True if args.backtest else None)
    print(build_report(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
