"""
=============================================================================
매매일지 코어 (Trading Journal Core)
=============================================================================

[ 시스템 전체 구조 ]

    run_backtest.py (진입점)
         │
         ├── utils/config.py        ← config.yaml 설정 로드
         ├── utils/logger.py        ← 로깅
         ├── utils/scale.py         ← 보고 시점 반올림 정책
         ├── utils/indicators.py    ← 기술적 지표 (SMA, EMA, RSI, 볼린저, 모멘텀, MACD, 교차)
         │
         ├── strategies/            ← 매매 전략 (시그널 생성)
         │     ├── ma_cross_strategy.py
         │     ├── rsi_strategy.py
         │     ├── bollinger_band_strategy.py
         │     ├── momentum_strategy.py
         │     └── macd_strategy.py
         │
         └── backtest/engine.py     ← 백테스트 실행 엔진
               │
               ├── accounting/fifo.py   ← FIFO 로트 매칭, 실현손익
               └── analysis/metrics.py  ← 성과/리스크 지표 계산


[ 핵심 데이터 (core/, data/) ]

    core/price_data.py       → PriceBar (봉 데이터)
    core/trading_strategy.py → TradingStrategy (전략 추상 클래스)
    core/errors.py           → 코어 예외 계층
    data/transaction.py      → Transaction (매수/매도 기록)
    data/portfolio.py        → Lot, Position (미청산 로트, 포지션 평가)


[ 데이터 흐름 ]

    매매일지:
        1. 영속성 레이어가 계좌/종목별로 정렬된 거래를 전달
        2. recalculate_fifo() / migrate_all()이 실현손익, R-multiple 등을 계산
        3. 영속성 레이어가 파생 필드를 저장
        4. compute_metrics()가 청산 거래 + 자산 곡선으로 리스크 지표 계산

    백테스트:
        1. config.yaml에서 전략 파라미터 로드
        2. TradingStrategy가 봉 데이터로 시그널(매수/매도/홀드) 생성
        3. BacktestEngine이 가상 거래를 FifoMatcher에 넣어 손익 계산
        4. compute_metrics()가 자산 곡선으로 성과 지표 계산


[ 동시성 ]

    모든 계산은 입력만으로 결정되는 순수 계산이다.
    로트 큐와 포지션 상태는 호출마다 새로 만들어지므로 여러 계좌/종목/백테스트를 병렬로 돌려도 된다.
"""
