import pytest

from core.domain.entities.signal_entity import BollingerBands, TimeframeSnapshot
from core.domain.entities.strategy_config_entity import StrategyConfig
from core.domain.enums.signal_enums import Regime, SignalAction
from core.services.signal_scoring_service import SignalScoringService


@pytest.fixture
def scorer():
    return SignalScoringService()


@pytest.fixture
def config():
    return StrategyConfig.from_raw(
        {
            "indicators": {"rsiBuy": 35, "rsiSell": 70},
            "regime": {"trendThresh": 0.3, "confidenceFloor": 0.35},
        }
    )


def _snap(rsi=50.0, macd=0.0, k=50.0, d=50.0, middle=100.0, atr_pct=0.02, last=100.0):
    return TimeframeSnapshot(
        rsi=rsi,
        macd_hist=macd,
        stoch_k=k,
        stoch_d=d,
        bb=BollingerBands(upper=middle * 1.05, middle=middle, lower=middle * 0.95),
        atr_pct=atr_pct,
        last=last,
    )


def test_buy_decision(scorer, config):
    action = scorer.decide_action(rsi=20, stoch_k=30, trend=0.8, confidence=0.6, config=config)
    assert action == SignalAction.BUY


def test_sell_decision(scorer, config):
    action = scorer.decide_action(rsi=80, stoch_k=60, trend=-0.5, confidence=0.5, config=config)
    assert action == SignalAction.SELL


def test_hold_when_confidence_not_above_floor(scorer, config):
    action = scorer.decide_action(rsi=20, stoch_k=30, trend=0.8, confidence=0.35, config=config)
    assert action == SignalAction.HOLD


@pytest.mark.parametrize("trend", [-5.0, -1.0, 0.0, 1.0, 5.0])
@pytest.mark.parametrize("momentum", [-3.0, 0.0, 3.0])
@pytest.mark.parametrize("volatility", [-1.0, 0.0, 20.0])
def test_confidence_is_always_bounded(scorer, trend, momentum, volatility):
    c = scorer.confidence(trend, momentum, volatility)
    assert 0.0 <= c <= 1.0


def test_normalizers_clamp():
    assert SignalScoringService.normalize_rsi(0) == -1.0
    assert SignalScoringService.normalize_rsi(100) == 1.0
    assert SignalScoringService.normalize_rsi(150) == 1.0
    assert SignalScoringService.normalize_stoch(80, 100) == pytest.approx(0.8)
    assert SignalScoringService.score_trend(0.5) == 1.0
    assert SignalScoringService.score_trend(-0.1) == pytest.approx(-0.5)


def test_volatility_score_outside_band():
    assert SignalScoringService.score_volatility(0.02, 0.01, 0.05) == 0.0
    assert SignalScoringService.score_volatility(0.005, 0.01, 0.05) == pytest.approx(-0.5)
    assert SignalScoringService.score_volatility(0.1, 0.01, 0.05) == pytest.approx(1.0)


def test_regime_priority(scorer, config):
    assert scorer.classify_regime(0.06, 0.9, config) == Regime.HIGH_VOL
    assert scorer.classify_regime(0.005, 0.9, config) == Regime.LOW_VOL
    assert scorer.classify_regime(0.02, 0.5, config) == Regime.TREND_UP
    assert scorer.classify_regime(0.02, -0.5, config) == Regime.TREND_DOWN
    assert scorer.classify_regime(0.02, 0.0, config) == Regime.RANGE


def test_missing_timeframe_short_circuits_to_hold(scorer, config):
    result = scorer.score("BTC/USDT", _snap(), None, _snap(), config)
    assert result.action == SignalAction.HOLD
    assert result.confidence == 0.0
    assert result.regime == Regime.UNKNOWN


def test_full_buy_signal_carries_sl_and_tp(scorer, config):
    high = _snap(macd=1.0)
    mid = _snap(macd=1.0, rsi=50)
    low = _snap(macd=1.0, rsi=20, k=30, d=30, middle=95.0, atr_pct=0.02, last=100.0)

    result = scorer.score("BTC/USDT", high, mid, low, config)

    # trend = (1 + 1 + 1 + 0.15) / 4; momentum = (-0.6 + 0 - 0.4) / 3
    assert result.scores.trend == pytest.approx(0.7875)
    assert result.scores.momentum == pytest.approx(-1.0 / 3.0)
    assert result.scores.volatility == 0.0
    assert result.confidence == pytest.approx(0.4 * 0.7875 - 0.4 / 3.0 + 0.2)
    assert result.action == SignalAction.BUY
    assert result.regime == Regime.TREND_UP
    assert result.reason.startswith("MTF Bullish")
    # ATR = 100 * 0.02 = 2; sl mult 2, tp mult 4
    assert result.sl == pytest.approx(96.0)
    assert result.tp == pytest.approx(108.0)


def test_bearish_setup_stays_below_confidence_floor(scorer, config):
    high = _snap(macd=-1.0)
    mid = _snap(macd=-1.0, rsi=80)
    low = _snap(macd=-1.0, rsi=85, k=90, d=90, middle=105.0, last=100.0)

    result = scorer.score("ETH/USDT", high, mid, low, config)

    assert result.scores.trend < -0.3
    # the negative trend term pulls confidence under the floor
    assert result.confidence <= config.regime.confidence_floor
    assert result.action == SignalAction.HOLD
    assert result.sl is None and result.tp is None
