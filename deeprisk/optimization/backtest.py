"""Rolling-window backtests of risk models and market scenario generators."""

from __future__ import annotations

import abc
import time
from collections.abc import Hashable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

import numpy as np

from deeprisk.errors import InvalidDimensionError, InvalidInputError

_TRADING_DAYS_PER_YEAR = 252.0
_TRANSITIONS_SHOWN = 10


class _RiskModel(Protocol):
    """What a backtest needs from a risk model."""

    def train(self, data: "MarketData") -> Any: ...

    def estimate_covariance(self, data: "MarketData") -> np.ndarray: ...

    def current_regime(self) -> Hashable | None: ...


@dataclass
class MarketData:
    """Asset returns and explanatory features, one row per period."""

    returns: np.ndarray
    features: np.ndarray

    def __post_init__(self) -> None:
        self.returns = np.asarray(self.returns, dtype=float)
        self.features = np.asarray(self.features, dtype=float)
        if self.returns.ndim != 2 or self.features.ndim != 2:
            raise InvalidDimensionError("Returns and features must be 2-D arrays")
        if self.returns.shape[0] != self.features.shape[0]:
            raise InvalidDimensionError(
                f"Returns have {self.returns.shape[0]} periods but features have "
                f"{self.features.shape[0]}"
            )


@dataclass(frozen=True)
class RegimeStats:
    """Performance of the portfolio while a single regime was in force."""

    count: int
    avg_return: float
    volatility: float
    sharpe_ratio: float
    max_drawdown: float


def max_drawdown(returns) -> float:
    """Return the largest peak-to-trough fall of the compounded return path."""
    arr = np.asarray(returns, dtype=float)
    if arr.size == 0:
        return 0.0
    wealth = np.concatenate(([1.0], np.cumprod(1.0 + arr)))
    peaks = np.maximum.accumulate(wealth)
    return float(np.max((peaks - wealth) / peaks))


def _mean(values: np.ndarray) -> float:
    return float(values.mean()) if values.size else 0.0


def _std(values: np.ndarray) -> float:
    return float(values.std()) if values.size else 0.0


def _sharpe(mean: float, vol: float) -> float:
    return mean / vol if vol > 0.0 else 0.0


@dataclass
class BacktestResults:
    """Portfolio returns and performance metrics from a backtest."""

    returns: np.ndarray
    volatility: float
    sharpe_ratio: float
    max_drawdown: float
    regime_transitions: list[tuple[int, Hashable]] = field(default_factory=list)
    regime_stats: dict[Hashable, RegimeStats] = field(default_factory=dict)
    execution_time: float = 0.0

    def cumulative_return(self) -> float:
        """Return the growth of one unit of wealth over the whole backtest."""
        return float(np.prod(1.0 + np.asarray(self.returns, dtype=float)))

    def annualized_return(self) -> float:
        """Return the compound yearly return, assuming daily periods."""
        n = len(self.returns)
        if n == 0:
            return 0.0
        years = n / _TRADING_DAYS_PER_YEAR
        return self.cumulative_return() ** (1.0 / years) - 1.0

    def _summary_lines(self) -> Iterator[str]:
        yield "=== Backtest Results ==="
        yield f"Total Return: {(self.cumulative_return() - 1.0) * 100.0:.2f}%"
        yield f"Annualized Return: {self.annualized_return() * 100.0:.2f}%"
        yield f"Volatility: {self.volatility * 100.0:.2f}%"
        yield f"Sharpe Ratio: {self.sharpe_ratio:.2f}"
        yield f"Maximum Drawdown: {self.max_drawdown * 100.0:.2f}%"
        yield f"Execution Time: {self.execution_time:.6f}s"
        yield ""
        yield "=== Regime Statistics ==="
        for regime, stats in self.regime_stats.items():
            yield f"Regime: {regime}"
            yield f"  Periods: {stats.count}"
            yield f"  Average Return: {stats.avg_return * 100.0:.2f}%"
            yield f"  Volatility: {stats.volatility * 100.0:.2f}%"
            yield f"  Sharpe Ratio: {stats.sharpe_ratio:.2f}"
            yield f"  Maximum Drawdown: {stats.max_drawdown * 100.0:.2f}%"
        yield ""
        yield "=== Regime Transitions ==="
        total = len(self.regime_transitions)
        for i, (period, regime) in enumerate(self.regime_transitions):
            if i < _TRANSITIONS_SHOWN or i >= total - _TRANSITIONS_SHOWN:
                yield f"Period {period}: {regime}"
            elif i == _TRANSITIONS_SHOWN:
                yield "..."

    def summary(self) -> str:
        """Return a human-readable report of the results."""
        return "\n".join(self._summary_lines())

    def print_summary(self) -> None:
        """Print the report, line by line, to standard output."""
        for line in self._summary_lines():
            print(line)


class Backtest:
    """Walk-forward evaluation: retrain on a rolling window and rebalance periodically."""

    def __init__(
        self, train_window: int, test_window: int, rebalance_freq: int, risk_aversion: float
    ) -> None:
        if rebalance_freq <= 0:
            raise InvalidInputError("Rebalancing frequency must be greater than 0")
        self.train_window = train_window
        self.test_window = test_window
        self.rebalance_freq = rebalance_freq
        self.risk_aversion = risk_aversion

    def __repr__(self) -> str:
        return (
            f"Backtest(train_window={self.train_window}, test_window={self.test_window}, "
            f"rebalance_freq={self.rebalance_freq}, risk_aversion={self.risk_aversion})"
        )

    def run(self, model: _RiskModel, data: MarketData) -> BacktestResults:
        """Backtest ``model`` on ``data`` and return the portfolio results."""
        started = time.perf_counter()
        returns, features = data.returns, data.features
        n_samples, n_assets = returns.shape
        if n_samples <= self.train_window:
            raise InvalidInputError(
                f"Not enough data for backtesting. Need > {self.train_window} samples."
            )

        portfolio_returns: list[float] = []
        transitions: list[tuple[int, Hashable]] = []
        by_regime: dict[Hashable, list[float]] = {}
        weights = np.full(n_assets, 1.0 / n_assets)
        current_regime: Hashable | None = None

        for t in range(self.train_window, n_samples):
            if (t - self.train_window) % self.rebalance_freq == 0:
                window = slice(t - self.train_window, t)
                train_data = MarketData(returns[window].copy(), features[window].copy())
                model.train(train_data)
                covariance = model.estimate_covariance(train_data)
                weights = self.optimize_portfolio(covariance)
                regime = model.current_regime()
                if regime is not None and regime != current_regime:
                    transitions.append((t, regime))
                    current_regime = regime

            period_return = float(weights @ returns[t])
            portfolio_returns.append(period_return)
            if current_regime is not None:
                by_regime.setdefault(current_regime, []).append(period_return)

        series = np.array(portfolio_returns)
        volatility = _std(series)
        sharpe = _sharpe(_mean(series), volatility)

        stats = {}
        for regime, values in by_regime.items():
            arr = np.array(values)
            avg, vol = _mean(arr), _std(arr)
            stats[regime] = RegimeStats(
                count=len(arr),
                avg_return=avg,
                volatility=vol,
                sharpe_ratio=_sharpe(avg, vol),
                max_drawdown=max_drawdown(arr),
            )

        return BacktestResults(
            returns=series,
            volatility=volatility,
            sharpe_ratio=sharpe,
            max_drawdown=max_drawdown(series),
            regime_transitions=transitions,
            regime_stats=stats,
            execution_time=time.perf_counter() - started,
        )

    def optimize_portfolio(self, covariance) -> np.ndarray:
        """Return inverse-volatility weights that sum to one.

        Falls back to equal weights when the inverse volatilities do not sum
        to a positive number.
        """
        cov = np.asarray(covariance, dtype=float)
        if cov.ndim != 2 or cov.shape[0] != cov.shape[1]:
            raise InvalidDimensionError(f"Covariance must be a square matrix, got {cov.shape}")
        n_assets = cov.shape[0]
        with np.errstate(divide="ignore", invalid="ignore"):
            weights = 1.0 / np.sqrt(np.diag(cov))
            total = weights.sum()
            if total > 0.0:
                return weights / total
        return np.full(n_assets, 1.0 / n_assets)

    def run_scenario(
        self, model: _RiskModel, base_data: MarketData, scenario_generator: "ScenarioGenerator"
    ) -> dict[str, BacktestResults]:
        """Backtest the base data and every generated scenario, keyed by name."""
        results = {"Base": self.run(model, base_data)}
        for name, scenario in scenario_generator.generate_scenarios(base_data):
            results[name] = self.run(model, scenario)
        return results


class ScenarioGenerator(abc.ABC):
    """Produces named market scenarios derived from base data."""

    @abc.abstractmethod
    def generate_scenarios(self, base_data: MarketData) -> list[tuple[str, MarketData]]:
        """Return a list of ``(name, data)`` scenarios."""


class HistoricalScenarioGenerator(ScenarioGenerator):
    """Replays selected historical periods, given as ``(name, start, end)``."""

    def __init__(self, periods: Sequence[tuple[str, int, int]]) -> None:
        self.periods = list(periods)

    def __repr__(self) -> str:
        return f"HistoricalScenarioGenerator(periods={self.periods!r})"

    def generate_scenarios(self, base_data: MarketData) -> list[tuple[str, MarketData]]:
        n_samples = base_data.returns.shape[0]
        scenarios = []
        for name, start, end in self.periods:
            if start < 0 or start >= end or end > n_samples:
                raise InvalidInputError(f"Invalid period: {start} to {end}")
            scenarios.append(
                (
                    name,
                    MarketData(
                        base_data.returns[start:end].copy(),
                        base_data.features[start:end].copy(),
                    ),
                )
            )
        return scenarios


class StressScenarioGenerator(ScenarioGenerator):
    """Applies volatility, correlation and level shocks to the base returns."""

    def __init__(
        self,
        volatility_multipliers: Sequence[tuple[str, float]],
        correlation_shifts: Sequence[tuple[str, float]],
        return_shocks: Sequence[tuple[str, float]],
    ) -> None:
        self.volatility_multipliers = list(volatility_multipliers)
        self.correlation_shifts = list(correlation_shifts)
        self.return_shocks = list(return_shocks)

    def __repr__(self) -> str:
        return (
            f"StressScenarioGenerator(volatility_multipliers={self.volatility_multipliers!r}, "
            f"correlation_shifts={self.correlation_shifts!r}, "
            f"return_shocks={self.return_shocks!r})"
        )

    @staticmethod
    def _scale_volatility(returns: np.ndarray, multiplier: float) -> np.ndarray:
        mean = returns.mean(axis=0)
        return mean + (returns - mean) * multiplier

    @staticmethod
    def _shift_correlation(returns: np.ndarray, shift: float) -> np.ndarray:
        mean = returns.mean(axis=0)
        deviations = returns - mean
        vols = np.sqrt((deviations**2).mean(axis=0))
        with np.errstate(divide="ignore", invalid="ignore"):
            common = (deviations / vols).mean(axis=1, keepdims=True)
            systematic = shift * common * vols
            specific = returns - mean - systematic
            return mean + systematic + specific

    def generate_scenarios(self, base_data: MarketData) -> list[tuple[str, MarketData]]:
        returns, features = base_data.returns, base_data.features
        scenarios = []
        for name, multiplier in self.volatility_multipliers:
            shocked = self._scale_volatility(returns, multiplier)
            scenarios.append((f"Vol_{name}", MarketData(shocked, features.copy())))
        for name, shift in self.correlation_shifts:
            shocked = self._shift_correlation(returns, shift)
            scenarios.append((f"Corr_{name}", MarketData(shocked, features.copy())))
        for name, shock in self.return_shocks:
            scenarios.append((f"Shock_{name}", MarketData(returns + shock, features.copy())))
        return scenarios