"""
Backtest orchestrator: drives the bar-by-bar loop and composes gate, slippage, ledger and checkpoints.

Per bar:
    daily bar + VIX (missing -> gap, skip) -> premium resets -> candidates -> gate -> fill -> book
    -> mark to market -> emergency stop -> exit rules -> aggregates -> risk-limit alerts -> periodic checkpoint

Nothing in the loop reads the wall clock or a random source, so a run resumed from a checkpoint
ends in the same state as one that ran straight through.
"""

from __future__ import annotations

import logging
import sys
import threading
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional, TypeVar

import pandas as pd
from tqdm.auto import tqdm

from ..config import RunConfig
from ..data.calendars import StaticEarningsCalendar, days_to_expiration, generate_trading_days, in_execution_window
from ..data.models import DailyBar, EarningsCalendar, MarketDataProvider, QuoteSnapshot, combine_vertical
from ..errors import DataGap, InvalidQuote
from ..execution.realism import RealismVerdict, SizingContext, evaluate
from ..execution.slippage import SlippageModel, buy_ladder
from ..portfolio.ledger import PositionLedger
from ..portfolio.pnl import PnLEngine, sharpe_ratio
from ..portfolio.position import CloseReason, Position, TradeCandidate
from ..portfolio.state import DataGapRecord, PortfolioState
from ..pricing import BlackScholesModel, PricingModel
from ..risk import RiskManager, check_risk_limits
from ..strategy import build_strategies
from .audit import summarize
from .checkpoint import Checkpoint, CheckpointManager, config_fingerprint, generate_run_id
from .logs import attach_run_log, detach_run_log

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Cooperative cancellation, checked once per bar boundary."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class RunResult:
    """Result of a backtest run (or of one resumable slice of it)"""
    run_id: str
    completed: bool
    state: PortfolioState
    bars_processed: int
    last_processed_date: Optional[date]
    metrics: Dict[str, Any] = field(default_factory=dict)
    trades: pd.DataFrame = field(default_factory=pd.DataFrame)


class BacktestOrchestrator:
    def __init__(
        self,
        config: RunConfig,
        data: MarketDataProvider,
        pricing: Optional[PricingModel] = None,
        earnings: Optional[EarningsCalendar] = None,
        checkpoints: Optional[CheckpointManager] = None,
        run_id: Optional[str] = None,
    ):
        self.config = config
        self.data = data
        self.pricing: PricingModel = pricing or BlackScholesModel()
        self.earnings: EarningsCalendar = earnings or StaticEarningsCalendar(config.strategy.earnings_dates)
        if checkpoints is None and config.checkpoint.enabled:
            checkpoints = CheckpointManager(config.checkpoint.directory, config.checkpoint.keep_completed)
        self.checkpoints = checkpoints if config.checkpoint.enabled else None

        self.symbol = config.engine.symbol.upper()
        self.run_id = run_id or generate_run_id(config)
        self.fingerprint = config_fingerprint(config)

        self.risk = RiskManager(config.risk, earnings_window_days=config.realism.earnings_window_days)
        self.slippage = SlippageModel(config.slippage)
        self.strategies = build_strategies(config.strategy)

    # -- run loop ------------------------------------------------------

    def run(
        self,
        cancel: Optional[CancellationToken] = None,
        max_bars: Optional[int] = None,
        resume: bool = True,
    ) -> RunResult:
        """
        Run (or resume) the backtest.

        Args:
            cancel: token checked before every bar; cancellation forces a checkpoint
            max_bars: stop after this many bars in this call (forces a checkpoint)
            resume: continue from this run's checkpoint when one exists

        Returns:
            RunResult; completed is False when the run stopped early

        Raises:
            ConfigMismatch: the stored checkpoint was written under a different config
            StateCorruption: the stored checkpoint is unreadable
        """
        checkpoint = None
        if resume and self.checkpoints is not None:
            checkpoint = self.checkpoints.load(self.run_id)
            if checkpoint is not None:
                self.checkpoints.verify(checkpoint, self.fingerprint)

        if checkpoint is not None and checkpoint.completed:
            logger.info(f"Run {self.run_id} already completed; returning stored result")
            return self._result(checkpoint.state, True, checkpoint.bars_processed, checkpoint.last_processed_date)

        run_log = None
        if self.config.logging.run_log_dir:
            run_log = attach_run_log(self.config.logging.run_log_dir, self.run_id, self.config.logging.level)

        if checkpoint is not None:
            state = checkpoint.state
            last = checkpoint.last_processed_date
            bars_processed = checkpoint.bars_processed
            logger.info(f"Resuming {self.run_id} after {last} ({bars_processed} bars done)")
        else:
            state = PortfolioState.initial(self.config.engine.initial_capital)
            last = None
            bars_processed = 0
            logger.info(f"Starting {self.run_id} ({self.config.engine.start} -> {self.config.engine.end})")

        pnl = PnLEngine(self.config.pnl, self.pricing)
        pnl.restore_history(state.pnl_history, state.pnl_last)
        ledger = PositionLedger(state, pnl, self.config.exits, self.config.slippage.commission_per_contract)

        days = generate_trading_days(self.config.engine.start, self.config.engine.end, after=last)

        pbar = tqdm(total=len(days), desc=self.run_id, unit="bar", dynamic_ncols=True) if sys.stderr.isatty() else None
        t0 = time.time()
        last_progress_log = t0
        done_this_call = 0
        stopped_early = False

        try:
            for day in days:
                if cancel is not None and cancel.cancelled:
                    logger.info(f"Cancelled before {day}")
                    stopped_early = True
                    break
                if max_bars is not None and done_this_call >= max_bars:
                    stopped_early = True
                    break

                self._process_bar(ledger, day)
                bars_processed += 1
                done_this_call += 1
                last = day

                if pbar is not None:
                    pbar.update(1)
                else:
                    now = time.time()
                    if now - last_progress_log >= self.config.logging.progress_every_sec:
                        logger.info(
                            f"Progress: {done_this_call}/{len(days)} bars | {day} | capital={state.capital:.2f} "
                            f"| open={len(state.open_positions)}"
                        )
                        last_progress_log = now

                if self.checkpoints is not None and bars_processed % self.config.checkpoint.every_n_bars == 0:
                    self._save(state, last, bars_processed, completed=False)

            completed = not stopped_early
            if self.checkpoints is not None:
                cp = self._checkpoint(state, last, bars_processed, completed=False)
                if completed:
                    self.checkpoints.finalize(cp)
                else:
                    self.checkpoints.save(cp)
        finally:
            if pbar is not None:
                pbar.close()
            if run_log is not None:
                detach_run_log(run_log)

        if completed:
            logger.info(
                f"Backtest complete. Run ID: {self.run_id} | bars={bars_processed} | trades={len(state.closed_positions)} "
                f"| capital={state.capital:.2f}"
            )
            audit = summarize(state)
            logger.info(
                f"Realism audit: {audit.candidates_filled}/{audit.candidates_evaluated} filled ({audit.execution_rate:.1%}) "
                f"| slippage={audit.slippage_cost:.2f} | skipped premium={audit.skipped_premium:.2f} "
                f"| top issues={audit.top_issues}"
            )
        return self._result(state, completed, bars_processed, last)

    def _checkpoint(self, state: PortfolioState, last: Optional[date], bars: int, completed: bool) -> Checkpoint:
        return Checkpoint.build(self.run_id, self.config, state, last, bars, self.fingerprint, completed=completed)

    def _save(self, state: PortfolioState, last: Optional[date], bars: int, completed: bool) -> None:
        self.checkpoints.save(self._checkpoint(state, last, bars, completed))

    # -- one bar -------------------------------------------------------

    def _fetch(self, fn: Callable[[], Optional[T]]) -> Optional[T]:
        try:
            return fn()
        except DataGap as e:
            logger.debug(f"Provider reported {e}")
            return None

    def _record_gap(self, state: PortfolioState, day: date, kind: str, what: str) -> None:
        state.record_gap(DataGapRecord(as_of=day, kind=kind, what=what, symbol=self.symbol), self.config.engine.max_gap_records)
        logger.warning(f"Data gap on {day}: {what} ({self.symbol}); skipping")

    def _process_bar(self, ledger: PositionLedger, day: date) -> None:
        state = ledger.state
        bar = self._fetch(lambda: self.data.get_daily_bar(self.symbol, day))
        vix = self._fetch(lambda: self.data.get_vix(day))
        if bar is None:
            self._record_gap(state, day, "daily_bar", "daily bar")
            return
        if vix is None:
            self._record_gap(state, day, "vix", "vix")
            return

        ledger.reset_premiums(day)
        equity_before = state.equity
        realized_before = state.realized_pnl

        if self._entries_allowed(state):
            context = {"open_positions": ledger.open_positions}
            for strategy in self.strategies:
                for candidate in strategy.generate_candidates(bar, context):
                    self._try_open(ledger, candidate, bar, vix, day)

        ledger.mark_to_market(day, bar.close, vix)
        exit_pricer = self._exit_pricer(state, day)

        limit = self.config.risk.emergency_drawdown_pct
        if limit is not None and not state.halted and state.peak_equity > 0:
            drawdown = (state.peak_equity - state.equity) / state.peak_equity
            if drawdown >= limit:
                logger.warning(f"Emergency stop on {day}: drawdown {drawdown:.2%} >= {limit:.2%}")
                ledger.close_all(day, CloseReason.EmergencyStop, exit_pricer)
                state.halted = True

        ledger.apply_exit_rules(day, exit_pricer)
        ledger.update_equity()

        state.daily_pnl.append(state.realized_pnl - realized_before)
        state.last_bar_pnl_pct = (state.equity - equity_before) / equity_before if equity_before > 0 else 0.0
        state.pnl_history, state.pnl_last = ledger.pnl.export_history()
        self._check_limits(ledger, day, bar.close, vix)

    def _entries_allowed(self, state: PortfolioState) -> bool:
        if state.halted:
            return False
        goal = self.config.strategy.weekly_premium_goal
        if goal is not None and state.weekly_premium >= goal:
            logger.debug(f"Weekly premium goal reached ({state.weekly_premium:.2f} >= {goal:.2f})")
            return False
        return True

    def _check_limits(self, ledger: PositionLedger, day: date, price: float, vix: float) -> None:
        """Log risk-limit breaches when they start and clear; count each new breach."""
        state = ledger.state
        alerts = []
        if ledger.open_positions:
            portfolio = ledger.pnl.calculate_portfolio_pnl(
                ledger.open_positions, price, vix, day, state.daily_pnl, state.initial_capital
            )
            alerts = check_risk_limits(portfolio, ledger.open_positions, price, state.equity, self.config.risk.limits)

        active = []
        for alert in alerts:
            active.append(alert.key)
            if alert.key not in state.active_alerts:
                state.alert_counts[alert.kind.value] = state.alert_counts.get(alert.kind.value, 0) + 1
                logger.warning(f"Risk limit on {day}: {alert.message} ({alert.severity})")
        for key in state.active_alerts:
            if key not in active:
                logger.info(f"Risk limit cleared on {day}: {key}")
        state.active_alerts = active

    def _candidate_quote(self, candidate: TradeCandidate, day: date) -> Optional[QuoteSnapshot]:
        short_q = self._fetch(
            lambda: self.data.get_option_quote(self.symbol, candidate.short_strike, candidate.expiration_date, day, candidate.right)
        )
        if short_q is None or candidate.long_strike is None:
            return short_q
        long_q = self._fetch(
            lambda: self.data.get_option_quote(self.symbol, candidate.long_strike, candidate.expiration_date, day, candidate.right)
        )
        if long_q is None:
            return None
        return combine_vertical(short_q, long_q)

    def _reject(self, state: PortfolioState, candidate: TradeCandidate, verdict: RealismVerdict, day: date) -> None:
        state.candidates_rejected += 1
        for code in verdict.codes:
            state.rejection_counts[code] = state.rejection_counts.get(code, 0) + 1
        logger.info(
            f"Rejected {candidate.strategy.value} {candidate.short_strike}/{candidate.long_strike} on {day}: "
            f"{', '.join(verdict.codes)}"
        )

    def _try_open(self, ledger: PositionLedger, candidate: TradeCandidate, bar: DailyBar, vix: float, day: date) -> None:
        state = ledger.state
        quote = self._candidate_quote(candidate, day)
        if quote is None:
            self._record_gap(state, day, "quote", f"quote {candidate.right} {candidate.short_strike}/{candidate.long_strike} exp {candidate.expiration_date}")
            return

        state.candidates_evaluated += 1
        dte = days_to_expiration(day, candidate.expiration_date)
        greeks = self.pricing.theoretical_greeks(
            bar.close, candidate.short_strike, dte, vix / 100.0, self.config.pnl.risk_free_rate, candidate.right
        )
        earnings_days = self.earnings.days_until_earnings(self.symbol, day)
        sizing = self.risk.size(state.capital, candidate.max_loss_per_contract, vix, earnings_days)
        time_ok = in_execution_window(
            quote.observed_at,
            self.config.engine.entry_window_start,
            self.config.engine.entry_window_end,
            self.config.engine.tz,
        )
        verdict = evaluate(
            quote,
            greeks.delta,
            sizing.vix_context,
            SizingContext(
                scale_used=sizing.scale_used,
                requested_size=sizing.requested_size,
                baseline_size=sizing.baseline_size,
                earnings_days=earnings_days,
                daily_loss_pct=state.last_bar_pnl_pct,
            ),
            time_ok,
            self.config.realism,
        )
        if not verdict.ok:
            state.skipped_premium += max(quote.mid, 0.0) * sizing.requested_size * candidate.multiplier
            self._reject(state, candidate, verdict, day)
            return

        try:
            fill = self.slippage.fill(quote, "SELL", sizing.requested_size, legs=candidate.legs)
        except InvalidQuote as e:
            logger.warning(f"Fill refused for {candidate.strategy.value} on {day}: {e}")
            state.candidates_rejected += 1
            state.skipped_premium += max(quote.mid, 0.0) * sizing.requested_size * candidate.multiplier
            return
        state.candidates_filled += 1
        state.slippage_cost += (quote.mid - fill.price) * fill.qty * candidate.multiplier
        ledger.open(candidate, verdict, fill, day, vix)

    def _exit_pricer(self, state: PortfolioState, day: date) -> Callable[[Position, CloseReason], Optional[float]]:
        """Buy-back price from the day's quotes through the buy ladder; None when no usable quote."""
        tick = self.config.slippage.tick
        attempt = self.config.slippage.fill_attempt

        def price(position: Position, reason: CloseReason) -> Optional[float]:
            q = self._fetch(
                lambda: self.data.get_option_quote(position.symbol, position.short_strike, position.expiration_date, day, position.right)
            )
            if q is not None and position.long_strike is not None:
                long_q = self._fetch(
                    lambda: self.data.get_option_quote(position.symbol, position.long_strike, position.expiration_date, day, position.right)
                )
                q = combine_vertical(q, long_q) if long_q is not None else None
            if q is None:
                return None
            ladder = buy_ladder(q.bid, q.ask, tick)
            if not ladder:
                return None
            fill_price = ladder[min(attempt, len(ladder)) - 1]
            state.slippage_cost += (fill_price - q.mid) * position.quantity * position.multiplier
            return fill_price

        return price

    # -- results -------------------------------------------------------

    def _metrics(self, state: PortfolioState) -> Dict[str, Any]:
        initial = state.initial_capital
        return {
            "initial_capital": initial,
            "final_capital": state.capital,
            "realized_pnl": state.realized_pnl,
            "total_return_pct": (state.capital - initial) / initial * 100.0 if initial > 0 else 0.0,
            "max_drawdown_pct": state.max_drawdown * 100.0,
            "sharpe_ratio": sharpe_ratio(state.daily_pnl, initial, self.config.pnl.risk_free_rate),
            "win_rate_pct": state.win_rate * 100.0,
            "total_trades": len(state.closed_positions),
            "open_positions": len(state.open_positions),
            "candidates_rejected": state.candidates_rejected,
            "rejections_by_reason": dict(state.rejection_counts),
            "data_gaps": state.total_gaps,
            "weekly_premium": state.weekly_premium,
            "monthly_premium": state.monthly_premium,
            "risk_alerts": dict(state.alert_counts),
            **summarize(state).as_metrics(),
        }

    def _result(self, state: PortfolioState, completed: bool, bars: int, last: Optional[date]) -> RunResult:
        ledger = PositionLedger(state, PnLEngine(self.config.pnl, self.pricing), self.config.exits)
        return RunResult(
            run_id=self.run_id,
            completed=completed,
            state=state,
            bars_processed=bars,
            last_processed_date=last,
            metrics=self._metrics(state),
            trades=ledger.trades_frame(),
        )
