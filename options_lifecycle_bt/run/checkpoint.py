"""
Checkpoints: versioned JSON snapshots of a run that allow exact resumption.

Each run writes to: <directory>/checkpoint_<run_id>.json

A checkpoint holds the full PortfolioState (open positions, closed log, accumulators and
the P&L engine's VaR history) plus the orchestrator cursor. Files are written to a temp file
and moved into place so a crash mid-write never leaves a truncated checkpoint.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from datetime import date, datetime, timezone
from pathlib import Path
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError, model_validator

from ..config.schemas import OPERATIONAL_SECTIONS, RunConfig
from ..errors import ConfigMismatch, StateCorruption
from ..portfolio.state import PortfolioState

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2
FILE_PREFIX = "checkpoint_"


def config_fingerprint(config: RunConfig) -> str:
    """
    First 12 hex chars of SHA-256 over the canonical JSON of the behavioral config.

    Operational sections (checkpoint location, logging) are excluded: moving a checkpoint
    directory or raising the log level must not block a resume.
    """
    payload = config.model_dump(mode="json", exclude=set(OPERATIONAL_SECTIONS))
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:12]


def generate_run_id(config: RunConfig) -> str:
    """
    Run id from symbol and date range.

    Deliberately independent of the rest of the config so that resuming the same run
    under a changed config is detected as CONFIG_MISMATCH instead of silently starting over.
    """
    e = config.engine
    return f"{e.symbol.upper()}_{e.start:%Y%m%d}_{e.end:%Y%m%d}"


class Checkpoint(BaseModel):
    """Versioned checkpoint record. saved_at is informational and never drives engine behavior."""
    schema_version: Literal[2] = SCHEMA_VERSION
    run_id: str
    symbol: str
    start_date: date
    end_date: date
    last_processed_date: Optional[date] = None
    bars_processed: int = Field(default=0, ge=0)
    gaps_recorded: int = Field(default=0, ge=0)
    config_fingerprint: str
    completed: bool = False
    state: PortfolioState

    capital: float
    running_pnl: float
    win_rate: float
    open_positions_count: int
    saved_at: Optional[datetime] = None

    @classmethod
    def build(
        cls,
        run_id: str,
        config: RunConfig,
        state: PortfolioState,
        last_processed_date: Optional[date],
        bars_processed: int,
        fingerprint: str,
        completed: bool = False,
    ) -> "Checkpoint":
        return cls(
            run_id=run_id,
            symbol=config.engine.symbol.upper(),
            start_date=config.engine.start,
            end_date=config.engine.end,
            last_processed_date=last_processed_date,
            bars_processed=bars_processed,
            gaps_recorded=state.total_gaps,
            config_fingerprint=fingerprint,
            completed=completed,
            state=state,
            capital=state.capital,
            running_pnl=state.realized_pnl,
            win_rate=state.win_rate,
            open_positions_count=len(state.open_positions),
        )

    @model_validator(mode="after")
    def validate_consistency(self):
        if self.last_processed_date is not None and not (self.start_date <= self.last_processed_date <= self.end_date):
            raise ValueError(f"last_processed_date {self.last_processed_date} outside [{self.start_date}, {self.end_date}]")
        if self.capital != self.state.capital:
            raise ValueError(f"capital {self.capital} does not match state capital {self.state.capital}")
        if self.open_positions_count != len(self.state.open_positions):
            raise ValueError("open_positions_count does not match state")
        if self.gaps_recorded != self.state.total_gaps:
            raise ValueError("gaps_recorded does not match state")
        return self


class CheckpointManager:
    """
    Saves, loads and prunes checkpoints in one directory.

    Independent runs (one per symbol/range) have independent files; nothing is shared between them.
    """

    def __init__(self, directory: Union[str, Path] = "checkpoints", keep_completed: int = 5):
        self.directory = Path(directory)
        self.keep_completed = int(keep_completed)

    def path_for(self, run_id: str) -> Path:
        return self.directory / f"{FILE_PREFIX}{run_id}.json"

    def save(self, checkpoint: Checkpoint) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        checkpoint.saved_at = datetime.now(timezone.utc)
        path = self.path_for(checkpoint.run_id)

        fd, tmp = tempfile.mkstemp(prefix=f".{path.stem}.", suffix=".tmp", dir=self.directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(checkpoint.model_dump_json(indent=2))
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

        logger.info(
            f"Checkpoint saved: {checkpoint.run_id} @ {checkpoint.last_processed_date} "
            f"(bars={checkpoint.bars_processed}, capital={checkpoint.capital:.2f}, completed={checkpoint.completed})"
        )
        return path

    def _read(self, path: Path) -> Checkpoint:
        try:
            text = path.read_text(encoding="utf-8")
            return Checkpoint.model_validate_json(text)
        except (ValidationError, ValueError, UnicodeDecodeError) as e:
            logger.error(f"Corrupt checkpoint {path}: {e}")
            raise StateCorruption(f"checkpoint {path} is corrupt: {e}") from e

    def load(self, run_id: str) -> Optional[Checkpoint]:
        """
        Load the checkpoint for run_id, or None if there is none.

        Raises:
            StateCorruption: the file exists but does not deserialize or violates an invariant
        """
        path = self.path_for(run_id)
        if not path.exists():
            return None
        return self._read(path)

    def list_checkpoints(self, symbol: Optional[str] = None) -> List[Checkpoint]:
        """Readable checkpoints (optionally for one symbol), oldest first. Corrupt files are skipped with a warning."""
        if not self.directory.exists():
            return []
        out = []
        for path in sorted(self.directory.glob(f"{FILE_PREFIX}*.json")):
            try:
                cp = self._read(path)
            except StateCorruption:
                logger.warning(f"Skipping unreadable checkpoint {path.name}")
                continue
            if symbol is None or cp.symbol == symbol.upper():
                out.append(cp)
        out.sort(key=lambda c: (c.saved_at or datetime.min.replace(tzinfo=timezone.utc), c.run_id))
        return out

    def load_latest(self, symbol: str, include_completed: bool = False) -> Optional[Checkpoint]:
        candidates = [c for c in self.list_checkpoints(symbol) if include_completed or not c.completed]
        return candidates[-1] if candidates else None

    def verify(self, checkpoint: Checkpoint, fingerprint: str) -> None:
        """
        Raises:
            ConfigMismatch: the checkpoint was written under a different config
        """
        if checkpoint.config_fingerprint != fingerprint:
            logger.error(
                f"Resume rejected for {checkpoint.run_id}: config {checkpoint.config_fingerprint} != {fingerprint}"
            )
            raise ConfigMismatch(checkpoint.run_id, checkpoint.config_fingerprint, fingerprint)

    def finalize(self, checkpoint: Checkpoint) -> Path:
        checkpoint.completed = True
        path = self.save(checkpoint)
        self.cleanup(checkpoint.symbol)
        return path

    def delete(self, run_id: str) -> bool:
        path = self.path_for(run_id)
        if path.exists():
            path.unlink()
            return True
        return False

    def cleanup(self, symbol: Optional[str] = None, keep: Optional[int] = None) -> int:
        """Delete all but the newest `keep` completed checkpoints. Unfinished runs are never touched."""
        keep = self.keep_completed if keep is None else int(keep)
        completed = [c for c in self.list_checkpoints(symbol) if c.completed]
        stale = completed[: max(0, len(completed) - keep)]
        for cp in stale:
            self.delete(cp.run_id)
        if stale:
            logger.info(f"Removed {len(stale)} old completed checkpoint(s)")
        return len(stale)
