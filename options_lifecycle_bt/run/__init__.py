"""
Run layer: orchestrator, checkpoints, logging setup
"""

from .checkpoint import Checkpoint, CheckpointManager, config_fingerprint, generate_run_id
from .audit import RealismAuditSummary, summarize
from .logs import setup_logging, attach_run_log, detach_run_log
from .orchestrator import BacktestOrchestrator, CancellationToken, RunResult

__all__ = [
    "Checkpoint",
    "CheckpointManager",
    "config_fingerprint",
    "generate_run_id",
    "RealismAuditSummary",
    "summarize",
    "setup_logging",
    "attach_run_log",
    "detach_run_log",
    "BacktestOrchestrator",
    "CancellationToken",
    "RunResult",
]
