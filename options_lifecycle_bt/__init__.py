"""
Options Trade-Lifecycle Backtest Engine

A deterministic, resumable bar-by-bar engine where candidate option trades must pass a realism gate
before they are filled through a conservative slippage ladder and booked into a position ledger.
"""

__version__ = "0.1.0"
