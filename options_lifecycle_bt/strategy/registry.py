"""
Name -> class registry for candidate strategies.

Modules register their strategy with @register_strategy at import time; the package __init__
imports every built-in module, so config names resolve without dynamic discovery.
"""

from typing import Any, Dict, List, Mapping, Optional, Type
import logging

from ..config.schemas import StrategyConfig
from .base import CandidateStrategy

logger = logging.getLogger(__name__)

_strategy_registry: Dict[str, Type[CandidateStrategy]] = {}


def register_strategy(name: str):
    """
    Class decorator: make a CandidateStrategy available under `name` in StrategyConfig.names.

    Example:
        @register_strategy("put_credit_spread")
        class PutCreditSpreadStrategy(CandidateStrategy):
            tag = StrategyTag.PutCreditSpread
    """
    def decorator(cls: Type[CandidateStrategy]):
        if not (isinstance(cls, type) and issubclass(cls, CandidateStrategy)):
            raise TypeError(f"{cls!r} is not a CandidateStrategy subclass")
        if getattr(cls, "tag", None) is None:
            raise TypeError(f"{cls.__name__} must declare a StrategyTag as `tag`")
        previous = _strategy_registry.get(name)
        if previous is not None and previous is not cls:
            logger.warning(f"Strategy '{name}' re-registered: {previous.__name__} -> {cls.__name__}")
        _strategy_registry[name] = cls
        return cls
    return decorator


def list_strategies() -> List[str]:
    return sorted(_strategy_registry)


def get_strategy(name: str, params: Optional[Mapping[str, Any]] = None) -> CandidateStrategy:
    """
    Instantiate a registered strategy with its params.

    Raises:
        ValueError: unknown name, or the strategy rejected its params
    """
    strategy_cls = _strategy_registry.get(name)
    if strategy_cls is None:
        raise ValueError(f"Unknown strategy: '{name}'. Available strategies: {', '.join(list_strategies()) or 'none'}")
    try:
        return strategy_cls(dict(params or {}))
    except (TypeError, ValueError) as e:
        raise ValueError(f"Failed to instantiate strategy '{name}': {e}") from e


def build_strategies(cfg: StrategyConfig) -> List[CandidateStrategy]:
    """
    One instance per configured name, in config order (candidate order is part of run determinism).

    Raises:
        ValueError: a name is unknown or listed twice, or params are given for an unlisted strategy
    """
    seen = set()
    for name in cfg.names:
        if name in seen:
            raise ValueError(f"Strategy '{name}' is listed more than once")
        seen.add(name)
    stray = sorted(set(cfg.params) - seen)
    if stray:
        raise ValueError(f"Params given for strategies not in names: {', '.join(stray)}")

    strategies = [get_strategy(name, cfg.params.get(name)) for name in cfg.names]
    logger.debug(f"Strategies: {', '.join(type(s).__name__ for s in strategies)}")
    return strategies
