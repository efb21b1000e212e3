from .yield_strategy import YieldStrategy, StrategyPosition, StrategyState

__all__ = ["YieldStrategy", "StrategyPosition", "StrategyState"]
