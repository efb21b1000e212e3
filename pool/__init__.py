from .liquidity_pool import LiquidityPool, PoolState, SwapQuote, STRATEGY_ASSET, MAX_FEE_BPS

__all__ = ["LiquidityPool", "PoolState", "SwapQuote", "STRATEGY_ASSET", "MAX_FEE_BPS"]
