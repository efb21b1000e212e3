from .hybrid import HybridAllocationOptimizer, OptimizationQuote, optimize_split

__all__ = ["HybridAllocationOptimizer", "OptimizationQuote", "optimize_split"]
