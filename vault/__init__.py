from .interface import Vault, VaultQuoter
from .simulated import SimulatedVault

__all__ = ["Vault", "VaultQuoter", "SimulatedVault"]
