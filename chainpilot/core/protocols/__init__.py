from .agni import AgniRouter
from .lendle import LendleProtocol
from .meth_staking import MethStaking

__all__ = ["AgniRouter", "LendleProtocol", "MethStaking"]
