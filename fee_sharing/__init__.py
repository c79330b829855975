"""
fee_sharing — pull-based fee distribution ledger with balance-delta harvesting.

Only metadata is exported here. Import the engine pieces explicitly:

    from fee_sharing.program import FeeVaultProgram
    from fee_sharing.runtime import distribution
"""

from .version import VERSION_TUPLE, __version__

__all__ = ["__version__", "VERSION_TUPLE"]
