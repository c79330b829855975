"""
fee_sharing.runtime — accounting, harvesting and forwarding.

Modules
-------
- distribution : initialize / fund / claim / pending / is_beneficiary
- harvest      : balance-delta adapter and pre-wired known sources
- relay        : allow-listed forwarding signed by the ledger
- modules      : external module host with signer checks
- events       : notification records, sink, CBOR encoding
"""

from . import distribution, events, harvest, modules, relay

__all__ = ["distribution", "events", "harvest", "modules", "relay"]
