"""Liquid staking pool engine.

- ``stakepool.core``: pure, deterministic pool transitions.
- ``stakepool.state``: canonical encodings, snapshots and the pool token ledger.
- ``stakepool.integration``: the transaction engine and its collaborators.
"""

__version__ = "0.1.0"
