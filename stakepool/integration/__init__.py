"""Imperative shell: collaborators, storage and the transaction engine."""

from .authority import Authorization, BlsAuthorityVerifier, admin_message, bls_pubkey_hex, sign_admin_message
from .config import ConfigError, config_from_mapping, load_config
from .engine import EpochUpdateResult, StakePoolEngine
from .sources import StaticStakeValueSource
from .store import InMemoryAccountStore, JsonFileAccountStore

__all__ = [
    "Authorization",
    "BlsAuthorityVerifier",
    "ConfigError",
    "EpochUpdateResult",
    "InMemoryAccountStore",
    "JsonFileAccountStore",
    "StakePoolEngine",
    "StaticStakeValueSource",
    "admin_message",
    "bls_pubkey_hex",
    "config_from_mapping",
    "load_config",
    "sign_admin_message",
]
