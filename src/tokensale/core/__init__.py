"""
tokensale core: errors, logging, secp256k1 helpers and ledger contracts.
"""

__all__ = []
