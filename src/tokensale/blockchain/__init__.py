"""
tokensale Blockchain Module

Settlement primitives consumed by sales:
- Merkle trees and inclusion proofs for accepted capital and token claims
- Vesting schedules (linear and epoch-based) and the vesting manager
"""

__all__ = []
