"""
tokensale sales.

- TokenSale: the sale lifecycle engine
- Policies: fixed price, sealed-bid auction and pre-liquid variant rules
- Sealed bids: encryption scheme used by auctions
- SaleFactory: deploys sales wired to the protocol services
"""

__all__ = []
