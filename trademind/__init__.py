"""
TradeMind - Trading Journal Engine

The local-first state and sync engine behind a personal trading journal:
the ledger of trade records, its durable local mirror, the single
Google Drive backup kept in step with it, and the tilt interlock that
enforces a cooldown after quick consecutive losses.

DESIGN PRINCIPLES:
1. Local first: a mutation is durable before it returns
2. The remote backup never fails a local action
3. One change event per mutation, shared by every consumer
4. Provider errors are normalized at the boundary
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "TradeMind Team"
