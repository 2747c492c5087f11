"""
Procurement Kernel - quote-to-contract lifecycle engine

A persisted, transaction-safe engine for:
- Quote requests and contractor proposals with a bounded revision cycle
- Contract formation from accepted proposals and dual-party signing
- Escrow crediting with durable payment idempotency
- Material requests requiring independent homeowner and supervisor approval
"""

__version__ = "0.1.0"
