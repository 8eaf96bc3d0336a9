"""
Job-work kernel

Voucher tracking for garment job work:
- Typed voucher event model (dispatch / receive / forward)
- Payment records keyed to forwarded work
- Financial-year scoped voucher numbering
- Structured logging and typed errors shared by all layers
"""

__version__ = "0.1.0"
