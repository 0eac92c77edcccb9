"""
Aegis Banking Core

Ledger and transfer processing engine: account provisioning, transfer
settlement and reversal, and loan origination with level-payment
amortization. All monetary values use Decimal.
"""

__version__ = "1.0.0"
