"""
Backoffice Kernel

The authoritative business-logic layer for a multi-tenant restaurant/retail
back office:
- Inventory ledger with an append-only movement log
- Compensating reversals (never in-place edits)
- Business relationships gating cross-tenant transfers
- All-or-nothing transfer acceptance
- Recipe costing and modifier assignment
"""

__version__ = "0.1.0"
