"""
Production Kernel

Material allocation and shelf inventory movement for production orders:
- Cross-order material requirement grouping
- Operator delivery ledgers with derived quantities
- Exact-sum allocation of pooled deliveries
- Non-negative shelf stock with all-or-nothing move batches
- pending -> in_progress -> completed order lifecycle
"""

__version__ = "0.1.0"
