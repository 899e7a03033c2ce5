"""
Transformation Kernel

Stock ledger, stock transaction journal and lineage store for inventory
transformations:
- Per item x warehouse balances with row lock + version compare-and-swap
- Append-only stock movements with before/after snapshots
- Append-only input -> output lineage edges
- Structured logging and a typed error hierarchy
"""

__version__ = "0.1.0"
