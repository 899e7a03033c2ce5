"""
Module ORM Registry (``transformation_modules._orm_registry``).

Responsibility
--------------
Ensure every SQLAlchemy ORM model is imported so that ``Base.metadata``
contains all table definitions before ``create_tables()`` runs.

Architecture position
---------------------
**Modules layer** -- utility.  Imports kernel models and module ORM
packages.  Called by ``transformation_kernel.db.engine.create_tables``.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every module ``orm`` package.  Idempotent."""
    # Kernel tables first (items, stock balances, stock transactions, lineage)
    import transformation_kernel.models  # noqa: F401
    import transformation_kernel.services.sequence_service  # noqa: F401
    import transformation_modules.transformation.orm  # noqa: F401
