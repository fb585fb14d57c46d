"""
Module ORM Registry (``backoffice_modules._orm_registry``).

Responsibility
--------------
Ensure every SQLAlchemy ORM model (kernel and modules) is imported so that
``Base.metadata`` contains its table before ``create_tables()`` runs.

Architecture position
---------------------
**Modules layer** -- utility.  Imported lazily by
``backoffice_kernel.db.engine.create_tables`` and by ``tests/conftest.py``.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``backoffice_modules.*.orm`` module.

    Kernel tables go first because module tables reference them
    (e.g. attendance_records.user_id -> users.id).  Idempotent.
    """
    import backoffice_kernel.models  # noqa: F401
    # fmt: off
    import backoffice_modules.staff.orm  # noqa: F401
    # fmt: on
