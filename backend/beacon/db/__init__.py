"""
beacon.db

Package base de données : Base ORM, engine/session async, types portables et unité de travail.

Contenu :
- base        : DeclarativeBase commune.
- session     : engine async + get_db() (Depends).
- types       : JSON portable, helpers UTC.
- transaction : atomic() / retry_on_conflict() (commit, rollback, traduction des erreurs SQLAlchemy).
- migrations  : Alembic (backend/alembic) via DATABASE_URL_SYNC.
"""
