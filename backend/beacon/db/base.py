from sqlalchemy.orm import DeclarativeBase

"""
DB Base.

Rôle (fonctionnel) :
- Classe Base SQLAlchemy commune à tous les modèles (users, projects, devices, events, metrics…).
- Sa metadata est la référence pour Alembic (autogenerate) et pour create_all en test.

Note :
- Les modèles doivent être importés (beacon.models) pour être enregistrés dans la metadata.
"""


class Base(DeclarativeBase):
    pass
