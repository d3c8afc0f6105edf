"""
beacon

Package racine du backend de télémétrie Beacon (multi-tenant).

Rôle (fonctionnel) :
- Les opérateurs humains gèrent projets, membres et métriques (token de session).
- Les applications instrumentées envoient événements et sessions sous la clé API de leur projet.
- Les événements alimentent le registre de devices et des métriques agrégées par bucket temporel.

Organisation (haute-level) :
- beacon.api      : routes FastAPI (contrats HTTP, dépendances, pipeline identité -> policy)
- beacon.core     : briques transverses (settings, errors, logs, credentials, geo, rate-limit)
- beacon.db       : base SQLAlchemy, session async, unité de travail, upsert par dialecte
- beacon.models   : modèles ORM
- beacon.schemas  : schémas Pydantic (entrées/sorties API)
- beacon.services : logique métier (identité, policy, devices, events, metrics, comptes, projets)
"""
