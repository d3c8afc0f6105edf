"""
beacon.services

Package “services” : logique applicative indépendante du transport HTTP.

Cœur du pipeline :
- identity : credentials -> identité typée (UserIdentity | ProjectKeyIdentity)
- policy   : décision pure allow / deny (rôles par projet, isolation des tenants)
- devices  : registre des devices (upsert atomique)
- events   : validation + ingestion (unitaire / batch atomique) + lecture
- metrics  : buckets, upsert des métriques, séries temporelles, rollups

Gestion :
- accounts, projects, definitions, telemetry (raccourcis SDK)

Principe :
- beacon.api = transport HTTP ; beacon.services = orchestration métier (testable sans HTTP)
"""
