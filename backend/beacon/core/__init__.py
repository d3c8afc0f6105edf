"""
beacon.core

Package “cœur” transverse : ce qui s’applique à tous les endpoints/services sans dépendre d’un domaine.

- settings     : configuration (env / backend/.env), un seul objet `settings`.
- errors       : taxonomie d’erreurs (AppError et sous-classes) + format de payload unique.
- logging      : logs JSON + request_id.
- request_id   : correlation id par requête (ContextVar).
- credentials  : hash de mots de passe, tokens signés (scopes user / api_key), lecture des headers.
- geo          : contrat IP -> pays (implémentation par préfixes).
- rate_limit   : limitation de débit des routes d’ingestion.
"""
