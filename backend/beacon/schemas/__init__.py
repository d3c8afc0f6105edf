"""
beacon.schemas

Package des schémas API (Pydantic).

Rôle (fonctionnel) :
- Modèles d’entrée/sortie HTTP (validation + sérialisation).
- Séparés des modèles ORM (beacon.models) : la persistance ne fuit pas dans le contrat HTTP
  (ex : password_hash, api_key, dimensions_key).
"""
