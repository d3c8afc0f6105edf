"""
beacon.api

Routes FastAPI par domaine + dépendances (identité, policy, horloge, géolocalisation).
"""
