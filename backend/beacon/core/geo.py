from __future__ import annotations

from typing import Mapping, Optional, Protocol

"""
Core Geo.

Rôle (fonctionnel) :
- Contrat de géolocalisation IP -> code pays, consommé par le registre de devices.
- Implémentation par défaut : table de préfixes (pas de vraie base GeoIP).

Notes :
- La fonction doit rester pure et sans effet de bord : elle est appelée dans la transaction d’ingestion.
"""


class GeoLookup(Protocol):
    def ip_to_country(self, ip: Optional[str]) -> Optional[str]:
        ...


# Plages de documentation (RFC 5737) : utiles en démo et en test
DEFAULT_PREFIXES: Mapping[str, str] = {
    "192.0.2.": "US",
    "198.51.100.": "UK",
    "203.0.113.": "JP",
}


class PrefixGeoLookup:
    def __init__(self, prefixes: Mapping[str, str] | None = None) -> None:
        self._prefixes = dict(DEFAULT_PREFIXES if prefixes is None else prefixes)

    def ip_to_country(self, ip: Optional[str]) -> Optional[str]:
        if not ip:
            return None
        ip = ip.strip()
        for prefix, country in self._prefixes.items():
            if ip.startswith(prefix):
                return country
        return None


default_geo_lookup = PrefixGeoLookup()
