import logging
from typing import Optional

import httpx

from ...application.ports.identity_registry import IdentityRegistry, IdentityRecord
from ...exceptions import PersistenceFailure

logger = logging.getLogger(__name__)


class RemoteIdentityRegistry(IdentityRegistry):
    """Client for a national identity registry exposing:

    GET {base}/identities/{external_id}        -> 200 identity JSON | 404
    GET {base}/identities/{external_id}/phones/{phone} -> {"match": bool}
    """

    def __init__(self, base_url: str, api_key: str = "", timeout: float = 10.0, transport: Optional[httpx.BaseTransport] = None):
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self.client = httpx.Client(base_url=base_url.rstrip("/"), headers=headers, timeout=timeout, transport=transport)

    def resolve(self, external_id: str) -> Optional[IdentityRecord]:
        if not external_id:
            return None
        try:
            resp = self.client.get(f"/identities/{external_id}")
            if resp.status_code == 404:
                return None
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error(f"Identity registry lookup failed: {exc}")
            raise PersistenceFailure("identity registry unavailable") from exc
        return IdentityRecord.from_dict(resp.json())

    def cross_check(self, phone: str, external_id: str) -> bool:
        try:
            resp = self.client.get(f"/identities/{external_id}/phones/{phone}")
            if resp.status_code == 404:
                return False
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error(f"Identity registry phone check failed: {exc}")
            raise PersistenceFailure("identity registry unavailable") from exc
        return bool(resp.json().get("match"))

    def close(self) -> None:
        self.client.close()
