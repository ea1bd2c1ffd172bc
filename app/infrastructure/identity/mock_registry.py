import json
import logging
import os
import threading
from typing import Any, Dict, List, Optional

from ...application.ports.identity_registry import IdentityRegistry, IdentityRecord
from ...utils import mask_phone_number

logger = logging.getLogger(__name__)

NID_DATA_FILE = "nid_data.json"
MOBILE_MAPPING_FILE = "mobile_nid_mapping.json"


class MockIdentityRegistry(IdentityRegistry):
    """Identity lookups against a static JSON dataset, loaded once per instance."""

    def __init__(self, data_path: str):
        self.data_path = data_path
        self._lock = threading.Lock()
        self._records: Optional[List[IdentityRecord]] = None
        self._mappings: Optional[List[Dict[str, Any]]] = None

    def _read(self, filename: str) -> List[Dict[str, Any]]:
        path = os.path.join(self.data_path, filename)
        if not os.path.exists(path):
            logger.warning(f"Mock identity file not found: {path}")
            return []
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _load(self) -> None:
        with self._lock:
            if self._records is not None:
                return
            self._records = [IdentityRecord.from_dict(item) for item in self._read(NID_DATA_FILE)]
            self._mappings = self._read(MOBILE_MAPPING_FILE)
            logger.info(f"Loaded {len(self._records)} identity records and {len(self._mappings)} mobile mappings")

    def resolve(self, external_id: str) -> Optional[IdentityRecord]:
        if not external_id:
            return None
        self._load()
        for record in self._records:
            if external_id in (record.nid_number, record.birth_certificate_number):
                return record
        logger.warning("Identity record not found")
        return None

    def cross_check(self, phone: str, external_id: str) -> bool:
        self._load()
        for mapping in self._mappings:
            if (
                mapping.get("mobile_number") == phone
                and mapping.get("nid_number") == external_id
                and mapping.get("is_valid")
            ):
                return True

        record = self.resolve(external_id)
        if record is not None and record.mobile_number == phone:
            return True

        logger.warning(f"Mobile {mask_phone_number(phone)} does not match the identity record")
        return False
