# app/schemas/common.py
from pydantic import BaseModel
from typing import Any, Dict, List, Optional

class ErrorResponse(BaseModel):
    success: bool = False
    data: Optional[Dict[str, Any]] = None
    error: str
    code: Optional[str] = None
    # Only on 429: seconds to wait and, when a flow stays open, its id
    retry_after: Optional[int] = None
    flow_id: Optional[str] = None
    # Only on 422
    errors: Optional[List[Dict[str, str]]] = None

class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    timestamp: str
    environment: str
    database: Dict[str, Any]
    auth: Dict[str, Any]
