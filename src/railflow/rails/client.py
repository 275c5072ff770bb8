"""
Rail Service Client

HTTP client for the external funding-source and history stores. Implements
both collaborator interfaces so the resolver can run against a remote
directory exactly as it runs against the in-memory one.
"""

import logging
from typing import List, Optional

import httpx
from pydantic import ValidationError

from railflow.config import config
from railflow.errors import CollaboratorUnavailableError
from railflow.rails.catalog import RailCatalog
from railflow.rails.history import HistoryProvider
from railflow.rails.models import FundingSource, HistoryStats


logger = logging.getLogger(__name__)


class RailServiceClient(RailCatalog, HistoryProvider):
    """
    Client for the Rail Service.
    
    Every call carries a timeout; transport errors, HTTP error statuses and
    malformed payloads surface as CollaboratorUnavailableError. No retries
    happen here.
    """
    
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize rail service client.
        
        Args:
            base_url: Base URL of rail service (default: from config)
            timeout: Per-request timeout in seconds (default: from config)
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url or f"http://{config.rail_service_host}:{config.rail_service_port}"
        self.timeout = timeout if timeout is not None else config.collaborator_timeout_seconds
        self.transport = transport
    
    def list_eligible(self, user_id: str) -> List[FundingSource]:
        data = self._get(f"/rails/{user_id}", params={"eligible_only": "true"})
        try:
            sources = [FundingSource.model_validate(item) for item in data]
        except (ValidationError, TypeError) as e:
            logger.error(f"Malformed rail payload for {user_id}: {e}")
            raise CollaboratorUnavailableError(f"Rail service returned malformed sources: {e}")
        
        logger.info(f"Fetched {len(sources)} eligible rails for user: {user_id}")
        return sources
    
    def stats_for(self, user_id: str, merchant_id: Optional[str]) -> HistoryStats:
        params = {"merchant_id": merchant_id} if merchant_id else None
        data = self._get(f"/history/{user_id}", params=params)
        try:
            stats = HistoryStats.model_validate(data)
        except ValidationError as e:
            logger.error(f"Malformed history payload for {user_id}: {e}")
            raise CollaboratorUnavailableError(f"Rail service returned malformed history: {e}")
        
        logger.info(f"Fetched history for user: {user_id}")
        return stats
    
    def _get(self, path: str, params: Optional[dict] = None):
        try:
            with httpx.Client(base_url=self.base_url, transport=self.transport) as client:
                response = client.get(path, params=params, timeout=self.timeout)
                response.raise_for_status()
                return response.json()
        except httpx.TimeoutException as e:
            logger.error(f"Rail service timed out on {path}: {e}")
            raise CollaboratorUnavailableError(f"Rail service timeout on {path}")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Rail service request failed on {path}: {e}")
            raise CollaboratorUnavailableError(f"Rail service error on {path}: {e}")
