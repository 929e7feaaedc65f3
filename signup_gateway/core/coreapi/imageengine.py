"""CoreAPI ImageEngine subscription and CDN configuration operations."""
from __future__ import annotations
import logging
from typing import Any, Dict, Iterable, List

from .client import CoreAPIClient
from .models import (
    DNSRecord,
    NewDemoRun,
    NewDomain,
    NewLeadGen,
    NewOrigin,
    NewSubscription,
    WelcomeEmail,
)

logger = logging.getLogger(__name__)

DEPLOY_ALL = "ALL"


class ImageEngineService:
    """Service for ImageEngine resources owned by the CoreAPI.

    Every method returns the decoded CoreAPI response body.
    """

    def __init__(self, client: CoreAPIClient):
        self.client = client

    def _post(self, path: str, payload: Dict[str, Any], label: str) -> Dict[str, Any]:
        resp = self.client.post(path, json=payload)
        logger.info(f"{label}: {resp.status_code}")
        return resp.json()

    def create_subscription(self, subscription: NewSubscription) -> Dict[str, Any]:
        """Create a subscription; ``data`` holds both ``user`` and ``subscription``."""
        return self._post("/wit/imageengine/admin-create", subscription.to_payload(), "Create subscription")

    def create_domain(self, domain: NewDomain) -> Dict[str, Any]:
        return self._post("/wit_domain_confs", domain.to_payload(), "Create domain")

    def create_origin(self, origin: NewOrigin) -> Dict[str, Any]:
        return self._post("/wit_origins", origin.to_payload(), "Create origin")

    def create_demo_run(self, demo_run: NewDemoRun) -> Dict[str, Any]:
        return self._post("/wit/imageengine/demo-run", demo_run.to_payload(), "Create demo run")

    def create_lead_gen(self, lead_gen: NewLeadGen) -> Dict[str, Any]:
        return self._post("/wit/imageengine/add-lead-gen", lead_gen.to_payload(), "Add lead gen")

    def send_welcome_email(self, email: WelcomeEmail) -> Dict[str, Any]:
        return self._post("/wit/imageengine/send-welcome-email", email.to_payload(), "Send welcome email")

    def get_aws_regions(self) -> List[Dict[str, Any]]:
        """List AWS regions, e.g. ``[{"RegionName": "us-east-1", "Deploy": "ALL"}]``."""
        resp = self.client.get("/wit/imageengine/aws/regions")
        logger.info(f"Get AWS regions: {resp.status_code}")
        return resp.json().get("data") or []

    def create_dns_records(self, records: Iterable[DNSRecord]) -> Dict[str, Any]:
        payload = {
            "action": "CREATE",
            "records": [record.to_payload() for record in records],
        }
        return self._post("/wit/imageengine/resource/record", payload, "Create DNS records")


def deployable_regions(regions: Iterable[Dict[str, Any]]) -> List[str]:
    """Names of the regions flagged ``Deploy=ALL``."""
    return [region["RegionName"] for region in regions if region.get("Deploy") == DEPLOY_ALL]
