"""
Provisioning Pipeline — ImageEngine account setup

Turns one validated ProvisioningRequest into a subscription plus its CDN
configuration by chaining dependent CoreAPI calls:

    Subscription ──> Domain ──> Origin ──> DemoRun ──> [LeadGen]
        ──> [Password reset email] ──> AWS regions ──> DNS "A" records

Each step consumes identifiers produced by earlier steps. A run is an explicit
state machine:

    START → SUBSCRIPTION_CREATED → DOMAIN_CREATED → ORIGIN_CREATED
          → DEMO_RUN_CREATED → COMPLETE
    any step failure → FAILED (failed_step recorded)

Resources created before a failure stay in the CoreAPI; nothing is rolled
back. The ProvisioningError raised on failure carries the partial results.
"""

from __future__ import annotations
import enum
import logging
import secrets
import string
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from .coreapi import (
    CoreAPIError,
    DNSRecord,
    ImageEngineService,
    NewDemoRun,
    NewDomain,
    NewLeadGen,
    NewOrigin,
    NewSubscription,
    UserService,
    deployable_regions,
)
from .errors import ProvisioningError
from .validators import parse_origin_url, require_fields

logger = logging.getLogger(__name__)

# Generated CDN hostnames: <8 random [a-z0-9]>.cdn
DOMAIN_CHARSET = string.ascii_lowercase + string.digits
GENERATED_DOMAIN_LENGTH = 8
GENERATED_DOMAIN_TLD = "cdn"


def generate_cname(length: int = GENERATED_DOMAIN_LENGTH) -> str:
    """Generate a random CDN label such as ``fydzoku1.cdn``.

    Collisions are not checked against the CoreAPI.
    """
    label = "".join(secrets.choice(DOMAIN_CHARSET) for _ in range(length))
    return f"{label}.{GENERATED_DOMAIN_TLD}"


class PipelineState(enum.Enum):
    START = "start"
    SUBSCRIPTION_CREATED = "subscription_created"
    DOMAIN_CREATED = "domain_created"
    ORIGIN_CREATED = "origin_created"
    DEMO_RUN_CREATED = "demo_run_created"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class ProvisioningRequest:
    """Validated input for one pipeline run.

    Attributes:
        user_id: CoreAPI ID of the logged-in user
        account_name: Name of the new subscription
        origin_url: Origin URL without trailing slashes
        url_type: Scheme of the origin URL (http/https)
        raw_origin: Origin exactly as submitted (recorded on the demo run)
    """
    user_id: int
    account_name: str
    origin_url: str
    url_type: str
    raw_origin: str
    demo_id: Optional[str] = None
    campaign_name: Optional[str] = None
    query_string: Optional[str] = None
    domain: Optional[str] = None

    @classmethod
    def from_body(cls, body: Mapping[str, Any], user_id: int) -> "ProvisioningRequest":
        """Validate a request body from the control panel.

        Raises:
            ValidationError: If accountName/origin are missing or origin is not a URL
        """
        require_fields(["accountName", "origin"], body)
        origin_url, url_type = parse_origin_url(body["origin"])
        return cls(
            user_id=user_id,
            account_name=body["accountName"],
            origin_url=origin_url,
            url_type=url_type,
            raw_origin=body["origin"],
            demo_id=body.get("demoID"),
            campaign_name=body.get("campaignName"),
            query_string=body.get("queryString"),
            domain=body.get("domain"),
        )


@dataclass
class ProvisioningResult:
    """Aggregated CoreAPI results of a run."""
    status: int = 201
    success: bool = True
    message: Optional[str] = None
    user: Optional[Dict[str, Any]] = None
    subscription: Optional[Dict[str, Any]] = None
    domain: Optional[Dict[str, Any]] = None
    origin: Optional[Dict[str, Any]] = None
    demo: Optional[Dict[str, Any]] = None
    lead_gen: Optional[Dict[str, Any]] = None
    dns: Any = None

    def to_result(self) -> Dict[str, Any]:
        return {
            "user": self.user,
            "subscription": self.subscription,
            "origin": self.origin,
            "domain": self.domain,
            "dns": self.dns,
            "demo": self.demo,
            "leadGen": self.lead_gen,
        }


def _checked(body: Dict[str, Any], step: str) -> Any:
    """Return ``body["data"]``, raising if the CoreAPI rejected the request."""
    if not isinstance(body, dict):
        raise CoreAPIError(None, "unexpected response body", step)
    if body.get("success") is False:
        raise CoreAPIError(body.get("status"), body.get("message") or "request rejected", step)
    data = body.get("data")
    return data if data is not None else {}


def _require_id(record: Optional[Dict[str, Any]], step: str) -> int:
    if not record or record.get("id") is None:
        raise CoreAPIError(None, "response did not include a record id", step)
    return record["id"]


class ProvisioningPipeline:
    """Run the ordered CoreAPI calls for one new ImageEngine subscription.

    A pipeline instance is single-use; create one per request.

    Usage:
        pipeline = ProvisioningPipeline(ImageEngineService(client), UserService(client))
        result = pipeline.run(request, send_password_reset=True)
    """

    def __init__(
        self,
        imageengine: ImageEngineService,
        users: UserService,
        cname_factory: Callable[[], str] = generate_cname,
    ):
        self.imageengine = imageengine
        self.users = users
        self.cname_factory = cname_factory
        self.state = PipelineState.START
        self.failed_step: Optional[str] = None
        self.completed_steps: List[str] = []
        self._current_step: Optional[str] = None

    def run(self, request: ProvisioningRequest, send_password_reset: bool = False) -> ProvisioningResult:
        """Create subscription, domain, origin, demo run, lead gen and DNS records.

        Args:
            request: Validated provisioning request
            send_password_reset: Send a password reset email to the account owner
                (SSO account created during this session)

        Returns:
            ProvisioningResult with every sub-result

        Raises:
            ProvisioningError: When any step fails; earlier steps are kept
        """
        if self.state is not PipelineState.START:
            raise RuntimeError(f"Pipeline already ran (state={self.state.value})")

        result = ProvisioningResult()
        try:
            self._provision(request, result, send_password_reset)
        except Exception as exc:
            step = self._current_step or "unknown"
            self.state = PipelineState.FAILED
            self.failed_step = step
            logger.error(
                f"Provisioning failed at step '{step}' for user {request.user_id} "
                f"(completed: {', '.join(self.completed_steps) or 'none'}): {exc}"
            )
            raise ProvisioningError(step, self.completed_steps, result.to_result()) from exc

        self.state = PipelineState.COMPLETE
        logger.info(f"Provisioning complete for user {request.user_id}")
        return result

    def _begin(self, step: str) -> None:
        self._current_step = step

    def _complete(self, step: str, state: Optional[PipelineState] = None) -> None:
        self.completed_steps.append(step)
        if state is not None:
            self.state = state
            logger.info(f"Provisioning state -> {state.value}")

    def _provision(self, request: ProvisioningRequest, result: ProvisioningResult, send_password_reset: bool) -> None:
        cname = self.cname_factory()

        # 1. Subscription
        self._begin("subscription")
        body = self.imageengine.create_subscription(NewSubscription(
            user_id=request.user_id,
            account_name=request.account_name,
            demo_id=request.demo_id,
        ))
        data = _checked(body, "subscription")
        subscription = data.get("subscription")
        subscription_id = _require_id(subscription, "subscription")
        result.user = data.get("user")
        result.subscription = subscription
        result.status = body.get("status", result.status)
        result.success = body.get("success", result.success)
        result.message = body.get("message")
        self._complete("subscription", PipelineState.SUBSCRIPTION_CREATED)

        # 2. Domain configuration
        self._begin("domain")
        domain = _checked(self.imageengine.create_domain(NewDomain(
            subscription_id=subscription_id,
            url=request.origin_url,
            cname=cname,
            url_type=request.url_type,
        )), "domain")
        domain_id = _require_id(domain, "domain")
        result.domain = domain
        self._complete("domain", PipelineState.DOMAIN_CREATED)

        # 3. Origin configuration, pointing at the domain configuration
        self._begin("origin")
        origin = _checked(self.imageengine.create_origin(NewOrigin(
            subscription_id=subscription_id,
            url=request.origin_url,
            url_type=request.url_type,
            origin_conf_id=domain_id,
        )), "origin")
        _require_id(origin, "origin")
        result.origin = origin
        self._complete("origin", PipelineState.ORIGIN_CREATED)

        # 4. Demo run
        self._begin("demo_run")
        result.demo = _checked(self.imageengine.create_demo_run(NewDemoRun(
            subscription_id=subscription_id,
            demo_id=request.demo_id,
            url=request.raw_origin,
            domain=request.domain,
        )), "demo_run")
        self._complete("demo_run", PipelineState.DEMO_RUN_CREATED)

        # 5. Lead gen referrer
        if request.query_string:
            self._begin("lead_gen")
            result.lead_gen = _checked(self.imageengine.create_lead_gen(NewLeadGen(
                subscription_id=subscription_id,
                campaign_name=request.campaign_name or "",
                url_query_string=request.query_string,
            )), "lead_gen")
            self._complete("lead_gen")

        # 6. Passwordless SSO accounts get a way to set a password
        if send_password_reset:
            self._begin("password_reset")
            email = (result.user or {}).get("email")
            if not email:
                raise CoreAPIError(None, "subscription response did not include the user email", "password_reset")
            self.users.send_password_reset_email(email)
            self._complete("password_reset")

        # 7. DNS records in every deployable region
        self._begin("regions")
        regions = deployable_regions(self.imageengine.get_aws_regions())
        self._complete("regions")

        if not regions:
            logger.warning(f"No deployable AWS regions; skipping DNS records for {cname}")
            return

        self._begin("dns")
        result.dns = _checked(self.imageengine.create_dns_records(
            DNSRecord(domain=cname, region=region) for region in regions
        ), "dns")
        self._complete("dns")
