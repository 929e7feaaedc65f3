"""Typed request payloads for CoreAPI endpoints.

Field names match the CoreAPI JSON contract exactly; ``to_payload()`` returns
the dict that goes on the wire.
"""
from __future__ import annotations
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

SUBSCRIPTION_TYPE = "imgeng"
BASIC_PLAN_ID = "IMAGEENGINE_BASIC"
TRIAL_PAYMENT_TYPE = "TRIAL"
DEFAULT_ORIGIN_NAME = "default"
DEFAULT_TRANSITION_TIME = 300
PASSWORD_RESET_TEMPLATE = "imageengine"


class _Payload:
    def to_payload(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class NewUser(_Payload):
    """New CoreAPI user account.

    ``confirmed=1`` means the user does not need to verify their email.
    """
    username: str
    email: str
    password: str
    country_id: Optional[int] = None
    enabled: int = 1
    user_type: int = 0
    confirmed: int = 1
    user_roles: List[str] = field(default_factory=lambda: ["user"])
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = asdict(self)
        # Names are only sent when known (SSO profiles)
        for key in ("first_name", "last_name"):
            if payload[key] is None:
                del payload[key]
        return payload


@dataclass
class NewSubscription(_Payload):
    user_id: int
    account_name: str
    demo_id: Optional[str] = None
    type: str = SUBSCRIPTION_TYPE
    plan_id: str = BASIC_PLAN_ID
    payment_type: str = TRIAL_PAYMENT_TYPE
    pro_standard: bool = False
    use_defaults: bool = True


@dataclass
class NewDomain(_Payload):
    """Domain configuration; ``url_type`` must match the scheme of ``url``."""
    subscription_id: int
    url: str
    cname: str
    url_type: str
    hostname: str = ""
    origin_conf_id: int = 0
    iam_flag: int = 0
    ie_only_flag: int = 0
    allow_origin_prefix: int = 1
    custom_wildcard_flag: int = 0
    transition_time: int = DEFAULT_TRANSITION_TIME


@dataclass
class NewOrigin(_Payload):
    """Origin configuration.

    ``origin_conf_id`` references the domain configuration this origin serves.
    """
    subscription_id: int
    url: str
    url_type: str
    origin_conf_id: int
    name: str = DEFAULT_ORIGIN_NAME
    hostname: str = ""


@dataclass
class NewDemoRun(_Payload):
    subscription_id: int
    demo_id: Optional[str]
    url: str
    domain: Optional[str] = None


@dataclass
class NewLeadGen(_Payload):
    subscription_id: int
    url_query_string: str
    campaign_name: str = ""


@dataclass
class DNSRecord(_Payload):
    domain: str
    region: str
    type: str = "A"


@dataclass
class WelcomeEmail(_Payload):
    subscription_id: Any
    user_id: Any = None
    website: Optional[str] = None
    demo_id: Optional[str] = None
    current_cms: Optional[str] = None
    delivery_address: Optional[str] = None
    country: Optional[str] = None
