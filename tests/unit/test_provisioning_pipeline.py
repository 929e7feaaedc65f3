"""
Unit tests for signup_gateway/core/provisioning_pipeline.py

Covers step ordering, identifier propagation between steps, optional steps,
and the partial-failure contract (abort, no rollback, failed step reported).
"""
import re
from unittest.mock import MagicMock

import pytest

from signup_gateway.core.coreapi import CoreAPIError, ImageEngineService, UserService
from signup_gateway.core.errors import ProvisioningError, UpstreamError, ValidationError
from signup_gateway.core.provisioning_pipeline import (
    PipelineState,
    ProvisioningPipeline,
    ProvisioningRequest,
    generate_cname,
)


CNAME = "fydzoku1.cdn"


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def imageengine():
    """ImageEngineService double answering every step successfully."""
    service = MagicMock(spec=ImageEngineService)
    service.create_subscription.return_value = {
        "success": True,
        "status": 201,
        "message": "Subscription created",
        "data": {
            "user": {"id": 7, "email": "alice@example.com"},
            "subscription": {"id": 100, "account_name": "Acme"},
        },
    }
    service.create_domain.return_value = {"success": True, "data": {"id": 200, "cname": CNAME}}
    service.create_origin.return_value = {"success": True, "data": {"id": 300}}
    service.create_demo_run.return_value = {"success": True, "data": {"id": 400}}
    service.create_lead_gen.return_value = {"success": True, "data": {"id": 500}}
    service.get_aws_regions.return_value = [
        {"RegionName": "us-east-1", "Deploy": "ALL"},
        {"RegionName": "ap-east-1", "Deploy": "NONE"},
        {"RegionName": "eu-west-1", "Deploy": "ALL"},
    ]
    service.create_dns_records.return_value = {"success": True, "data": [{"region": "us-east-1"}]}
    return service


@pytest.fixture
def users():
    return MagicMock(spec=UserService)


@pytest.fixture
def pipeline(imageengine, users):
    return ProvisioningPipeline(imageengine, users, cname_factory=lambda: CNAME)


def make_request(**overrides):
    body = {
        "accountName": "Acme",
        "origin": "https://www.example.com//",
        "demoID": "demo-1",
        "domain": "www.example.com",
    }
    body.update(overrides)
    return ProvisioningRequest.from_body(body, user_id=7)


# ============================================================================
# Request validation
# ============================================================================

def test_request_strips_trailing_slashes_and_reads_scheme():
    request = make_request()
    assert request.origin_url == "https://www.example.com"
    assert request.url_type == "https"
    assert request.raw_origin == "https://www.example.com//"


@pytest.mark.parametrize("missing", ["accountName", "origin"])
def test_request_requires_fields(missing):
    body = {"accountName": "Acme", "origin": "https://example.com"}
    body[missing] = ""
    with pytest.raises(ValidationError) as excinfo:
        ProvisioningRequest.from_body(body, user_id=7)
    assert missing in excinfo.value.message


@pytest.mark.parametrize("origin", ["example.com", "not a url", "https://"])
def test_request_rejects_unparsable_origin(origin):
    with pytest.raises(ValidationError, match="Unable to parse origin URL"):
        make_request(origin=origin)


# ============================================================================
# Happy path
# ============================================================================

def test_steps_run_in_order(pipeline, imageengine, users):
    pipeline.run(make_request())

    assert [name for name, _a, _k in imageengine.method_calls] == [
        "create_subscription",
        "create_domain",
        "create_origin",
        "create_demo_run",
        "get_aws_regions",
        "create_dns_records",
    ]
    users.send_password_reset_email.assert_not_called()
    assert pipeline.state is PipelineState.COMPLETE


def test_identifiers_flow_between_steps(pipeline, imageengine):
    pipeline.run(make_request())

    subscription = imageengine.create_subscription.call_args[0][0]
    assert subscription.user_id == 7
    assert subscription.account_name == "Acme"
    assert subscription.demo_id == "demo-1"
    assert subscription.type == "imgeng"
    assert subscription.plan_id == "IMAGEENGINE_BASIC"
    assert subscription.payment_type == "TRIAL"

    domain = imageengine.create_domain.call_args[0][0]
    assert domain.subscription_id == 100
    assert domain.cname == CNAME
    assert domain.url == "https://www.example.com"
    assert domain.url_type == "https"

    origin = imageengine.create_origin.call_args[0][0]
    assert origin.subscription_id == 100
    assert origin.origin_conf_id == 200
    assert origin.name == "default"

    demo = imageengine.create_demo_run.call_args[0][0]
    assert demo.subscription_id == 100
    assert demo.url == "https://www.example.com//"
    assert demo.domain == "www.example.com"


def test_dns_records_only_for_deployable_regions(pipeline, imageengine):
    pipeline.run(make_request())

    records = list(imageengine.create_dns_records.call_args[0][0])
    assert [(r.domain, r.region, r.type) for r in records] == [
        (CNAME, "us-east-1", "A"),
        (CNAME, "eu-west-1", "A"),
    ]


def test_result_bundles_every_step(pipeline):
    result = pipeline.run(make_request())

    assert result.status == 201
    assert result.success is True
    assert result.to_result() == {
        "user": {"id": 7, "email": "alice@example.com"},
        "subscription": {"id": 100, "account_name": "Acme"},
        "origin": {"id": 300},
        "domain": {"id": 200, "cname": CNAME},
        "dns": [{"region": "us-east-1"}],
        "demo": {"id": 400},
        "leadGen": None,
    }


def test_lead_gen_only_with_query_string(pipeline, imageengine):
    pipeline.run(make_request(queryString="utm_source=ads"))

    lead_gen = imageengine.create_lead_gen.call_args[0][0]
    assert lead_gen.subscription_id == 100
    assert lead_gen.url_query_string == "utm_source=ads"
    assert lead_gen.campaign_name == ""


def test_password_reset_sent_to_subscription_user(pipeline, imageengine, users):
    pipeline.run(make_request(), send_password_reset=True)

    users.send_password_reset_email.assert_called_once_with("alice@example.com")
    assert pipeline.completed_steps == [
        "subscription", "domain", "origin", "demo_run", "password_reset", "regions", "dns",
    ]


def test_full_order_with_both_optional_steps(pipeline, imageengine, users):
    result = pipeline.run(make_request(queryString="utm_source=ads"), send_password_reset=True)

    assert pipeline.completed_steps == [
        "subscription", "domain", "origin", "demo_run", "lead_gen", "password_reset", "regions", "dns",
    ]
    assert [name for name, _a, _k in imageengine.method_calls] == [
        "create_subscription",
        "create_domain",
        "create_origin",
        "create_demo_run",
        "create_lead_gen",
        "get_aws_regions",
        "create_dns_records",
    ]
    users.send_password_reset_email.assert_called_once_with("alice@example.com")
    assert result.lead_gen == {"id": 500}
    assert pipeline.state is PipelineState.COMPLETE


def test_no_deployable_regions_skips_dns(pipeline, imageengine):
    imageengine.get_aws_regions.return_value = [{"RegionName": "ap-east-1", "Deploy": "NONE"}]

    result = pipeline.run(make_request())

    imageengine.create_dns_records.assert_not_called()
    assert result.dns is None
    assert pipeline.state is PipelineState.COMPLETE


def test_pipeline_is_single_use(pipeline):
    pipeline.run(make_request())
    with pytest.raises(RuntimeError):
        pipeline.run(make_request())


# ============================================================================
# Partial failure
# ============================================================================

def test_origin_failure_aborts_remaining_steps(pipeline, imageengine, users):
    imageengine.create_origin.side_effect = CoreAPIError(500, "boom", "/api/v2/wit_origins")

    with pytest.raises(ProvisioningError) as excinfo:
        pipeline.run(make_request(queryString="utm_source=ads"), send_password_reset=True)

    error = excinfo.value
    assert isinstance(error, UpstreamError)
    assert error.step == "origin"
    assert error.completed_steps == ["subscription", "domain"]
    assert error.partial["subscription"] == {"id": 100, "account_name": "Acme"}
    assert error.partial["origin"] is None
    assert "origin" in error.message
    assert "boom" not in error.message

    imageengine.create_demo_run.assert_not_called()
    imageengine.create_lead_gen.assert_not_called()
    imageengine.get_aws_regions.assert_not_called()
    imageengine.create_dns_records.assert_not_called()
    users.send_password_reset_email.assert_not_called()

    assert pipeline.state is PipelineState.FAILED
    assert pipeline.failed_step == "origin"


def test_rejected_subscription_fails_first_step(pipeline, imageengine):
    imageengine.create_subscription.return_value = {"success": False, "status": 400, "message": "bad plan"}

    with pytest.raises(ProvisioningError) as excinfo:
        pipeline.run(make_request())

    assert excinfo.value.step == "subscription"
    assert excinfo.value.completed_steps == []
    imageengine.create_domain.assert_not_called()


def test_domain_without_id_aborts(pipeline, imageengine):
    imageengine.create_domain.return_value = {"success": True, "data": {}}

    with pytest.raises(ProvisioningError) as excinfo:
        pipeline.run(make_request())

    assert excinfo.value.step == "domain"
    imageengine.create_origin.assert_not_called()


def test_failure_envelope_names_step():
    error = ProvisioningError("dns", ["subscription"], {})
    envelope = error.to_envelope()
    assert envelope["success"] is False
    assert envelope["status"] == 500
    assert envelope["result"] == {"failedStep": "dns", "completedSteps": ["subscription"]}


# ============================================================================
# Generated CDN names
# ============================================================================

def test_generate_cname_format():
    names = {generate_cname() for _ in range(50)}
    for name in names:
        assert re.fullmatch(r"[a-z0-9]{8}\.cdn", name)
    assert len(names) > 1
