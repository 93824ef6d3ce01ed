import pytest
from fastapi.testclient import TestClient
from unittest.mock import patch

from app.main import app
from app.api.auth import require_admin, require_api_key
from app.settings import settings
from app.store.models import Application

client = TestClient(app)


@pytest.fixture(autouse=True)
def skip_auth():
    app.dependency_overrides[require_api_key] = lambda: None
    app.dependency_overrides[require_admin] = lambda: None
    yield
    app.dependency_overrides = {}


def create(entity_type="individual", **extra):
    body = {"entityType": entity_type, "phone": "9876543210", **extra}
    resp = client.post("/api/applications", json=body)
    assert resp.status_code == 201
    return resp.json()["data"]


def test_create_and_read_steps(provider):
    data = create("company", companySubType="llp")
    assert data["status"] == "company_verification"
    assert data["companySubType"] == "llp"

    steps = client.get(f"/api/applications/{data['id']}/steps").json()["data"]
    assert [s["id"] for s in steps["steps"]][0] == "company_verification"
    assert steps["currentStep"] == "company_verification"


def test_request_formats_are_validated(provider):
    data = create()
    bad_pan = client.post(f"/api/applications/{data['id']}/kyc/pan", json={"pan": "abcde1234f"})
    assert bad_pan.status_code == 422
    bad_aadhaar = client.post(f"/api/applications/{data['id']}/kyc/aadhaar/send-otp", json={"aadhaarNumber": "1234"})
    assert bad_aadhaar.status_code == 422
    bad_phone = client.post("/api/applications", json={"entityType": "individual", "phone": "1234567890"})
    assert bad_phone.status_code == 422
    bad_type = client.post("/api/applications", json={"entityType": "trust", "phone": "9876543210"})
    assert bad_type.status_code == 422


def test_not_found_maps_to_404(fake_redis):
    resp = client.get("/api/applications/missing")
    assert resp.status_code == 404
    assert resp.json() == {
        "success": False,
        "code": "NOT_FOUND",
        "message": "Application not found",
        "details": {"applicationId": "missing"},
    }


def test_out_of_order_step_maps_to_400(provider):
    data = create()
    resp = client.post(f"/api/applications/{data['id']}/bank/verify", json={
        "accountNumber": "50100012345678", "confirmAccountNumber": "50100012345678", "ifsc": "HDFC0001234",
    })
    assert resp.status_code == 400
    assert resp.json()["code"] == "STEP_OUT_OF_ORDER"


def test_blocked_pan_maps_to_422_with_message(provider, payloads):
    data = create()
    provider.generate_aadhaar_otp.return_value = payloads.aadhaar_otp_sent("RF1")
    provider.verify_aadhaar_otp.return_value = payloads.aadhaar_verified()
    base = f"/api/applications/{data['id']}/kyc"
    assert client.post(f"{base}/aadhaar/send-otp", json={"aadhaarNumber": "123456789012"}).status_code == 200
    verified = client.post(f"{base}/aadhaar/verify-otp", json={"referenceId": "RF1", "otp": "123456"})
    assert verified.json()["data"]["aadhaarData"]["name"] == "RAJESH KUMAR"

    provider.verify_pan.return_value = payloads.pan_checked(remarks="Deceased")
    resp = client.post(f"{base}/pan", json={"pan": "ABCDE1234F"})
    assert resp.status_code == 422
    body = resp.json()
    assert body["code"] == "VERIFICATION_BLOCKED"
    assert "Deceased" in body["message"]


def test_partner_routes_report_pending_kyc(provider):
    data = create("partnership")
    base = f"/api/applications/{data['id']}/partners"
    first = client.post(base, json={"name": "Asha Verma", "phone": "9000000001"}).json()["data"]
    client.post(base, json={"name": "Bharat Verma", "phone": "9000000002"})
    assert first["isLeadPartner"] is True

    resp = client.post(f"{base}/complete")
    assert resp.status_code == 400
    assert resp.json()["details"]["kycPendingCount"] == 2


def test_entity_type_change_after_progress_is_409(provider):
    data = create()
    with patch("app.core.orchestrator.load_application") as load:
        locked = Application(id=data["id"], phone="9876543210")
        locked.completedSteps["kyc"] = True
        load.return_value = locked
        resp = client.put(f"/api/applications/{data['id']}/entity-type", json={"entityType": "company"})
    assert resp.status_code == 409
    assert resp.json()["code"] == "IMMUTABLE_AFTER_PROGRESS"


def test_api_key_enforced_when_configured(fake_redis):
    app.dependency_overrides.pop(require_api_key, None)
    with patch.object(settings, "API_KEY", "secret"):
        assert client.get("/api/applications/missing").status_code == 401
        assert client.get("/api/applications/missing", headers={"x-api-key": "secret"}).status_code == 404


def test_admin_requires_key_when_rbac_enabled(fake_redis):
    app.dependency_overrides.pop(require_admin, None)
    with patch.object(settings, "ADMIN_RBAC_ENABLED", True), patch.object(settings, "ADMIN_API_KEY", "adm"):
        assert client.get("/admin/metrics").status_code == 403
        assert client.get("/admin/metrics", headers={"x-admin-key": "adm"}).status_code == 200


def test_admin_snapshot_and_reject(provider):
    data = create()
    snap = client.get(f"/admin/applications/{data['id']}").json()["data"]
    assert snap["status"] == "kyc"
    assert snap["crossValidation"] == []

    resp = client.post(f"/admin/applications/{data['id']}/reject", json={"reason": "Duplicate"})
    assert resp.json()["data"]["status"] == "rejected"
    again = client.post(f"/admin/applications/{data['id']}/reject", json={"reason": "Duplicate"})
    assert again.status_code == 409
    assert again.json()["code"] == "TERMINAL_STATE"


def test_health_reports_redis():
    with patch("app.main.redis_ok", return_value=False):
        assert client.get("/health").json() == {"status": "degraded", "redis": False}
