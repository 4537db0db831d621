import pytest

from honorhub.app import db
from honorhub.emailer import EmailDispatchError
from honorhub.models import Certificate, User
from honorhub.services import certificates as service
from honorhub.shared.settings_store import get_setting, update_settings

from conftest import login


def _payload(employee, tier, template, **extra):
    data = {"employee_id": employee.id, "tier_id": tier.id, "template_id": template.id}
    data.update(extra)
    return data


def test_requires_login(client, seeded):
    assert client.get("/api/certificates").status_code == 401
    assert client.get("/api/settings").status_code == 401


def test_create_and_download_pdf(client, sender, employee, top_tier, default_template):
    login(client, sender)

    resp = client.post(
        "/api/certificates", json=_payload(employee, top_tier, default_template, period="2026")
    )

    assert resp.status_code == 201
    body = resp.get_json()
    assert body["employee_name"] == "Jane Doe"
    pdf = client.get(body["pdf_path"])
    assert pdf.status_code == 200
    assert pdf.data.startswith(b"%PDF")

    detail = client.get(f"/api/certificates/{body['id']}")
    assert detail.get_json()["certificate_id"] == body["certificate_id"]


def test_create_rejects_bad_reference(client, sender, employee, top_tier, default_template):
    login(client, sender)

    resp = client.post(
        "/api/certificates",
        json={"employee_id": employee.id, "tier_id": 404, "template_id": default_template.id},
    )

    assert resp.status_code == 400
    assert resp.get_json()["reference"] == "tier"
    fractional = client.post(
        "/api/certificates",
        json={"employee_id": employee.id + 0.5, "tier_id": top_tier.id, "template_id": default_template.id},
    )
    assert fractional.status_code == 400
    assert client.post("/api/certificates", json={}).status_code == 400


def test_create_render_failure_is_500(client, monkeypatch, sender, employee, top_tier, default_template):
    login(client, sender)

    def broken(**kwargs):
        raise OSError("read-only file system")

    monkeypatch.setattr(service, "render_certificate", broken)

    resp = client.post("/api/certificates", json=_payload(employee, top_tier, default_template))

    assert resp.status_code == 500
    assert Certificate.query.count() == 0


def test_bulk_endpoint(client, sender, employee, top_tier, default_template):
    login(client, sender)

    resp = client.post(
        "/api/certificates/bulk",
        json={
            "certificates": [
                _payload(employee, top_tier, default_template),
                {"employee_id": 999, "tier_id": top_tier.id, "template_id": default_template.id},
            ]
        },
    )

    body = resp.get_json()
    assert resp.status_code == 200
    assert body["success"] == 1
    assert body["failed"] == 1
    assert body["errors"][0]["cert"]["employee_id"] == 999
    assert client.post("/api/certificates/bulk", json={"certificates": []}).status_code == 400


def test_resend_failure_is_502(client, monkeypatch, sender, employee, top_tier, default_template):
    login(client, sender)
    created = client.post(
        "/api/certificates", json=_payload(employee, top_tier, default_template)
    ).get_json()

    def failing(**kwargs):
        raise EmailDispatchError("Mailgun settings not configured")

    monkeypatch.setattr(service.emailer, "send_certificate_email", failing)

    resp = client.post(f"/api/certificates/{created['id']}/resend")

    assert resp.status_code == 502
    assert "Mailgun settings not configured" in resp.get_json()["error"]
    assert client.post("/api/certificates/999/resend").status_code == 404


def test_delete_forbidden_for_non_owner(client, sender, employee, top_tier, default_template):
    login(client, sender)
    created = client.post(
        "/api/certificates", json=_payload(employee, top_tier, default_template)
    ).get_json()
    stranger = User(email="x@example.com", name="X", role="user")
    db.session.add(stranger)
    db.session.commit()

    login(client, stranger)
    assert client.delete(f"/api/certificates/{created['id']}").status_code == 403

    login(client, sender)
    assert client.delete(f"/api/certificates/{created['id']}").status_code == 200
    assert Certificate.query.count() == 0


def test_stats_overview(client, sender, seeded):
    login(client, sender)

    body = client.get("/api/certificates/stats/overview").get_json()

    assert body["totalCertificates"] == 0
    assert len(body["certificatesByTier"]) == 4


def test_settings_masked_for_non_admin(client, sender, admin, seeded):
    update_settings({"smtp_pass": "hunter2"})

    login(client, sender)
    assert client.get("/api/settings").get_json()["smtp_pass"] == "********"
    assert client.put("/api/settings", json={"company_name": "X"}).status_code == 403

    login(client, admin)
    assert client.get("/api/settings").get_json()["smtp_pass"] == "hunter2"


def test_settings_update_skips_masked_secret(client, admin, seeded):
    update_settings({"smtp_pass": "hunter2"})
    login(client, admin)

    resp = client.put(
        "/api/settings", json={"smtp_pass": "********", "company_name": "Initech"}
    )

    assert resp.status_code == 200
    assert get_setting("smtp_pass") == "hunter2"
    assert get_setting("company_name") == "Initech"


def test_test_email_failure_is_502(client, admin, seeded):
    login(client, admin)

    resp = client.post("/api/settings/test-email", json={"email": "ops@example.com"})

    assert resp.status_code == 502
    assert "SMTP settings not configured" in resp.get_json()["error"]


@pytest.mark.no_smoke
def test_catalog_routes(client, admin, sender, default_template):
    login(client, sender)
    assert client.delete(f"/api/templates/{default_template.id}").status_code == 403

    login(client, admin)
    assert client.delete(f"/api/templates/{default_template.id}").status_code == 400
    assert client.delete("/api/tiers/999").status_code == 404


def test_reports_summary(client, sender, seeded):
    login(client, sender)

    body = client.get("/api/reports/summary?year=2026").get_json()

    assert body["totalRecognitions"] == 0
    assert len(body["monthlyTrend"]) == 12
    assert client.get("/api/reports/filters").get_json()["years"] == []
