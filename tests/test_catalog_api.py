import io
from datetime import timedelta
from decimal import Decimal

from openpyxl import load_workbook

from models import UserRole
from schemas import AccommodationResponse, DepartmentResponse
from time_utils import now_tz


def test_events_are_grouped_by_schedule(client, make_event):
    now = now_tz()
    make_event(event_name="Later", event_start_time=now + timedelta(days=3), event_end_time=now + timedelta(days=4))
    make_event(event_name="Unscheduled", event_start_time=None, event_end_time=None)
    make_event(event_name="Running", event_start_time=now - timedelta(hours=1), event_end_time=now + timedelta(hours=2))
    make_event(
        event_name="Done",
        reg_start_time=now - timedelta(days=10),
        reg_end_time=now - timedelta(days=8),
        event_start_time=now - timedelta(days=5),
        event_end_time=now - timedelta(days=4),
    )

    body = client.get("/api/events").json()

    assert sorted(event["name"] for event in body["upcoming"]) == ["Later", "Unscheduled"]
    assert [event["name"] for event in body["ongoing"]] == ["Running"]
    assert [event["name"] for event in body["past"]] == ["Done"]
    done = body["past"][0]
    assert done["reg_open"] is False
    assert done["duration_days"] == 1
    assert done["is_registered"] is None


def test_event_detail_reports_capacity_units(client, make_user, make_event, auth_headers):
    event = make_event(max_team_size=3, min_team_size=2, max_registrations=1, fee_amount=Decimal("0"))
    lead = make_user()
    client.post("/api/registrations", json={"event_id": event.id}, headers=auth_headers(lead))

    anonymous = client.get(f"/api/events/{event.id}").json()
    personal = client.get(f"/api/events/{event.id}", headers=auth_headers(lead)).json()

    assert anonymous["event_type"] == "team"
    assert anonymous["team"] == {"min": 2, "max": 3}
    assert anonymous["registrations_count"] == 1
    assert anonymous["is_registration_full"] is True
    assert anonymous["reg_open"] is True
    assert anonymous["is_registered"] is None
    assert personal["is_registered"] is True
    assert client.get("/api/events/9999").status_code == 404


def test_accommodations_sorted_by_name(client, make_accommodation):
    make_accommodation("Girls hostel")
    make_accommodation("Boys hostel")

    body = client.get("/api/accommodations").json()

    assert [row["name"] for row in body] == ["Boys hostel", "Girls hostel"]


def test_orm_backed_response_models_use_model_config():
    for model in (AccommodationResponse, DepartmentResponse):
        assert model.model_config["from_attributes"] is True
        assert "Config" not in vars(model)


def test_admin_report_requires_admin_role(client, make_user, auth_headers):
    student = make_user()
    assert client.get("/api/admin/registrations", headers=auth_headers(student)).status_code == 403


def test_admin_report_and_exports(client, make_user, make_event, make_accommodation, auth_headers):
    admin = make_user("Admin", role=UserRole.ADMIN)
    event = make_event(event_name="Design Jam", max_team_size=3)
    other = make_event(event_name="Code Sprint")
    hostel = make_accommodation()
    lead = make_user("Lead")
    client.post(
        "/api/registrations",
        json={"event_id": event.id, "team_name": "Orbit", "accommodation_id": hostel.id},
        headers=auth_headers(lead),
    )
    client.post("/api/registrations", json={"event_id": other.id}, headers=auth_headers(make_user()))

    rows = client.get(
        "/api/admin/registrations",
        params={"event_id": event.id},
        headers=auth_headers(admin),
    ).json()
    assert len(rows) == 1
    assert rows[0]["team_name"] == "Orbit"
    assert rows[0]["team_lead_email"] == lead.email
    assert rows[0]["accommodation"] == "Boys hostel"
    assert rows[0]["payment_status"] is True

    everything = client.get("/api/admin/registrations", headers=auth_headers(admin)).json()
    assert len(everything) == 2

    csv_export = client.get(
        "/api/admin/registrations/export",
        params={"format": "csv", "event_id": event.id},
        headers=auth_headers(admin),
    )
    assert csv_export.status_code == 200
    assert csv_export.headers["content-type"].startswith("text/csv")
    assert "registrations_event_" in csv_export.headers["content-disposition"]
    lines = csv_export.text.strip().splitlines()
    assert lines[0].startswith("Registration ID,Registered At,Event ID,Event")
    assert "Orbit" in lines[1]

    xlsx_export = client.get(
        "/api/admin/registrations/export",
        params={"format": "xlsx"},
        headers=auth_headers(admin),
    )
    assert xlsx_export.status_code == 200
    sheet = load_workbook(io.BytesIO(xlsx_export.content)).active
    assert sheet.title == "Registrations"
    assert sheet.max_row == 3

    bad_format = client.get(
        "/api/admin/registrations/export",
        params={"format": "pdf"},
        headers=auth_headers(admin),
    )
    assert bad_format.status_code == 422


def test_health(client):
    assert client.get("/api/health").json() == {"status": "healthy"}
