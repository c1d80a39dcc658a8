from directory_service import split_position_title
from models import Department, ExecomMember, ExecomPosition


def test_split_position_title():
    assert split_position_title("Technical-head") == ("Technical", "Head")
    assert split_position_title("Core-CHAIRPERSON") == ("Core", "Chairperson")
    assert split_position_title("Design-lead-extra") == ("Design", "Lead")
    assert split_position_title("Volunteer") == ("Volunteer", "Unknown")
    assert split_position_title(None) == ("Unknown", "Unknown")


def test_departments_are_listed_by_name(client, db):
    db.add_all([Department(department_name="Mechanical"), Department(department_name="Civil")])
    db.commit()

    body = client.get("/api/departments").json()

    assert [row["department_name"] for row in body] == ["Civil", "Mechanical"]
    assert all(isinstance(row["id"], int) for row in body)


def test_execom_years_and_directory(client, db):
    chair = ExecomPosition(title="Core-CHAIRPERSON", priority=0)
    head = ExecomPosition(title="Technical-head", priority=1)
    member = ExecomPosition(title="Technical-member", priority=2)
    db.add_all([chair, head, member])
    db.flush()
    db.add_all(
        [
            ExecomMember(name="Ravi", academic_year=2025, batch="2022", position_id=member.id),
            ExecomMember(name="Anu", academic_year=2025, batch="2022", position_id=head.id, social_link="https://example.com/anu"),
            ExecomMember(name="Bala", academic_year=2025, batch="2022", position_id=member.id),
            ExecomMember(name="Meera", academic_year=2025, batch="2021", position_id=chair.id),
            ExecomMember(name="Old", academic_year=2024, batch="2020"),
            ExecomMember(name="Undated", academic_year=None),
        ]
    )
    db.commit()

    assert client.get("/api/execom/years").json() == {"years": [2025, 2024]}

    body = client.get("/api/execom/2025").json()
    assert body["academic_year"] == 2025
    assert list(body["teams"]) == ["Core", "Technical"]
    assert body["teams"]["Core"] == [
        {"name": "Meera", "batch": "2021", "upload_image": None, "social_link": None, "role": "Chairperson"}
    ]
    assert [(row["name"], row["role"]) for row in body["teams"]["Technical"]] == [
        ("Anu", "Head"),
        ("Bala", "Member"),
        ("Ravi", "Member"),
    ]

    assert client.get("/api/execom/2024").json()["teams"] == {
        "Unknown": [{"name": "Old", "batch": "2020", "upload_image": None, "social_link": None, "role": "Unknown"}]
    }

    missing = client.get("/api/execom/2019")
    assert missing.status_code == 404
    assert missing.json()["detail"] == "No execom members found for academic year 2019"
