import db
from maintenance import cleanup_empty_profile_fields


def test_cleanup_removes_only_empty_values(app):
    users = db.collection("users")
    users.insert_many([
        {"id": "1", "email": "a@example.com", "domain": "", "currentYear": "", "courseDuration": "4 years"},
        {"id": "2", "email": "b@example.com", "domain": "AI", "yearsOfExperience": ""},
    ])

    counts = cleanup_empty_profile_fields()

    assert counts == {"domain": 1, "courseDuration": 0, "currentYear": 1, "yearsOfExperience": 1}
    a = users.find_one({"id": "1"}, {"_id": 0})
    assert "domain" not in a and "currentYear" not in a
    assert a["courseDuration"] == "4 years"
    assert users.find_one({"id": "2"})["domain"] == "AI"


def test_cli_commands(app):
    db.collection("users").insert_one({"id": "1", "email": "a@example.com", "domain": ""})
    runner = app.test_cli_runner()

    result = runner.invoke(args=["cleanup-profiles"])
    assert result.exit_code == 0
    assert "domain: 1 users updated" in result.output

    result = runner.invoke(args=["ensure-indexes"])
    assert result.exit_code == 0
    assert "Indexes ensured" in result.output
