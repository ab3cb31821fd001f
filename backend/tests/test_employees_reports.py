"""
Employee and staff report tests: personnel records with their logins,
report scoping and read markers.
"""

import pytest

from telecom_ops.extensions import db
from telecom_ops.models import Employee, Report, User
from telecom_ops.services import auth_service, employee_service, report_service
from telecom_ops.validation import ConflictError, NotFoundError, ValidationError

from conftest import TEST_PASSWORD, actor_of, auth_headers


def _personnel(**overrides):
    patch = {
        "first_name": "Nadia",
        "last_name": "Brahimi",
        "email": "nadia.brahimi@telecom.test",
        "phone": "0550111222",
        "department": "Sales",
        "role": "Advisor",
    }
    patch.update(overrides)
    return patch


# ---------------------------------------------------------------------------
# Employees
# ---------------------------------------------------------------------------

def test_create_employee_with_login(db_session):
    employee = employee_service.create_employee(
        patch=_personnel(), username="nbrahimi", password=TEST_PASSWORD,
    )

    assert employee.employee_code == "EMP0001"
    assert employee.status == "Active"
    assert employee.hiring_date is not None

    user = db.session.query(User).filter_by(username="nbrahimi").one()
    assert employee.user_id == user.id
    assert user.role == "Advisor"
    assert user.email == "nadia.brahimi@telecom.test"
    assert auth_service.authenticate("nbrahimi", TEST_PASSWORD) is not None


def test_employee_codes_increase(db_session):
    first = employee_service.create_employee(patch=_personnel())
    second = employee_service.create_employee(
        patch=_personnel(email="karim@telecom.test", first_name="Karim"),
    )
    assert (first.employee_code, second.employee_code) == ("EMP0001", "EMP0002")
    assert first.user_id is None


def test_duplicate_email_is_rejected(db_session, advisor):
    employee_service.create_employee(patch=_personnel())
    with pytest.raises(ConflictError):
        employee_service.create_employee(patch=_personnel(first_name="Other"))
    # Emails of existing logins are taken as well
    with pytest.raises(ConflictError):
        employee_service.create_employee(patch=_personnel(email=advisor.email))
    assert db.session.query(Employee).count() == 1


def test_failed_login_creation_leaves_no_record(db_session):
    with pytest.raises(auth_service.PasswordValidationError):
        employee_service.create_employee(patch=_personnel(), username="weak", password="short")
    assert db.session.query(Employee).count() == 0
    assert db.session.query(User).filter_by(username="weak").count() == 0


def test_create_employee_arguments(db_session, advisor):
    with pytest.raises(ValidationError):
        employee_service.create_employee(patch=_personnel(role="Janitor"))
    with pytest.raises(ValidationError):
        employee_service.create_employee(patch={"first_name": "Only"})
    with pytest.raises(ValidationError):
        employee_service.create_employee(
            patch=_personnel(), username="x", password=TEST_PASSWORD, link_user_id=advisor.id,
        )


def test_link_existing_user(db_session, advisor):
    employee = employee_service.create_employee(
        patch=_personnel(email=advisor.email, role="Agent"), link_user_id=advisor.id,
    )
    db.session.refresh(advisor)
    assert employee.user_id == advisor.id
    assert advisor.role == "Agent"
    assert advisor.phone == "0550111222"

    with pytest.raises(ConflictError):
        employee_service.create_employee(
            patch=_personnel(email="second@telecom.test"), link_user_id=advisor.id,
        )
    with pytest.raises(NotFoundError):
        employee_service.create_employee(
            patch=_personnel(email="ghost@telecom.test"), link_user_id=999_999,
        )


def test_update_syncs_linked_user(db_session):
    employee = employee_service.create_employee(
        patch=_personnel(), username="nbrahimi", password=TEST_PASSWORD,
    )
    employee_service.update_employee(employee.id, patch={"role": "Controller", "status": "On leave"})

    user = db.session.query(User).filter_by(username="nbrahimi").one()
    assert user.role == "Controller"
    assert user.status == "On leave"
    assert auth_service.authenticate("nbrahimi", TEST_PASSWORD) is None


def test_user_status_change_reaches_employee(db_session):
    employee = employee_service.create_employee(
        patch=_personnel(), username="nbrahimi", password=TEST_PASSWORD,
    )
    auth_service.set_user_status(employee.user_id, "Inactive")
    assert db.session.get(Employee, employee.id).status == "Inactive"


def test_delete_deactivates_login(db_session, director):
    employee = employee_service.create_employee(
        patch=_personnel(), username="nbrahimi", password=TEST_PASSWORD,
    )
    user_id = employee.user_id

    assert employee_service.delete_employee(employee.id, actor_of(director)) == "EMP0001"
    assert db.session.query(Employee).count() == 0
    assert db.session.get(User, user_id).status == "Inactive"


def test_cannot_delete_own_record(db_session, director):
    employee = employee_service.create_employee(
        patch=_personnel(email=director.email, role="Director"), link_user_id=director.id,
    )
    with pytest.raises(ValidationError):
        employee_service.delete_employee(employee.id, actor_of(director))
    assert db.session.get(Employee, employee.id) is not None


def test_employee_stats_and_search(db_session):
    employee_service.create_employee(patch=_personnel())
    employee_service.create_employee(
        patch=_personnel(email="karim@telecom.test", first_name="Karim", role="Agent", status="On leave"),
    )

    stats = employee_service.employee_stats()
    assert stats["total_employees"] == 2
    assert stats["active_employees"] == 1
    assert stats["on_leave"] == 1
    assert stats["by_role"]["Agent"] == 1
    assert stats["by_role"]["Director"] == 0

    assert employee_service.list_employees(search="karim")["count"] == 1
    assert employee_service.list_employees(role="Advisor")["count"] == 1


def test_employee_routes(client, db_session, director, advisor):
    response = client.get('/api/employees', headers=auth_headers(client, advisor))
    assert response.status_code == 403

    headers = auth_headers(client, director)
    response = client.post('/api/employees', headers=headers, json={
        **_personnel(hiring_date="2026-01-15"),
        "username": "nbrahimi",
        "password": TEST_PASSWORD,
    })
    assert response.status_code == 201
    body = response.get_json()["employee"]
    assert body["username"] == "nbrahimi"
    assert body["hiring_date"] == "2026-01-15"

    response = client.post('/api/employees', headers=headers, json=_personnel())
    assert response.status_code == 409

    response = client.post('/api/employees', headers=headers, json={**_personnel(), "salary": 10})
    assert response.status_code == 400

    response = client.put(f'/api/employees/{body["id"]}', headers=headers, json={"department": "Support"})
    assert response.status_code == 200
    assert response.get_json()["employee"]["department"] == "Support"

    response = client.get('/api/employees/stats/summary', headers=headers)
    assert response.get_json()["total_employees"] == 1

    response = client.delete(f'/api/employees/{body["id"]}', headers=headers)
    assert response.status_code == 200
    assert response.get_json()["employee_code"] == "EMP0001"


def test_controller_cannot_delete_employees(client, db_session, controller):
    employee = employee_service.create_employee(patch=_personnel())
    response = client.delete(f'/api/employees/{employee.id}', headers=auth_headers(client, controller))
    assert response.status_code == 403


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

def _report(actor, **overrides):
    fields = {
        "department": "Sales",
        "title": "Weekly activity",
        "summary": "Fibre demand is up in the east district.",
        "category": "Activity",
    }
    fields.update(overrides)
    return report_service.create_report(actor, **fields)


def test_report_author_from_user(db_session, controller):
    report = _report(actor_of(controller))
    assert report.author_user_id == controller.id
    assert report.author_employee_id is None
    assert report.author_name == controller.full_name
    assert report.author_role == "Controller"
    assert report.priority == "Normal"
    assert report.is_read is False


def test_report_author_from_employee(db_session, controller):
    employee = employee_service.create_employee(
        patch=_personnel(email=controller.email, role="Controller", first_name="Samir"),
        link_user_id=controller.id,
    )
    report = _report(actor_of(controller))
    assert report.author_employee_id == employee.id
    assert report.author_name == "Samir Brahimi"


def test_report_validation(db_session, controller):
    with pytest.raises(ValidationError):
        _report(actor_of(controller), priority="Critical")
    with pytest.raises(ValidationError):
        _report(actor_of(controller), title="   ")
    assert db.session.query(Report).count() == 0


def test_report_scoping(db_session, director, controller, make_user):
    other = make_user("Controller", username="controller2")
    mine = _report(actor_of(controller))
    theirs = _report(actor_of(other), department="Support")
    _report(actor_of(director), category="Strategy")

    assert report_service.list_reports(actor_of(controller))["count"] == 1
    with pytest.raises(NotFoundError):
        report_service.get_report(theirs.id, actor_of(controller))
    assert report_service.get_report(mine.id, actor_of(controller)).id == mine.id

    assert report_service.list_reports(actor_of(director))["count"] == 3
    assert report_service.list_reports(actor_of(director), mine=True)["count"] == 1
    assert report_service.list_departments(actor_of(director)) == ["Sales", "Support"]
    assert report_service.list_categories(actor_of(controller)) == ["Activity"]


def test_read_markers_and_counters(db_session, director, controller):
    first = _report(actor_of(controller), priority="Urgent")
    _report(actor_of(controller), priority="Urgent")
    _report(actor_of(controller))

    stats = report_service.report_stats(actor_of(director))
    assert stats == {
        "total_reports": 3,
        "unread_reports": 3,
        "urgent_reports": 2,
        "urgent_unread": 2,
    }

    report_service.set_read(first.id, actor_of(director), True)
    assert len(report_service.urgent_unread(actor_of(director))) == 1
    assert report_service.list_reports(actor_of(director), is_read=False)["unread_count"] == 2

    with pytest.raises(ValidationError):
        report_service.set_read(first.id, actor_of(director), "yes")

    assert report_service.mark_all_read(actor_of(director)) == 2
    assert report_service.mark_all_read(actor_of(director)) == 0
    assert report_service.report_stats(actor_of(director))["unread_reports"] == 0


def test_report_routes(client, db_session, director, controller, advisor):
    response = client.get('/api/reports', headers=auth_headers(client, advisor))
    assert response.status_code == 403

    headers = auth_headers(client, controller)
    response = client.post('/api/reports', headers=headers, json={
        "department": "Sales",
        "title": "Network outage follow-up",
        "summary": "Two business clients affected.",
        "category": "Incident",
        "full_content": "Details of the outage.",
        "priority": "Urgent",
        "report_date": "2026-10-01",
        "report_time": "09:30",
    })
    assert response.status_code == 201
    report = response.get_json()["report"]
    assert report["report_time"] == "09:30:00"
    assert report["full_content"] == "Details of the outage."

    response = client.post('/api/reports', headers=headers, json={
        "department": "Sales", "title": "t", "summary": "s", "category": "c", "priority": "Someday",
    })
    assert response.status_code == 400

    response = client.get('/api/reports?priority=Urgent', headers=headers)
    assert response.get_json()["count"] == 1
    assert "full_content" not in response.get_json()["items"][0]

    director_headers = auth_headers(client, director)
    response = client.get('/api/reports/urgent/unread', headers=director_headers)
    assert response.get_json()["count"] == 1

    response = client.patch(f'/api/reports/{report["id"]}/read', headers=director_headers, json={"is_read": True})
    assert response.status_code == 200
    assert response.get_json()["report"]["is_read"] is True

    response = client.patch(f'/api/reports/{report["id"]}/read', headers=director_headers, json={})
    assert response.status_code == 400

    response = client.get('/api/reports/stats/summary', headers=director_headers)
    assert response.get_json()["unread_reports"] == 0

    response = client.get('/api/reports/departments', headers=director_headers)
    assert response.get_json()["items"] == ["Sales"]
