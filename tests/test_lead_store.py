import re
from contextlib import contextmanager

from app.db import leads as leads_db
from app.services.wizard import LeadWizard, WizardStep


class FakeCursor:
    def __init__(self):
        self.statements = []
        self._results = [{"id": "lead-1"}]

    def execute(self, sql, params=None):
        self.statements.append((" ".join(sql.split()), params))
        if sql.lstrip().startswith("SELECT"):
            self._results.append(
                {"id": "lead-1", "status": "new", "assigned_manager_id": None}
            )

    def fetchone(self):
        return self._results.pop(0)


def _patch_cursor(monkeypatch):
    cursor = FakeCursor()

    @contextmanager
    def fake_get_cursor():
        yield None, cursor

    monkeypatch.setattr(leads_db, "get_cursor", fake_get_cursor)
    return cursor


def test_sample_enquiry_is_stored_as_new_and_unassigned(monkeypatch):
    cursor = _patch_cursor(monkeypatch)
    wizard = LeadWizard()
    wizard.answer("support_type", "mobility")
    wizard.forward()
    wizard.answer("visit_frequency", "overnight")
    for _ in range(3):
        wizard.forward()
    wizard.answer("postal_code", "sw1a1aa")
    wizard.forward()
    wizard.forward()
    wizard.answer("contact_name", "Jane Doe")
    wizard.answer("email", "jane@example.com")
    wizard.answer("phone", "+44 7123 456789")

    lead = wizard.submit(leads_db.create_lead)

    inserts = [s for s in cursor.statements if s[0].startswith("INSERT INTO leads")]
    assert len(inserts) == 1
    sql, params = inserts[0]
    columns = re.search(r"INSERT INTO leads \((.*?)\)", sql).group(1)
    assert "status" not in columns
    assert "assigned_manager_id" not in columns
    assert params == (
        "Jane Doe",
        "jane@example.com",
        "+44 7123 456789",
        "sw1a1aa",
        "mobility",
        "overnight",
        "long-term",
        "flexibility",
        None,
    )
    assert lead["status"] == "new"
    assert lead["assigned_manager_id"] is None
    assert wizard.step == WizardStep.SUCCESS


def test_leads_table_defaults_to_new_without_manager(monkeypatch):
    cursor = _patch_cursor(monkeypatch)
    leads_db.init_leads_tables()

    ddl = cursor.statements[0][0]
    assert "status TEXT NOT NULL DEFAULT 'new'" in ddl
    assert "assigned_manager_id UUID REFERENCES profiles (id) ON DELETE SET NULL" in ddl
