import pytest
from pydantic import ValidationError

from app.db.leads import build_lead_filter
from app.models.lead import LeadFilters, LeadStatus, LeadTag

OTHER_MANAGER = "3f2b1a00-1111-4222-8333-944455556666"


def test_no_filters_for_admin():
    where, values = build_lead_filter(LeadFilters(), None)
    assert where == ""
    assert values == []


def test_manager_scope_is_always_applied():
    where, values = build_lead_filter(LeadFilters(assigned_manager=OTHER_MANAGER), "m-1")
    assert where.startswith("WHERE l.assigned_manager_id = %s")
    assert values == ["m-1", OTHER_MANAGER]


def test_all_conditions_are_anded():
    filters = LeadFilters(search="jane", status="working", assigned_manager="unassigned", tag="hot")
    where, values = build_lead_filter(filters, None)

    assert filters.status is LeadStatus.IN_PROGRESS
    assert "l.assigned_manager_id IS NULL" in where
    assert where.count(" AND ") == 3
    assert values == ["in_progress", "%jane%", "%jane%", "%jane%", LeadTag.HOT.value]


def test_search_wildcards_are_escaped():
    _, values = build_lead_filter(LeadFilters(search="100%_off"), None)
    assert values[0] == "%100\\%\\_off%"


def test_all_sentinel_clears_filters():
    filters = LeadFilters(search="  ", status="all", assigned_manager="all", tag="all")
    assert filters.model_dump() == {
        "search": None,
        "status": None,
        "assigned_manager": None,
        "tag": None,
    }


@pytest.mark.parametrize("value", ["someone-else", "unassigned ", "42"])
def test_manager_filter_must_be_a_profile_id(value):
    with pytest.raises(ValidationError):
        LeadFilters(assigned_manager=value)
