"""Test configuration and fixtures."""

import os
from unittest.mock import AsyncMock

import pytest

# Set before importing the package: ADMIN_EMAILS is read at import time
os.environ["ADMIN_EMAILS"] = "boss@contoso.com, Owner@Contoso.com"
os.environ["ENVIRONMENT"] = "test"

from helpdesk_rbac.authz_config import ConfigLoader
from helpdesk_rbac.models import Ticket, TicketUser

ADMIN_EMAIL = "boss@contoso.com"

ADMIN_GID = "g-admin"
TECH_GID = "g-tech"
HR_GID = "g-hr"
POS_GID = "g-pos"
VIS_GID = "g-vis"
VIS2_GID = "g-vis2"
PURCHASE_GID = "g-purchase"
INVENTORY_GID = "g-inventory"
RETIRED_GID = "g-retired"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def row(item_id, title, group_id, group_type, department=None, subtype=None, is_active=None):
    fields = {"Title": title, "GroupId": group_id, "GroupType": group_type}
    if department is not None:
        fields["Department"] = department
    if subtype is not None:
        fields["ProblemTypeSub"] = subtype
    if is_active is not None:
        fields["IsActive"] = is_active
    return {"id": str(item_id), "fields": fields}


SAMPLE_ROWS = [
    row(1, "GeneralManagers", ADMIN_GID, "admin"),
    row(2, "IT", TECH_GID, "department", department="Tech"),
    row(3, "HR Managers", HR_GID, "department", department="HR"),
    row(4, "POSadmins", POS_GID, "department", department="Tech", subtype="POS"),
    row(5, "Front Desk", VIS_GID, "visibility"),
    row(6, "Box Office", VIS2_GID, "visibility"),
    row(7, "Purchasing", PURCHASE_GID, "purchaser"),
    row(8, "Warehouse", INVENTORY_GID, "inventory"),
    row(9, "Old Team", RETIRED_GID, "visibility", is_active=False),
]


def make_ticket(
    requester=None,
    created_by=None,
    original_requester=None,
    problem_type=None,
    problem_type_sub=None,
    **kwargs,
) -> Ticket:
    return Ticket(
        requester=TicketUser(email=requester) if requester is not None else None,
        created_by=TicketUser(email=created_by) if created_by is not None else None,
        original_requester=original_requester,
        problem_type=problem_type,
        problem_type_sub=problem_type_sub,
        **kwargs,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def row_source():
    source = AsyncMock()
    source.fetch_group_role_rows.return_value = list(SAMPLE_ROWS)
    return source


@pytest.fixture
def config_loader(row_source, clock):
    return ConfigLoader(row_source, ttl_seconds=300, clock=clock)


@pytest.fixture
def directory():
    """DirectoryClient fake; tests set return values / side effects."""
    fake = AsyncMock()
    fake.get_my_group_ids.return_value = []
    fake.get_group_member_emails.return_value = []
    fake.get_my_job_title.return_value = None
    return fake
