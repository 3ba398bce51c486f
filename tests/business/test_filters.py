"""List filter and sort tests.

- search / date-window primitives
- service logs: conjunction of predicates equals intersection, timestamp sort
- service cases, customers, products, contracts
"""
import itertools
from datetime import timedelta

import pytest

from business.filters import (
    DateWindow, LogSort, build_log_views, filter_contracts, filter_customers,
    filter_products, filter_service_cases, filter_service_logs, in_date_window,
    matches_search, sort_service_cases, sort_service_logs,
)
from business.resolution import CustomerDirectory
from database.entities import (
    CasePriority, CaseStatus, ContractStatus, ContractType, Customer, LogEntryType,
    Product, ServiceCase, ServiceContract, ServiceLogEntry,
)

CUSTOMERS = [
    Customer(id="c1", name="Region Nord", phone="010-1", address="", email="nord@example.se"),
    Customer(id="c2", name="Syd Ambulans", phone="040-2", address=""),
]
CASES = [ServiceCase(id="s1", customer_id="c1", title="VIPER", description="Hydraulik")]


@pytest.fixture
def directory():
    return CustomerDirectory(CUSTOMERS, CASES)


@pytest.fixture
def log_views(directory, fixed_now):
    entries = [
        ServiceLogEntry(id="l1", title="Hydraulik kontroll", content="", type=LogEntryType.ACTION,
                        service_case_id="s1", timestamp=fixed_now, technician_name="Erik"),
        ServiceLogEntry(id="l2", title="Batteri", content="", type=LogEntryType.PART_REPLACED,
                        customer_id="c2", timestamp=fixed_now - timedelta(days=3)),
        ServiceLogEntry(id="l3", title="Anteckning", content="", customer="Gamla Kunden",
                        timestamp=fixed_now - timedelta(days=20)),
        ServiceLogEntry(id="l4", title="Gammal kontroll", content="", type=LogEntryType.ACTION,
                        customer_id="c1", timestamp=fixed_now - timedelta(days=90)),
        ServiceLogEntry(id="l5", title="Utan datum", content="", technician_name="Erik"),
    ]
    return build_log_views(entries, directory)


def _ids(items):
    return {item.id for item in items}


# ============================================================
# Primitives
# ============================================================
class TestPrimitives:
    """Tests for the shared filter primitives."""

    def test_empty_search_matches_everything(self):
        assert matches_search("", "anything")
        assert matches_search(None)
        assert matches_search("   ", None)

    def test_search_is_case_insensitive_substring(self):
        assert matches_search("NORD", "Region Nord")
        assert not matches_search("syd", "Region Nord", None)

    def test_windows(self, fixed_now):
        """Each window is measured back from now."""
        assert in_date_window(None, DateWindow.ALL, fixed_now)
        assert not in_date_window(None, DateWindow.TODAY, fixed_now)
        assert in_date_window(fixed_now, DateWindow.TODAY, fixed_now)
        assert not in_date_window(fixed_now - timedelta(days=1), DateWindow.TODAY, fixed_now)
        assert in_date_window(fixed_now - timedelta(days=7), DateWindow.WEEK, fixed_now)
        assert not in_date_window(fixed_now - timedelta(days=7, seconds=1),
                                  DateWindow.WEEK, fixed_now)
        assert in_date_window(fixed_now - timedelta(days=30), "month", fixed_now)
        assert not in_date_window(fixed_now - timedelta(days=31), DateWindow.MONTH, fixed_now)

    def test_unknown_window_rejected(self, fixed_now):
        with pytest.raises(ValueError):
            in_date_window(fixed_now, "fortnight", fixed_now)


# ============================================================
# Service logs
# ============================================================
class TestServiceLogFilters:
    """Tests for service log filtering."""

    def test_views_carry_resolved_names(self, log_views):
        names = {v.id: v.customer_name for v in log_views}
        assert names["l1"] == "Region Nord"
        assert names["l2"] == "Syd Ambulans"
        assert names["l3"] == "Gamla Kunden"

    def test_search_covers_customer_type_and_technician(self, log_views, fixed_now):
        assert _ids(filter_service_logs(log_views, fixed_now, search="syd")) == {"l2"}
        assert _ids(filter_service_logs(log_views, fixed_now, search="part_rep")) == {"l2"}
        assert _ids(filter_service_logs(log_views, fixed_now, search="åtgärd")) == {"l1", "l4"}
        assert _ids(filter_service_logs(log_views, fixed_now, search="erik")) == {"l1", "l5"}

    def test_customer_filter_by_name_or_id(self, log_views, fixed_now):
        assert _ids(filter_service_logs(log_views, fixed_now, customer="c1")) == {"l1", "l4"}
        assert _ids(filter_service_logs(log_views, fixed_now,
                                        customer="gamla kunden")) == {"l3"}

    @pytest.mark.parametrize("search,log_type,window", list(itertools.product(
        [None, "kontroll", "erik"],
        [None, "action", "note"],
        [DateWindow.ALL, DateWindow.TODAY, DateWindow.WEEK, DateWindow.MONTH],
    )))
    def test_conjunction_equals_intersection(self, log_views, fixed_now,
                                             search, log_type, window):
        """Combined criteria match the intersection of each criterion alone."""
        combined = filter_service_logs(log_views, fixed_now, search=search,
                                       log_type=log_type, window=window)
        separately = (
            _ids(filter_service_logs(log_views, fixed_now, search=search))
            & _ids(filter_service_logs(log_views, fixed_now, log_type=log_type))
            & _ids(filter_service_logs(log_views, fixed_now, window=window))
        )
        assert _ids(combined) == separately

    def test_filter_keeps_input_order(self, log_views, fixed_now):
        filtered = filter_service_logs(log_views, fixed_now, log_type="action")
        assert [v.id for v in filtered] == ["l1", "l4"]

    def test_sort_by_timestamp_only(self, log_views):
        """An entry without a timestamp counts as the oldest."""
        latest = sort_service_logs(log_views, LogSort.LATEST)
        assert [v.id for v in latest] == ["l1", "l2", "l3", "l4", "l5"]
        oldest = sort_service_logs(log_views, "oldest")
        assert [v.id for v in oldest] == ["l5", "l4", "l3", "l2", "l1"]


# ============================================================
# Service cases
# ============================================================
class TestServiceCaseFilters:
    """Tests for service case filtering."""

    @pytest.fixture
    def cases(self, fixed_now):
        return [
            ServiceCase(id="a", customer_id="c1", title="Hydraulik", description="",
                        status=CaseStatus.PENDING, priority=CasePriority.LOW,
                        created_at=fixed_now),
            ServiceCase(id="b", customer_id="c2", title="Batteri", description="Laddar inte",
                        status=CaseStatus.IN_PROGRESS, priority=CasePriority.URGENT,
                        created_at=fixed_now - timedelta(days=2)),
            ServiceCase(id="c", customer_id="c2", title="Hjul", description="",
                        status=CaseStatus.COMPLETED, priority=CasePriority.URGENT,
                        created_at=fixed_now - timedelta(days=1)),
            ServiceCase(id="d", customer_id="c1", title="Avbokad", description="",
                        status=CaseStatus.CANCELLED),
        ]

    def test_status_groups(self, cases, directory):
        assert _ids(filter_service_cases(cases, directory, "active")) == {"a", "b"}
        assert _ids(filter_service_cases(cases, directory, "in_progress")) == {"b"}
        assert _ids(filter_service_cases(cases, directory, "completed")) == {"c"}
        assert _ids(filter_service_cases(cases, directory, "cancelled")) == {"d"}
        assert len(filter_service_cases(cases, directory, "all")) == 4

    def test_unknown_group(self, cases, directory):
        with pytest.raises(ValueError):
            filter_service_cases(cases, directory, "archived")

    def test_search_by_customer_name(self, cases, directory):
        assert _ids(filter_service_cases(cases, directory, search="syd")) == {"b", "c"}
        assert _ids(filter_service_cases(cases, directory, search="laddar")) == {"b"}

    def test_sort_priority_then_newest(self, cases):
        """Urgent first; ties broken by newest createdAt."""
        assert [c.id for c in sort_service_cases(cases)] == ["c", "b", "d", "a"]


# ============================================================
# Customers / products / contracts
# ============================================================
class TestOtherFilters:
    """Tests for customer, product and contract filters."""

    def test_customers(self):
        assert _ids(filter_customers(CUSTOMERS, "example")) == {"c1"}
        assert _ids(filter_customers(CUSTOMERS, "040")) == {"c2"}

    def test_products(self):
        products = [
            Product(id="p1", name="VIPER", serial_number="VIP-1", category_id="bar",
                    location="Umeå"),
            Product(id="p2", name="PowerTraxx", serial_number="PT-9", category_id="stol",
                    model="XPS"),
        ]
        assert _ids(filter_products(products, category_id="bar")) == {"p1"}
        assert _ids(filter_products(products, search="xps")) == {"p2"}
        assert _ids(filter_products(products, search="umeå")) == {"p1"}
        assert filter_products(products, category_id="bar", search="pt-9") == []

    def test_contracts(self, directory, fixed_now):
        contracts = [
            ServiceContract(id="k1", customer_id="c1", contract_number="CON-2024-0001",
                            title="Premium", description="", contract_type=ContractType.PREMIUM,
                            status=ContractStatus.ACTIVE, start_date=fixed_now,
                            end_date=fixed_now),
            ServiceContract(id="k2", customer_id="c2", contract_number="CON-2024-0002",
                            title="Bas", description="", contract_type=ContractType.BASIC,
                            status=ContractStatus.ACTIVE, start_date=fixed_now,
                            end_date=fixed_now),
        ]
        assert _ids(filter_contracts(contracts, directory, "0002")) == {"k2"}
        assert _ids(filter_contracts(contracts, directory, "nord")) == {"k1"}
