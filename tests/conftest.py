"""
Pytest fixtures for the underwriting pipeline test suite.
"""
import pytest
from pathlib import Path

from engine.financial_metrics import apply_to_deal, expense_ratio, noi_per_unit
from models.deal import (
    Address,
    Approvals,
    BasicInfo,
    Deal,
    FinancialSummary,
    KeyMetrics,
    LihtcInfo,
    OccupancyMetrics,
)
from storage.deal_store import DealStore

RENT_ROLL_CSV = """Sunset Apartments Rent Roll

Unit,Unit Type,Tenant,Rent,Market Rent,Sq Ft,Lease Start,Lease End,Status
101,1BR,Alice Adams,1200,1300,650,2025-01-01,2025-12-31,Current
102,1BR,Bob Brown,1200,1300,650,2025-02-01,2026-01-31,Current
103,1BR,Carol Chen,1200,1300,650,2025-03-01,2026-02-28,Current
104,2BR,Dan Diaz,1200,1300,850,2025-01-15,2026-01-14,Current
105,2BR,Erin Evans,1200,1300,850,2025-04-01,2026-03-31,Current
106,2BR,Frank Fox,1200,1300,850,2025-05-01,2026-04-30,Current
107,2BR,Gina Gray,1200,1300,850,2025-06-01,2026-05-31,Current
108,3BR,Hank Hill,1200,1300,1050,2025-07-01,2026-06-30,NTV
109,3BR,Iris Ito,1200,1300,1050,2025-08-01,2026-07-31,Current
110,3BR,,0,1300,1050,,,Vacant
Total,,,10800,13000,8600,,,
"""

T12_CSV = """Sunset Apartments T12 Operating Statement
Line Item,Amount
Rental Income,120000
Other Income,5000
Total Income,125000
Management Fee,6000
Repairs & Maintenance,10000
Utilities,8000
Insurance,5000
Real Estate Taxes,12000
Payroll,9000
Total Operating Expenses,50000
Net Operating Income,75000
Debt Service,50000
"""

DEAL_YAML = """propertyName: Sunset Apartments
address:
  street: 100 Sunset Blvd
  city: Tucson
  state: AZ
  zip: "85701"
totalUnits: 10
yearBuilt: 1998
askingPrice: 1000000
lihtcInfo:
  currentlyLIHTC: true
  amiRestriction: 60
  currentlyCompliant: true
"""

LEGAL_TXT = """Regulatory Agreement
The property received an 8823 notice in 2019 for a unit income violation.
All other terms of the agreement remain in effect.
"""


@pytest.fixture
def dd_folder(tmp_path):
    """A complete due-diligence folder: facts, rent roll, T12 and a legal document."""
    folder = tmp_path / "Sunset Apartments"
    financials = folder / "Historic Financials"
    legal = folder / "Legal"
    financials.mkdir(parents=True)
    legal.mkdir()

    (folder / "deal.yaml").write_text(DEAL_YAML, encoding="utf-8")
    (financials / "Rent Roll.csv").write_text(RENT_ROLL_CSV, encoding="utf-8")
    (financials / "T12 Income Statement.csv").write_text(T12_CSV, encoding="utf-8")
    (legal / "Regulatory Agreement.txt").write_text(LEGAL_TXT, encoding="utf-8")
    return folder


@pytest.fixture
def sparse_dd_folder(tmp_path):
    """A folder with deal facts only: 50 units, no asking price, no rent roll or T12."""
    folder = tmp_path / "Maple Court"
    folder.mkdir()
    (folder / "deal.yaml").write_text(
        "propertyName: Maple Court\ntotalUnits: 50\n", encoding="utf-8"
    )
    return folder


@pytest.fixture
def processed_root(tmp_path):
    """Output directory for processed deals."""
    return tmp_path / "processed-deals"


@pytest.fixture
def pipeline_root(tmp_path):
    """Root of the lettered folder pipeline."""
    return tmp_path / "pipeline"


@pytest.fixture
def deal_factory():
    """Build an in-memory (deal, financial summary) pair with derived fields filled in."""
    def _make(
        total_units=50,
        asking_price=0.0,
        occupancy_rate=75.0,
        net_operating_income=30000.0,
        total_revenue=100000.0,
        debt_service=0.0,
        approvals=None,
        violations=None,
        address=None,
        deal_id="test-deal",
    ):
        total_expenses = total_revenue - net_operating_income
        financials = FinancialSummary(
            total_revenue=total_revenue,
            rental_income=total_revenue,
            total_expenses=total_expenses,
            net_operating_income=net_operating_income,
            debt_service=debt_service,
            cash_flow=net_operating_income - debt_service,
        )
        financials.occupancy_metrics = OccupancyMetrics(
            total_units=total_units,
            occupied_units=int(round(total_units * occupancy_rate / 100)),
            occupancy_rate=occupancy_rate,
        )
        financials.key_metrics = KeyMetrics(
            expense_ratio=expense_ratio(total_revenue, total_expenses),
            noi_per_unit=noi_per_unit(net_operating_income, total_units),
        )

        deal = Deal(
            id=deal_id,
            property_name="Test Property",
            address=address or Address(street="1 Main St", city="Springfield", state="IL", zip="62701"),
            basic_info=BasicInfo(total_units=total_units, asking_price=asking_price),
            lihtc_info=LihtcInfo(violation_history=list(violations or [])),
            approvals=approvals or Approvals(),
        )
        apply_to_deal(deal, financials)
        return deal, financials

    return _make


@pytest.fixture
def deal_dir_factory(tmp_path, deal_factory):
    """Write a structured deal folder (no audit log) and return its path."""
    def _make(path=None, tenants=None, **kwargs):
        deal, financials = deal_factory(**kwargs)
        deal_path = Path(path) if path is not None else tmp_path / deal.id
        DealStore(deal_path).save_structure(deal, tenants or [], financials, [])
        return deal_path

    return _make
