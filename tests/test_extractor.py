"""
Tests for rent roll, T12 and document extraction.
"""
from ingestion.catalog import catalog_documents, categorize, load_mappings
from ingestion.extractor import DocumentExtractor
from ingestion.financials import FinancialsExtractor, match_line_item, summary_from_document
from ingestion.loader import FileLoader
from ingestion.parsers import ParsedDocument
from ingestion.rent_roll import RentRollExtractor, map_columns, occupancy_status, tenants_from_document


# ---------------------------------------------------------------------------
# Rent roll
# ---------------------------------------------------------------------------

def test_map_columns_first_match_wins():
    header = ["Unit", "Unit Type", "Resident", "Rent", "Market Rent", "Sq Ft", "Status", "Rent (Legal)"]
    columns = map_columns(header)
    assert columns == {
        'unit_number': 0,
        'unit_type': 1,
        'tenant_name': 2,
        'monthly_rent': 3,
        'market_rent': 4,
        'sqft': 5,
        'status': 6,
    }


def test_occupancy_status():
    assert occupancy_status("Vacant", "") == "vacant"
    assert occupancy_status("NTV", "Hank Hill") == "notice"
    assert occupancy_status("Current", "Alice") == "occupied"
    assert occupancy_status(None, "Alice") == "occupied"
    assert occupancy_status(None, "") == "vacant"


def test_tenants_from_rent_roll(dd_folder):
    ok, _, doc = FileLoader().load_file(str(dd_folder / "Historic Financials" / "Rent Roll.csv"))
    assert ok

    tenants = tenants_from_document(doc)
    assert len(tenants) == 10
    assert tenants[0].unit_number == "101"
    assert tenants[0].monthly_rent == 1200.0
    assert tenants[0].market_rent == 1300.0
    assert tenants[0].lease_start == "2025-01-01"
    assert tenants[7].occupancy_status == "notice"
    assert tenants[9].occupancy_status == "vacant"
    assert tenants[9].tenant_name == "TBD"


def test_rent_roll_found_by_name_anywhere(tmp_path):
    folder = tmp_path / "deal"
    (folder / "Misc").mkdir(parents=True)
    (folder / "Misc" / "June RentRoll.csv").write_text("Unit,Tenant,Rent\n1,A,900\n2,,0\n")

    extractor = RentRollExtractor()
    assert extractor.find_rent_roll(folder).name == "June RentRoll.csv"
    tenants = extractor.extract(folder)
    assert [t.occupancy_status for t in tenants] == ["occupied", "vacant"]


def test_rent_roll_without_units_falls_back_to_placeholders(tmp_path):
    folder = tmp_path / "deal"
    folder.mkdir()
    (folder / "Rent Roll.csv").write_text("nothing useful here\n")

    extractor = RentRollExtractor()
    assert extractor.extract_units(folder) is None
    tenants = extractor.extract(folder)
    assert len(tenants) == 5
    assert all(t.unit_type == "TBD" for t in tenants)


# ---------------------------------------------------------------------------
# T12 financials
# ---------------------------------------------------------------------------

def test_match_line_item():
    mappings = load_mappings()
    assert match_line_item("rental income", mappings) == "rentalIncome"
    assert match_line_item("real estate taxes", mappings) == "taxes"
    assert match_line_item("total operating expenses", mappings) == "totalExpenses"
    assert match_line_item("debt service", mappings) == "debtService"
    assert match_line_item("net operating income", mappings) is None


def test_t12_summary(dd_folder):
    summary = FinancialsExtractor().extract(dd_folder)
    assert summary.total_revenue == 125000
    assert summary.rental_income == 120000
    assert summary.other_income == 5000
    assert summary.total_expenses == 50000
    assert summary.operating_expenses['taxes'] == 12000
    assert summary.operating_expenses['administrative'] == 9000
    assert summary.operating_expenses['other'] == 0
    assert summary.debt_service == 50000


def test_t12_totals_are_synthesized():
    doc = ParsedDocument(
        file_name="2024 Operating Statement.csv",
        file_type="csv",
        raw_text="",
        rows=[
            ["Rental Income", "90000"],
            ["Other Income", "(1,000)"],
            ["Insurance", "-4000"],
            ["Utilities", "6000"],
            ["Utilities", "1000"],
        ],
    )
    summary = summary_from_document(doc)
    assert summary.period == "2024"
    assert summary.total_revenue == 89000
    assert summary.operating_expenses['utilities'] == 7000
    assert summary.operating_expenses['insurance'] == 4000
    assert summary.total_expenses == 11000


def test_missing_t12_defaults_to_zero(tmp_path):
    summary = FinancialsExtractor().extract(tmp_path)
    assert summary.total_revenue == 0
    assert summary.period_start == "TBD"


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

def test_categorize_first_category_wins():
    assert categorize("Historic Financials/Rent Roll.csv") == "Financial"
    assert categorize("Rent Roll.xlsx") == "Rent Roll"
    assert categorize("Legal/Title Commitment.pdf") == "Legal"
    assert categorize("Reports/Phase I Environmental.pdf") == "Property"
    assert categorize("deal.yaml") == "Structured Data"
    assert categorize("photos/front.jpg") == "Other"


def test_catalog_documents(dd_folder):
    documents = catalog_documents(dd_folder)
    by_path = {d.path: d for d in documents}
    assert set(by_path) == {
        "Historic Financials/Rent Roll.csv",
        "Historic Financials/T12 Income Statement.csv",
        "Legal/Regulatory Agreement.txt",
        "deal.yaml",
    }
    assert by_path["Legal/Regulatory Agreement.txt"].category == "Legal"
    assert by_path["deal.yaml"].size > 0


# ---------------------------------------------------------------------------
# Document extractor
# ---------------------------------------------------------------------------

def test_extract_complete_folder(dd_folder):
    result = DocumentExtractor().extract(str(dd_folder))
    deal = result.deal

    assert result.rent_roll_found
    assert result.facts_found
    assert deal.property_name == "Sunset Apartments"
    assert deal.address.city == "Tucson"
    assert deal.basic_info.total_units == 10
    assert deal.basic_info.asking_price == 1000000
    assert deal.lihtc_info.currently_lihtc
    assert len(result.tenants) == 10
    assert result.financial_summary.total_revenue == 125000


def test_extract_flags_legal_violations(dd_folder):
    deal = DocumentExtractor().extract(str(dd_folder)).deal
    assert deal.lihtc_info.currently_compliant is False
    assert len(deal.lihtc_info.violation_history) == 1
    assert deal.lihtc_info.violation_history[0].startswith("Regulatory Agreement.txt: ")
    assert "8823" in deal.lihtc_info.violation_history[0]


def test_extract_empty_folder_uses_placeholders(tmp_path):
    folder = tmp_path / "Empty Deal"
    folder.mkdir()
    result = DocumentExtractor().extract(str(folder))

    assert not result.rent_roll_found
    assert not result.facts_found
    assert result.deal.property_name == "Empty Deal"
    assert result.deal.basic_info.total_units == 0
    assert len(result.tenants) == 5
    assert result.financial_summary.total_revenue == 0


def test_extract_missing_folder_does_not_raise(tmp_path):
    result = DocumentExtractor().extract(str(tmp_path / "nope"))
    assert len(result.tenants) == 5


def test_build_deal_accepts_snake_case(tmp_path):
    facts = {
        'property_name': 'Oak Terrace',
        'total_units': '24',
        'asking_price': '$2,400,000',
        'approvals': {'ic_decision': 'approved', 'funds_ready': True},
    }
    deal = DocumentExtractor().build_deal(tmp_path, facts)
    assert deal.property_name == "Oak Terrace"
    assert deal.basic_info.total_units == 24
    assert deal.basic_info.asking_price == 2400000
    assert deal.approvals.ic_decision == "approved"
    assert deal.approvals.funds_ready is True


def test_malformed_facts_file_is_ignored(tmp_path):
    folder = tmp_path / "deal"
    folder.mkdir()
    (folder / "deal.yaml").write_text("- just\n- a list\n")
    assert DocumentExtractor().load_deal_facts(folder) == {}


def test_scalar_fact_blocks_fall_back_to_defaults(tmp_path):
    folder = tmp_path / "deal"
    folder.mkdir()
    (folder / "deal.yaml").write_text("propertyName: X\nlihtc: true\napprovals: yes\n")
    extractor = DocumentExtractor()

    deal = extractor.build_deal(folder, extractor.load_deal_facts(folder))

    assert deal.property_name == "X"
    assert deal.lihtc_info.currently_lihtc is False
    assert deal.lihtc_info.violation_history == []
    assert deal.approvals.ic_decision is None
    assert deal.approvals.funds_ready is None


def test_loose_violation_history_and_approval_values(tmp_path):
    folder = tmp_path / "deal"
    folder.mkdir()
    (folder / "deal.yaml").write_text(
        "propertyName: X\n"
        "lihtc:\n"
        "  violationHistory: 2019 late recertification\n"
        "approvals:\n"
        "  icDecision: 7\n"
        "  fundsReady: pending\n"
    )
    extractor = DocumentExtractor()

    deal = extractor.build_deal(folder, extractor.load_deal_facts(folder))

    assert deal.lihtc_info.violation_history == ["2019 late recertification"]
    assert deal.approvals.ic_decision == "7"
    assert deal.approvals.funds_ready is None
