"""
Configuration settings for the LIHTC Deal Underwriting Pipeline
"""
import os
from typing import List

# Filesystem Layout
PROCESSED_DEALS_PATH = os.getenv("UNDERWRITER_PROCESSED_DEALS_PATH", "processed-deals")
PIPELINE_PATH = os.getenv("UNDERWRITER_PIPELINE_PATH", "pipeline")
STRUCTURED_DIR = "Structured"
JOURNEY_DIR = "AnalysisJourney"
OUTPUTS_DIR = "Outputs"
JOURNEY_FILE = "AnalysisJourney.md"
AUDIT_LOG_FILE = "auditLog.json"
DEAL_FILE = "deal.json"
TENANTS_FILE = "tenants.json"
FINANCIALS_FILE = "financialSummary.json"
SOURCE_DOCUMENTS_FILE = "sourceDocuments.json"
REGISTRY_DIR = ".registry"

# Logging
LOG_LEVEL = os.getenv("UNDERWRITER_LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Locking
LOCK_FILE_NAME = ".deal.lock"
LOCK_TIMEOUT_SECONDS = float(os.getenv("UNDERWRITER_LOCK_TIMEOUT", "10"))
LOCK_POLL_INTERVAL_SECONDS = 0.05
LOCK_STALE_SECONDS = float(os.getenv("UNDERWRITER_LOCK_STALE", "300"))
AUDIT_APPEND_RETRIES = 3

# Extraction
RENT_ROLL_CANDIDATES: List[str] = [
    "Historic Financials/Rent Roll.xlsx",
    "Historic Financials/Rent Roll.xls",
    "Historic Financials/Rent Roll.csv",
    "Rent Roll.xlsx",
    "Rent Roll.xls",
    "Rent Roll.csv",
    "rent_roll.xlsx",
    "rent_roll.csv",
]
FINANCIALS_DIRS: List[str] = ["Historic Financials", "Financials", "."]
DEAL_FACTS_FILES: List[str] = ["deal.yaml", "deal.yml", "property.yaml"]
HEADER_KEYWORDS: List[str] = ["unit", "tenant", "rent", "sqft", "bedroom"]
HEADER_SCAN_ROWS = 10
HEADER_MIN_MATCHES = 2
PLACEHOLDER_UNIT_COUNT = 5
TBD = "TBD"

# Deal Defaults
DEFAULT_PROPERTY_TYPE = "Multifamily"
DEFAULT_AMI_RESTRICTION = 60
DEFAULT_SET_ASIDE = "20% at 50% AMI"

# Pipeline
CANONICAL_FINAL_STAGE = 6
SUBSTATE_NOT_STARTED = "not-started"
SUBSTATE_IN_PROGRESS = "in-progress"
SUBSTATE_REJECTED = "rejected"
PENDING_SUBSTATES = [SUBSTATE_NOT_STARTED, SUBSTATE_IN_PROGRESS]
ANALYST_ID = os.getenv("UNDERWRITER_ANALYST", "AI System")

# Stage 1: Strategic Qualification
MIN_PRICE_PER_UNIT = 30000
MAX_PRICE_PER_UNIT = 200000
MIN_OCCUPANCY_RATE = 70.0
MIN_NOI_PER_UNIT = 500.0
HIGH_PRICE_PER_UNIT = 150000
AVERAGE_OCCUPANCY_RATE = 85.0
STRONG_OCCUPANCY_RATE = 90.0

# Stage 2: Market Intelligence
MARKET_RENT_COVERAGE_ADVANCE = 80.0
MARKET_RENT_COVERAGE_REJECT = 60.0
DEFAULT_MARKET_RENT_COVERAGE = 85.0

# Stage 4: Financial Underwriting
IRR_ADVANCE = 8.0
IRR_REJECT = 6.0
DSCR_ADVANCE = 1.15
DSCR_REJECT = 1.10
DEFAULT_ESTIMATED_IRR = 9.5
DEFAULT_ESTIMATED_DSCR = 1.25

# Confidence
CONFIDENCE_WITH_RED_FLAGS = 70
CONFIDENCE_CLEAN = 85
CONFIDENCE_GENERIC = 75
CONFIDENCE_UNDERWRITING = 80

# Lettered Pipeline Thresholds
INTAKE_MIN_UNITS = 5
INTAKE_MIN_OCCUPANCY = 80.0
INTAKE_MAX_DATA_GAPS = 2
PRELIM_MAX_PRICE_PER_UNIT = 150000
PRELIM_MAX_EXPENSE_RATIO = 50.0
PRELIM_MIN_OCCUPANCY = 85.0
UNDERWRITING_MAX_EXPENSE_RATIO = 45.0
UNDERWRITING_MIN_OCCUPANCY = 90.0

# Date Format
TIMESTAMP_ID_FORMAT = "%Y%m%d%H%M%S%f"
