"""
Data models for deals, tenants and financial summaries.

Persisted JSON uses camelCase keys; every model converts with
``to_dict`` / ``from_dict``.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from config import settings


def _get(data: Optional[dict], key: str, default: Any) -> Any:
    if not data:
        return default
    value = data.get(key)
    return default if value is None else value


@dataclass
class Address:
    """Property street address"""
    street: str = settings.TBD
    city: str = settings.TBD
    state: str = settings.TBD
    zip: str = settings.TBD

    def to_dict(self) -> dict:
        return {'street': self.street, 'city': self.city, 'state': self.state, 'zip': self.zip}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'Address':
        return cls(
            street=str(_get(data, 'street', settings.TBD)),
            city=str(_get(data, 'city', settings.TBD)),
            state=str(_get(data, 'state', settings.TBD)),
            zip=str(_get(data, 'zip', settings.TBD)),
        )


@dataclass
class BasicInfo:
    """Unit count, vintage and pricing"""
    total_units: int = 0
    year_built: int = 0
    property_type: str = settings.DEFAULT_PROPERTY_TYPE
    asking_price: float = 0.0
    price_per_unit: float = 0.0

    def to_dict(self) -> dict:
        return {
            'totalUnits': self.total_units,
            'yearBuilt': self.year_built,
            'propertyType': self.property_type,
            'askingPrice': self.asking_price,
            'pricePerUnit': self.price_per_unit,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'BasicInfo':
        return cls(
            total_units=int(_get(data, 'totalUnits', 0)),
            year_built=int(_get(data, 'yearBuilt', 0)),
            property_type=str(_get(data, 'propertyType', settings.DEFAULT_PROPERTY_TYPE)),
            asking_price=float(_get(data, 'askingPrice', 0.0)),
            price_per_unit=float(_get(data, 'pricePerUnit', 0.0)),
        )


@dataclass
class LihtcInfo:
    """LIHTC compliance block"""
    currently_lihtc: bool = False
    placed_in_service_date: str = settings.TBD
    compliance_period_end: str = settings.TBD
    extended_use_end: str = settings.TBD
    ami_restriction: Optional[int] = settings.DEFAULT_AMI_RESTRICTION
    set_aside_requirement: str = settings.DEFAULT_SET_ASIDE
    currently_compliant: bool = False
    violation_history: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'currentlyLIHTC': self.currently_lihtc,
            'placedInServiceDate': self.placed_in_service_date,
            'compliancePeriodEnd': self.compliance_period_end,
            'extendedUseEnd': self.extended_use_end,
            'amiRestriction': self.ami_restriction,
            'setAsideRequirement': self.set_aside_requirement,
            'currentlyCompliant': self.currently_compliant,
            'violationHistory': list(self.violation_history),
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'LihtcInfo':
        ami = (data or {}).get('amiRestriction', settings.DEFAULT_AMI_RESTRICTION)
        return cls(
            currently_lihtc=bool(_get(data, 'currentlyLIHTC', False)),
            placed_in_service_date=str(_get(data, 'placedInServiceDate', settings.TBD)),
            compliance_period_end=str(_get(data, 'compliancePeriodEnd', settings.TBD)),
            extended_use_end=str(_get(data, 'extendedUseEnd', settings.TBD)),
            ami_restriction=int(ami) if ami is not None else None,
            set_aside_requirement=str(_get(data, 'setAsideRequirement', settings.DEFAULT_SET_ASIDE)),
            currently_compliant=bool(_get(data, 'currentlyCompliant', False)),
            violation_history=[str(v) for v in _get(data, 'violationHistory', [])],
        )


@dataclass
class FinancialData:
    """Financial snapshot copied onto the deal from the financial summary"""
    annual_gross_rent: float = 0.0
    net_operating_income: float = 0.0
    operating_expenses: float = 0.0
    expense_ratio: float = 0.0
    occupancy_rate: float = 0.0

    def to_dict(self) -> dict:
        return {
            'annualGrossRent': self.annual_gross_rent,
            'netOperatingIncome': self.net_operating_income,
            'operatingExpenses': self.operating_expenses,
            'expenseRatio': self.expense_ratio,
            'occupancyRate': self.occupancy_rate,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'FinancialData':
        return cls(
            annual_gross_rent=float(_get(data, 'annualGrossRent', 0.0)),
            net_operating_income=float(_get(data, 'netOperatingIncome', 0.0)),
            operating_expenses=float(_get(data, 'operatingExpenses', 0.0)),
            expense_ratio=float(_get(data, 'expenseRatio', 0.0)),
            occupancy_rate=float(_get(data, 'occupancyRate', 0.0)),
        )


@dataclass
class Approvals:
    """Recorded committee and closing outcomes (None = not yet recorded)"""
    ic_decision: Optional[str] = None  # approved, rejected, changes_requested
    final_approval: Optional[str] = None  # approved, withdrawn, delayed
    financing_status: Optional[str] = None  # committed, failed
    funds_ready: Optional[bool] = None

    def to_dict(self) -> dict:
        return {
            'icDecision': self.ic_decision,
            'finalApproval': self.final_approval,
            'financingStatus': self.financing_status,
            'fundsReady': self.funds_ready,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'Approvals':
        data = data or {}
        return cls(
            ic_decision=data.get('icDecision'),
            final_approval=data.get('finalApproval'),
            financing_status=data.get('financingStatus'),
            funds_ready=data.get('fundsReady'),
        )


@dataclass
class Deal:
    """One real-estate acquisition opportunity"""
    id: str
    property_name: str
    address: Address = field(default_factory=Address)
    basic_info: BasicInfo = field(default_factory=BasicInfo)
    lihtc_info: LihtcInfo = field(default_factory=LihtcInfo)
    financial_data: FinancialData = field(default_factory=FinancialData)
    approvals: Approvals = field(default_factory=Approvals)
    status: str = "incoming"  # incoming, processing, completed, rejected
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'propertyName': self.property_name,
            'address': self.address.to_dict(),
            'basicInfo': self.basic_info.to_dict(),
            'lihtcInfo': self.lihtc_info.to_dict(),
            'financialData': self.financial_data.to_dict(),
            'approvals': self.approvals.to_dict(),
            'status': self.status,
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Deal':
        return cls(
            id=str(data.get('id', '')),
            property_name=str(data.get('propertyName', '')),
            address=Address.from_dict(data.get('address')),
            basic_info=BasicInfo.from_dict(data.get('basicInfo')),
            lihtc_info=LihtcInfo.from_dict(data.get('lihtcInfo')),
            financial_data=FinancialData.from_dict(data.get('financialData')),
            approvals=Approvals.from_dict(data.get('approvals')),
            status=str(data.get('status', 'incoming')),
            created_at=str(data.get('createdAt', '')),
            updated_at=str(data.get('updatedAt', '')),
        )


@dataclass
class Tenant:
    """Represents one rent-roll row"""
    unit_number: str
    unit_type: str = "Unknown"
    sqft: float = 0.0
    monthly_rent: float = 0.0
    market_rent: Optional[float] = None
    security_deposit: float = 0.0
    tenant_name: str = settings.TBD
    lease_start: str = settings.TBD
    lease_end: str = settings.TBD
    occupancy_status: str = "occupied"  # occupied, vacant, notice
    lihtc_qualified: bool = False
    ami_level: Optional[int] = None

    @property
    def is_occupied(self) -> bool:
        """Notice units are still occupied until move-out"""
        return self.occupancy_status in ['occupied', 'notice']

    def to_dict(self) -> dict:
        return {
            'unitNumber': self.unit_number,
            'unitType': self.unit_type,
            'sqft': self.sqft,
            'monthlyRent': self.monthly_rent,
            'marketRent': self.market_rent,
            'securityDeposit': self.security_deposit,
            'tenantName': self.tenant_name,
            'leaseStart': self.lease_start,
            'leaseEnd': self.lease_end,
            'occupancyStatus': self.occupancy_status,
            'lihtcQualified': self.lihtc_qualified,
            'amiLevel': self.ami_level,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Tenant':
        market_rent = data.get('marketRent')
        ami_level = data.get('amiLevel')
        return cls(
            unit_number=str(data.get('unitNumber', '')),
            unit_type=str(_get(data, 'unitType', 'Unknown')),
            sqft=float(_get(data, 'sqft', 0.0)),
            monthly_rent=float(_get(data, 'monthlyRent', 0.0)),
            market_rent=float(market_rent) if market_rent is not None else None,
            security_deposit=float(_get(data, 'securityDeposit', 0.0)),
            tenant_name=str(_get(data, 'tenantName', settings.TBD)),
            lease_start=str(_get(data, 'leaseStart', settings.TBD)),
            lease_end=str(_get(data, 'leaseEnd', settings.TBD)),
            occupancy_status=str(_get(data, 'occupancyStatus', 'occupied')),
            lihtc_qualified=bool(_get(data, 'lihtcQualified', False)),
            ami_level=int(ami_level) if ami_level is not None else None,
        )


EXPENSE_CATEGORIES = [
    'management', 'maintenance', 'utilities', 'insurance',
    'taxes', 'marketing', 'administrative', 'other',
]


@dataclass
class OccupancyMetrics:
    total_units: int = 0
    occupied_units: int = 0
    occupancy_rate: float = 0.0
    avg_rent_per_unit: float = 0.0

    def to_dict(self) -> dict:
        return {
            'totalUnits': self.total_units,
            'occupiedUnits': self.occupied_units,
            'occupancyRate': self.occupancy_rate,
            'avgRentPerUnit': self.avg_rent_per_unit,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'OccupancyMetrics':
        return cls(
            total_units=int(_get(data, 'totalUnits', 0)),
            occupied_units=int(_get(data, 'occupiedUnits', 0)),
            occupancy_rate=float(_get(data, 'occupancyRate', 0.0)),
            avg_rent_per_unit=float(_get(data, 'avgRentPerUnit', 0.0)),
        )


@dataclass
class KeyMetrics:
    expense_ratio: float = 0.0
    income_per_unit: float = 0.0
    expense_per_unit: float = 0.0
    noi_per_unit: float = 0.0

    def to_dict(self) -> dict:
        return {
            'expenseRatio': self.expense_ratio,
            'incomePerUnit': self.income_per_unit,
            'expensePerUnit': self.expense_per_unit,
            'noiPerUnit': self.noi_per_unit,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'KeyMetrics':
        return cls(
            expense_ratio=float(_get(data, 'expenseRatio', 0.0)),
            income_per_unit=float(_get(data, 'incomePerUnit', 0.0)),
            expense_per_unit=float(_get(data, 'expensePerUnit', 0.0)),
            noi_per_unit=float(_get(data, 'noiPerUnit', 0.0)),
        )


@dataclass
class FinancialSummary:
    """T12 income/expense breakdown with derived metrics"""
    period: str = "T12"
    period_start: str = settings.TBD
    period_end: str = settings.TBD
    total_revenue: float = 0.0
    rental_income: float = 0.0
    commercial_income: float = 0.0
    other_income: float = 0.0
    total_expenses: float = 0.0
    operating_expenses: Dict[str, float] = field(
        default_factory=lambda: {name: 0.0 for name in EXPENSE_CATEGORIES}
    )
    net_operating_income: float = 0.0
    debt_service: float = 0.0
    cash_flow: float = 0.0
    occupancy_metrics: OccupancyMetrics = field(default_factory=OccupancyMetrics)
    key_metrics: KeyMetrics = field(default_factory=KeyMetrics)

    def to_dict(self) -> dict:
        return {
            'period': self.period,
            'periodStart': self.period_start,
            'periodEnd': self.period_end,
            'totalRevenue': self.total_revenue,
            'rentalIncome': self.rental_income,
            'commercialIncome': self.commercial_income,
            'otherIncome': self.other_income,
            'totalExpenses': self.total_expenses,
            'operatingExpenses': dict(self.operating_expenses),
            'netOperatingIncome': self.net_operating_income,
            'debtService': self.debt_service,
            'cashFlow': self.cash_flow,
            'occupancyMetrics': self.occupancy_metrics.to_dict(),
            'keyMetrics': self.key_metrics.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'FinancialSummary':
        data = data or {}
        expenses = {name: 0.0 for name in EXPENSE_CATEGORIES}
        for name, value in (data.get('operatingExpenses') or {}).items():
            expenses[name] = float(value or 0.0)
        return cls(
            period=str(_get(data, 'period', 'T12')),
            period_start=str(_get(data, 'periodStart', settings.TBD)),
            period_end=str(_get(data, 'periodEnd', settings.TBD)),
            total_revenue=float(_get(data, 'totalRevenue', 0.0)),
            rental_income=float(_get(data, 'rentalIncome', 0.0)),
            commercial_income=float(_get(data, 'commercialIncome', 0.0)),
            other_income=float(_get(data, 'otherIncome', 0.0)),
            total_expenses=float(_get(data, 'totalExpenses', 0.0)),
            operating_expenses=expenses,
            net_operating_income=float(_get(data, 'netOperatingIncome', 0.0)),
            debt_service=float(_get(data, 'debtService', 0.0)),
            cash_flow=float(_get(data, 'cashFlow', 0.0)),
            occupancy_metrics=OccupancyMetrics.from_dict(data.get('occupancyMetrics')),
            key_metrics=KeyMetrics.from_dict(data.get('keyMetrics')),
        )


@dataclass
class SourceDocument:
    """A cataloged file from the due-diligence folder"""
    file_name: str
    category: str
    path: str
    size: int = 0
    last_modified: str = ""

    def to_dict(self) -> dict:
        return {
            'fileName': self.file_name,
            'category': self.category,
            'path': self.path,
            'size': self.size,
            'lastModified': self.last_modified,
        }


@dataclass
class DealStructure:
    """Result of processing a due-diligence folder"""
    deal: Deal
    tenants: List[Tenant]
    financial_summary: FinancialSummary
    source_documents: List[SourceDocument]
    output_path: str

    @property
    def deal_id(self) -> str:
        return self.deal.id

    @property
    def tenant_summary(self) -> dict:
        occupied = len([t for t in self.tenants if t.occupancy_status in ('occupied', 'notice')])
        vacant = len([t for t in self.tenants if t.occupancy_status == 'vacant'])
        total_rent = sum(t.monthly_rent for t in self.tenants)
        return {
            'totalUnits': len(self.tenants),
            'occupiedUnits': occupied,
            'vacantUnits': vacant,
            'averageRent': total_rent / len(self.tenants) if self.tenants else 0.0,
        }
