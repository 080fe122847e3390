from pydantic import BaseModel, EmailStr, Field, ConfigDict
from typing import Optional, Dict, Any, List
from datetime import datetime, timezone
from enum import Enum
import uuid

# ============================================================================
# ENUMS (System Constants)
# ============================================================================

class UserRole(str, Enum):
    ADVISER = "ADVISER"
    ADMIN = "ADMIN"

class MaritalStatus(str, Enum):
    SINGLE = "SINGLE"
    MARRIED = "MARRIED"
    DEFACTO = "DEFACTO"
    DIVORCED = "DIVORCED"
    WIDOWED = "WIDOWED"

class AustralianState(str, Enum):
    ACT = "ACT"
    NSW = "NSW"
    NT = "NT"
    QLD = "QLD"
    SA = "SA"
    TAS = "TAS"
    VIC = "VIC"
    WA = "WA"

class OwnOrRent(str, Enum):
    OWN = "OWN"
    RENT = "RENT"
    MORTGAGED = "MORTGAGED"

class AssetType(str, Enum):
    PROPERTY = "property"
    VEHICLE = "vehicle"
    SAVINGS = "savings"
    SHARES = "shares"
    SUPER = "super"
    OTHER = "other"

class LiabilityType(str, Enum):
    MORTGAGE = "mortgage"
    PERSONAL_LOAN = "personal-loan"
    CREDIT_CARD = "credit-card"
    HECS = "hecs"
    OTHER = "other"

class PaymentFrequency(str, Enum):
    WEEKLY = "W"
    FORTNIGHTLY = "F"
    MONTHLY = "M"

class AppointmentStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

class ClientSlot(str, Enum):
    A = "A"
    B = "B"

class ChartType(str, Enum):
    INCOME = "income"
    EXPENSES = "expenses"
    ASSETS = "assets"
    LIABILITIES = "liabilities"
    CASHFLOW = "cashflow"
    RETIREMENT = "retirement"

class EmailTemplateAlias(str, Enum):
    FINANCIAL_REPORT = "financial-report"
    FINANCIAL_SUMMARY = "financial-summary"
    APPOINTMENT_REMINDER = "appointment-reminder"

class AuditAction(str, Enum):
    USER_LOGIN = "USER_LOGIN"
    USER_LOGIN_FAILED = "USER_LOGIN_FAILED"
    USER_NAME_UPDATED = "USER_NAME_UPDATED"
    CLIENT_CREATED = "CLIENT_CREATED"
    CLIENT_UPDATED = "CLIENT_UPDATED"
    CLIENT_DELETED = "CLIENT_DELETED"
    APPOINTMENT_CREATED = "APPOINTMENT_CREATED"
    APPOINTMENT_UPDATED = "APPOINTMENT_UPDATED"
    APPOINTMENT_DELETED = "APPOINTMENT_DELETED"
    PDF_EXPORT_CREATED = "PDF_EXPORT_CREATED"
    PDF_EXPORT_DELETED = "PDF_EXPORT_DELETED"
    PDF_GENERATED = "PDF_GENERATED"
    EMAIL_SENT = "EMAIL_SENT"
    EMAIL_FAILED = "EMAIL_FAILED"
    EMAIL_INTEGRATION_UPDATED = "EMAIL_INTEGRATION_UPDATED"
    EMAIL_INTEGRATION_REMOVED = "EMAIL_INTEGRATION_REMOVED"
    WORKSPACE_SAVED = "WORKSPACE_SAVED"
    WORKSPACE_DELETED = "WORKSPACE_DELETED"
    REMINDER_SENT = "REMINDER_SENT"

# ============================================================================
# DOMAIN DEFAULTS
# ============================================================================

DEFAULT_SHARED_ASSUMPTIONS: Dict[str, float] = {
    "inflationRate": 2.5,
    "salaryGrowthRate": 3.0,
    "superReturn": 6.2,
    "shareReturn": 7.0,
    "propertyGrowthRate": 4.0,
    "withdrawalRate": 4.0,
    "rentGrowthRate": 3.0,
    "savingsRate": 10.0,
}

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

# ============================================================================
# PERSISTED RECORDS
# ============================================================================

class User(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    email: EmailStr
    name: Optional[str] = None
    role: UserRole = UserRole.ADVISER
    password_hash: Optional[str] = None
    is_active: bool = True
    last_login: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)

class Appointment(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    userId: str
    clientId: str
    title: str
    description: Optional[str] = None
    startDateTime: datetime
    endDateTime: datetime
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    notes: Optional[str] = None
    reminderSent: bool = False
    reminderSentAt: Optional[datetime] = None
    createdAt: datetime = Field(default_factory=utc_now)

class PdfExport(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    userId: str
    clientId: Optional[str] = None
    fileName: str
    storageKey: str
    fileSize: int
    mimeType: str = "application/pdf"
    createdAt: datetime = Field(default_factory=utc_now)

class EmailIntegration(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    userId: str
    provider: str
    email: EmailStr
    encryptedPassword: Optional[str] = None
    smtpHost: Optional[str] = None
    smtpPort: Optional[int] = None
    smtpUser: Optional[str] = None
    imapHost: Optional[str] = None
    imapPort: Optional[int] = None
    imapUser: Optional[str] = None
    isActive: bool = True
    lastSyncAt: datetime = Field(default_factory=utc_now)

class AuditLog(BaseModel):
    model_config = ConfigDict(extra="ignore")

    audit_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    action: AuditAction
    actor_role: Optional[UserRole] = None
    actor_id: Optional[str] = None
    client_id: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    before_state: Optional[Dict[str, Any]] = None
    after_state: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)

class MessageLog(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    postmark_message_id: Optional[str] = None
    user_id: Optional[str] = None
    client_id: Optional[str] = None
    recipients: List[str]
    template_alias: EmailTemplateAlias
    subject: str
    has_attachment: bool = False
    status: str = "queued"
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)

# ============================================================================
# REQUEST MODELS
# ============================================================================

class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None

class UpdateNameRequest(BaseModel):
    name: Optional[Any] = None

class AppointmentCreateRequest(BaseModel):
    clientId: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    startDateTime: Optional[datetime] = None
    endDateTime: Optional[datetime] = None
    status: Optional[AppointmentStatus] = None
    notes: Optional[str] = None

class AppointmentUpdateRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    startDateTime: Optional[datetime] = None
    endDateTime: Optional[datetime] = None
    status: Optional[AppointmentStatus] = None
    notes: Optional[str] = None

class EmailIntegrationRequest(BaseModel):
    provider: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    smtpHost: Optional[str] = None
    smtpPort: Optional[Any] = None
    smtpUser: Optional[str] = None
    imapHost: Optional[str] = None
    imapPort: Optional[Any] = None
    imapUser: Optional[str] = None

class SendReportRequest(BaseModel):
    clientEmail: Optional[str] = None
    clientId: Optional[str] = None
    clientName: Optional[str] = None
    subject: Optional[str] = None
    message: Optional[str] = None
    summaryData: Optional[Dict[str, Any]] = None
    pdfId: Optional[str] = None
    reportDate: Optional[str] = None

class PdfGenerateRequest(BaseModel):
    summary: Optional[Any] = None
    charts: List[Any] = []
    clientId: Optional[str] = None
    fileName: Optional[str] = None

class ProjectionRequest(BaseModel):
    client: Optional[Dict[str, Any]] = None
    sharedAssumptions: Optional[Dict[str, Any]] = None
    storedProjection: Optional[Dict[str, Any]] = None

class TaxDeduction(BaseModel):
    category: str = "general"
    amount: float = 0
    description: str = ""

class TaxRequest(BaseModel):
    grossIncome: float = 0
    deductions: List[TaxDeduction] = []
    negativeGearingLoss: float = 0
    capitalGains: float = 0
    frankedDividends: float = 0
    hecsBalance: float = 0
    medicareExemption: bool = False

class TaxOptimizationRequest(BaseModel):
    base: TaxRequest = Field(default_factory=TaxRequest)
    additionalDeductions: float = 0
    negativeGearingOpportunity: float = 0
    superContributions: float = 0
    strategyData: Dict[str, Any] = {}

class ClientDataRequest(BaseModel):
    clientData: Dict[str, Any] = {}

class ProposedLoan(BaseModel):
    amount: float = 0
    interestRate: Optional[float] = 0.06
    termYears: Optional[int] = 30

class ServiceabilityRequest(BaseModel):
    clientData: Dict[str, Any] = {}
    proposedLoan: Optional[ProposedLoan] = None

class ChartRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str

class TaxBreakdownRequest(BaseModel):
    taxableIncome: float

class LoanRequest(BaseModel):
    principal: float
    annualRate: float
    years: int
    includeSchedule: bool = False

class RetirementProjectionRequest(BaseModel):
    currentAge: int
    retirementAge: int
    currentSavings: float = 0
    monthlyContribution: float = 0
    annualReturn: float = 0.07
    inflationRate: float = 0.025

class NetWorthProjectionRequest(BaseModel):
    currentAge: int
    projectionYears: int = 30
    currentAssets: float = 0
    currentLiabilities: float = 0
    annualSavings: float = 0
    assetGrowthRate: float = 0.05
    liabilityReductionRate: float = 0.05
    inflationRate: float = 0.025

class DrawdownRequest(BaseModel):
    retirementSavings: float
    annualWithdrawal: Optional[float] = None
    withdrawalRate: float = 0.04
    annualReturn: float = 0.05
    inflationRate: float = 0.025
    years: int = 30

class RetirementGapRequest(BaseModel):
    projectedPassiveIncome: float = 0
    annualDebtPayments: float = 0
    currentGrossIncome: float = 0

class PropertyPotentialRequest(BaseModel):
    retirementMetrics: Dict[str, Any] = {}
    interestRate: Optional[float] = None
    loanTermYears: Optional[float] = None
    loanToValueRatio: Optional[float] = None

class WorkspaceClientUpdate(BaseModel):
    data: Dict[str, Any] = {}
    field: Optional[str] = None
    value: Optional[Any] = None

class SaveWorkspaceRequest(BaseModel):
    name: Optional[str] = None
    slot: ClientSlot = ClientSlot.A
