"""
Domain Models for the Rental Contract Engine

These dataclasses provide type-safe representations of contracts, their
rental terms and the financial snapshot derived from them.
All monetary values use Decimal for precision.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum

from .money import ZERO, parse_money, parse_optional_money

# =============================================================================
# ENUMERATIONS
# =============================================================================


class Role(str, Enum):
    """Staff role of the acting user."""

    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    COLLABORATOR = "COLLABORATOR"
    USER = "USER"  # Non-matching default, holds no grants

    @classmethod
    def parse(cls, value) -> "Role":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return cls.USER

    @property
    def is_staff(self) -> bool:
        return self in STAFF_ROLES


STAFF_ROLES = frozenset({Role.ADMIN, Role.MANAGER, Role.COLLABORATOR})


class ContractStatus(str, Enum):
    """Stored status of a contract."""

    DRAFT = "DRAFT"
    PENDING = "PENDING"
    PENDING_SIGNATURE = "PENDING_SIGNATURE"
    SIGNED = "SIGNED"
    SIGNED_ELECTRONICALLY = "SIGNED_ELECTRONICALLY"
    COMPLETED = "COMPLETED"
    DISABLED = "DISABLED"
    CANCELLED = "CANCELLED"

    @classmethod
    def parse(cls, value) -> "ContractStatus | None":
        """Return the matching status, or None for anything unknown."""
        if isinstance(value, cls):
            return value
        if value is None:
            return None
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return None

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({ContractStatus.COMPLETED, ContractStatus.CANCELLED})


class Permission(str, Enum):
    """Names of the flags carried by a PermissionSet."""

    GENERATE_PDF = "can_generate_pdf"
    EDIT = "can_edit"
    SOFT_DELETE = "can_soft_delete"
    REACTIVATE = "can_reactivate"
    SEND_SIGNATURE = "can_send_signature"
    UPLOAD_SIGNED = "can_upload_signed"
    VIEW_SIGNED = "can_view_signed"


class Action(str, Enum):
    """Operations a caller can request on a contract."""

    # Status transitions
    GENERATE_PDF = "generate_pdf"
    REQUEST_ELECTRONIC_SIGNATURE = "request_electronic_signature"
    EDIT_WHILE_PENDING = "edit_while_pending"
    UPLOAD_SIGNED_COPY = "upload_signed_copy"
    CLIENT_SIGNS = "client_signs"
    END_OF_RENTAL = "end_of_rental"
    CANCEL = "cancel"

    # Soft delete
    TOGGLE_DISABLED = "toggle_disabled"
    SOFT_DELETE = "soft_delete"
    REACTIVATE = "reactivate"

    # Rental terms and payments
    UPDATE_TERMS = "update_terms"
    RECOMPUTE_PRICING = "recompute_pricing"
    MARK_ACCOUNT_PAID = "mark_account_paid"
    MARK_CAUTION_PAID = "mark_caution_paid"


class RejectionReason(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    INVALID_TRANSITION = "invalid_transition"
    INVALID_TOKEN = "invalid_token"
    NOT_YET_DUE = "not_yet_due"
    MISSING_DOCUMENT = "missing_document"
    CONTRACT_DISABLED = "contract_disabled"


# =============================================================================
# PARSING HELPERS
# =============================================================================


def parse_datetime(value) -> datetime | None:
    """Parse an ISO-8601 timestamp; unusable values become None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def parse_flag(value, name: str, default: bool = False) -> bool:
    """Parse a boolean flag sent as a JSON boolean or as "true" / "false"."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValueError(f"{name} must be a boolean, got: {value!r}")


def parse_deleted_at(value) -> datetime | None:
    """Like parse_datetime, but an unreadable deletion stamp is an error.

    A contract whose deletion cannot be read must not come back as active.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    parsed = parse_datetime(value)
    if parsed is None:
        raise ValueError(f"deleted_at must be an ISO-8601 timestamp, got: {value!r}")
    return parsed


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC so mixed inputs stay comparable."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _first(data: dict, *keys, default=None):
    for key in keys:
        if key in data:
            return data[key]
    return default


# =============================================================================
# INPUT MODELS
# =============================================================================


@dataclass
class Item:
    """A rented catalogue item (e.g. a dress)."""

    id: str | None = None
    name: str | None = None
    price_per_day_ttc: Decimal = ZERO
    price_ttc: Decimal = ZERO  # Replacement value, basis of the caution

    @classmethod
    def from_dict(cls, data: dict) -> "Item":
        return cls(
            id=data.get("id"),
            name=data.get("name"),
            price_per_day_ttc=parse_money(data.get("price_per_day_ttc")),
            price_ttc=parse_money(data.get("price_ttc")),
        )


@dataclass
class Addon:
    """An optional extra service attached to a contract."""

    id: str | None = None
    name: str | None = None
    price_ht: Decimal = ZERO
    price_ttc: Decimal = ZERO
    included_in_package: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "Addon":
        return cls(
            id=data.get("id"),
            name=data.get("name"),
            price_ht=parse_money(data.get("price_ht")),
            price_ttc=parse_money(data.get("price_ttc")),
            included_in_package=parse_flag(
                _first(data, "included_in_package", "included", default=None), "included_in_package"
            ),
        )


@dataclass
class Package:
    """A flat-rate bundle. Add-ons listed in addon_ids come with it.

    A None price means the package is only known by id: its total cannot
    be recomputed.
    """

    id: str
    name: str | None = None
    price_ht: Decimal = ZERO
    price_ttc: Decimal | None = None
    addon_ids: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "Package":
        return cls(
            id=data["id"],
            name=data.get("name"),
            price_ht=parse_money(data.get("price_ht")),
            price_ttc=parse_optional_money(data.get("price_ttc")),
            addon_ids=[str(a) for a in data.get("addon_ids") or []],
        )


@dataclass
class FinancialSnapshot:
    """Monetary fields of a contract, always as HT/TTC pairs.

    Paid amounts may be None when the caller has not provided them yet;
    the pricing engine fills in defaults on recompute.
    """

    total_price_ht: Decimal = ZERO
    total_price_ttc: Decimal = ZERO
    account_ht: Decimal = ZERO
    account_ttc: Decimal = ZERO
    account_paid_ht: Decimal | None = None
    account_paid_ttc: Decimal | None = None
    caution_ht: Decimal = ZERO
    caution_ttc: Decimal = ZERO
    caution_paid_ht: Decimal | None = None
    caution_paid_ttc: Decimal | None = None
    duration_days: int = 0
    vat_ratio: Decimal | None = None

    def pairs(self) -> list[tuple[Decimal | None, Decimal | None]]:
        """(HT, TTC) pairs in the order used for VAT ratio inference."""
        return [
            (self.total_price_ht, self.total_price_ttc),
            (self.account_ht, self.account_ttc),
            (self.account_paid_ht, self.account_paid_ttc),
            (self.caution_ht, self.caution_ttc),
            (self.caution_paid_ht, self.caution_paid_ttc),
        ]

    @classmethod
    def from_dict(cls, data: dict) -> "FinancialSnapshot":
        return cls(
            total_price_ht=parse_money(data.get("total_price_ht")),
            total_price_ttc=parse_money(data.get("total_price_ttc")),
            account_ht=parse_money(data.get("account_ht")),
            account_ttc=parse_money(data.get("account_ttc")),
            account_paid_ht=parse_optional_money(data.get("account_paid_ht")),
            account_paid_ttc=parse_optional_money(data.get("account_paid_ttc")),
            caution_ht=parse_money(data.get("caution_ht")),
            caution_ttc=parse_money(data.get("caution_ttc")),
            caution_paid_ht=parse_optional_money(data.get("caution_paid_ht")),
            caution_paid_ttc=parse_optional_money(data.get("caution_paid_ttc")),
            vat_ratio=parse_optional_money(data.get("vat_ratio")),
        )


@dataclass
class ContractRecord:
    """A rental contract as seen by the lifecycle engine."""

    id: str | None = None
    contract_number: str | None = None
    status: ContractStatus | str = ContractStatus.DRAFT  # Unknown strings kept verbatim
    start_datetime: datetime | None = None
    end_datetime: datetime | None = None
    package: Package | None = None
    items: list[Item] = field(default_factory=list)
    addons: list[Addon] = field(default_factory=list)
    financials: FinancialSnapshot = field(default_factory=FinancialSnapshot)
    deleted_at: datetime | None = None
    deleted_by: str | None = None
    sign_link_token: str | None = None
    signed_document: str | None = None
    signed_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def known_status(self) -> ContractStatus | None:
        return ContractStatus.parse(self.status)

    @property
    def effective_status(self) -> ContractStatus | str:
        """Status as presented to users: a soft-deleted contract reads as DISABLED."""
        if self.is_deleted:
            return ContractStatus.DISABLED
        return self.status

    @property
    def package_id(self) -> str | None:
        return self.package.id if self.package else None

    @property
    def is_package_mode(self) -> bool:
        return self.package is not None

    @property
    def primary_item(self) -> Item | None:
        return self.items[0] if self.items else None

    @classmethod
    def from_dict(cls, data: dict) -> "ContractRecord":
        raw_status = data.get("status") or ContractStatus.DRAFT.value
        status = ContractStatus.parse(raw_status) or str(raw_status)

        package = None
        if data.get("package"):
            package = Package.from_dict(data["package"])
        elif data.get("package_id"):
            package = Package(id=str(data["package_id"]))

        items = [Item.from_dict(i) for i in _first(data, "items", "dresses", default=None) or []]
        addons = [Addon.from_dict(a) for a in data.get("addons") or []]

        return cls(
            id=data.get("id"),
            contract_number=data.get("contract_number"),
            status=status,
            start_datetime=parse_datetime(data.get("start_datetime")),
            end_datetime=parse_datetime(data.get("end_datetime")),
            package=package,
            items=items,
            addons=addons,
            financials=FinancialSnapshot.from_dict(data),
            deleted_at=parse_deleted_at(data.get("deleted_at")),
            deleted_by=data.get("deleted_by"),
            sign_link_token=data.get("sign_link_token") or None,
            signed_document=data.get("signed_document") or None,
            signed_at=parse_datetime(data.get("signed_at")),
            completed_at=parse_datetime(data.get("completed_at")),
            cancelled_at=parse_datetime(data.get("cancelled_at")),
        )


@dataclass
class ContractTerms:
    """Rental terms a caller wants to change.

    None means "leave unchanged". Package selection needs its own flag since
    clearing it (switching to per-day mode) is a meaningful change.
    """

    start_datetime: datetime | None = None
    end_datetime: datetime | None = None
    items: list[Item] | None = None
    addons: list[Addon] | None = None
    package: Package | None = None
    package_changed: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "ContractTerms":
        package_changed = "package" in data or "package_id" in data
        package = None
        if data.get("package"):
            package = Package.from_dict(data["package"])
        elif data.get("package_id"):
            package = Package(id=str(data["package_id"]))

        items = _first(data, "items", "dresses", default=None)
        addons = data.get("addons")
        return cls(
            start_datetime=parse_datetime(data.get("start_datetime")),
            end_datetime=parse_datetime(data.get("end_datetime")),
            items=[Item.from_dict(i) for i in items] if items is not None else None,
            addons=[Addon.from_dict(a) for a in addons] if addons is not None else None,
            package=package,
            package_changed=package_changed,
        )


@dataclass
class ActionRequest:
    """Complete input for performing an action on a contract."""

    action: Action
    role: Role
    contract: ContractRecord
    actor: str | None = None
    token: str | None = None
    document: str | None = None
    terms: ContractTerms | None = None
    now: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "ActionRequest":
        terms = data.get("terms")
        return cls(
            action=Action(data["action"]),
            role=Role.parse(data.get("role")),
            contract=ContractRecord.from_dict(data["contract"]),
            actor=data.get("actor"),
            token=data.get("token"),
            document=data.get("document"),
            terms=ContractTerms.from_dict(terms) if terms is not None else None,
            now=parse_datetime(data.get("now")),
        )


# =============================================================================
# OUTPUT / RESULT MODELS
# =============================================================================


@dataclass(frozen=True)
class PermissionSet:
    """What a role may do on a contract in its current state."""

    can_generate_pdf: bool = False
    can_edit: bool = False
    can_soft_delete: bool = False
    can_reactivate: bool = False
    can_send_signature: bool = False
    can_upload_signed: bool = False
    can_view_signed: bool = False

    def allows(self, permission: Permission) -> bool:
        return getattr(self, permission.value)

    def to_dict(self) -> dict:
        return {p.value: self.allows(p) for p in Permission}


@dataclass(frozen=True)
class Rejection:
    """A refused action. Returned, never raised."""

    action: Action
    role: Role
    status: ContractStatus | str
    reason: RejectionReason
    message: str

    def to_dict(self) -> dict:
        return {
            "action": self.action.value,
            "role": self.role.value,
            "status": getattr(self.status, "value", self.status),
            "reason": self.reason.value,
            "message": self.message,
        }


@dataclass
class TransitionResult:
    """Outcome of an operation: the resulting record, plus the rejection if refused.

    On rejection the record is the caller's original, untouched.
    """

    contract: ContractRecord
    rejection: Rejection | None = None

    @property
    def accepted(self) -> bool:
        return self.rejection is None


@dataclass
class PaymentSummary:
    """Outstanding amounts and payment progress of a contract."""

    remaining_account_ht: Decimal = ZERO
    remaining_account_ttc: Decimal = ZERO
    remaining_caution_ht: Decimal = ZERO
    remaining_caution_ttc: Decimal = ZERO
    total_remaining_ht: Decimal = ZERO
    total_remaining_ttc: Decimal = ZERO
    is_fully_paid: bool = False
    account_paid_percentage: int = 0
    caution_paid_percentage: int = 0


@dataclass
class RentalTotals:
    """Breakdown of the rental price before deposits are derived."""

    base_price_ttc: Decimal = ZERO  # Package price, or per-day price × days
    chargeable_addons_ttc: Decimal = ZERO
    included_addons_ttc: Decimal = ZERO
    total_price_ttc: Decimal = ZERO


@dataclass
class PricingContext:
    """
    Holds all intermediate state during a pricing recompute.
    This is the "bag" that flows through the calculators.
    """

    # Input (immutable during pricing)
    contract: ContractRecord
    vat_ratio: Decimal

    # Step results (populated as we go)
    duration_days: int = 0
    rental: RentalTotals = field(default_factory=RentalTotals)
