"""Payment gateway boundary: request preparation and shape validation of external data.

Nothing here talks to a gateway. Responses are only checked for the fields
settlement relies on; authenticity checks belong to the gateway client.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Mapping, Optional

from ...config import settings
from ...errors import ValidationError
from ...events import log_event
from ...models.domain import round_half_up, utc_now

COMPONENT = "payments"

COMMUNAL_TAX_RATE = 0.0
MAX_COD_AMOUNT = 500_000
MIN_CARD_AMOUNT = 1_000
MIN_BANK_TRANSFER_AMOUNT = 5_000
MIN_REFUND_REASON_LENGTH = 3

GATEWAY_STATUSES = frozenset({"approved", "declined", "pending", "error"})

BANK_CODES: Mapping[str, str] = {
    "011": "BMCE Bank of Africa",
    "013": "BMCI",
    "021": "CDM (Credit du Maroc)",
    "007": "Attijariwafa Bank",
    "145": "Banque Populaire",
    "022": "Societe Generale Maroc",
    "230": "CIH Bank",
    "020": "CFG Bank",
    "160": "Al Barid Bank",
}

MAJOR_CITIES = frozenset({"casablanca", "rabat", "marrakech", "fes", "tangier", "agadir"})

_PHONE_SEPARATORS = re.compile(r"[\s\-()]")
_RIB_SEPARATORS = re.compile(r"[\s-]")
_MOROCCAN_PHONE = re.compile(r"^\+212[5-7]\d{8}$")


class WalletProvider(str, Enum):
    INWI_MONEY = "inwi_money"
    ORANGE_MONEY = "orange_money"
    WAFACASH = "wafacash"
    CASHPLUS = "cashplus"
    BARID_BANK = "barid_bank"


@dataclass(frozen=True, slots=True)
class WalletLimits:
    name: str
    min_amount: int
    max_amount: int


WALLET_LIMITS: Mapping[WalletProvider, WalletLimits] = {
    WalletProvider.INWI_MONEY: WalletLimits("inwi money", 100, 500_000),
    WalletProvider.ORANGE_MONEY: WalletLimits("Orange Money", 100, 500_000),
    WalletProvider.WAFACASH: WalletLimits("Wafacash", 500, 1_000_000),
    WalletProvider.CASHPLUS: WalletLimits("Cash Plus", 200, 800_000),
    WalletProvider.BARID_BANK: WalletLimits("Barid Bank Mobile", 100, 500_000),
}

REGIONAL_WALLETS = (WalletProvider.INWI_MONEY, WalletProvider.ORANGE_MONEY, WalletProvider.BARID_BANK)


class RefundMethod(str, Enum):
    ORIGINAL = "original"
    WALLET_CREDIT = "wallet_credit"
    BANK_TRANSFER = "bank_transfer"


@dataclass(slots=True)
class CheckResult:
    valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class GatewayPaymentRequest:
    merchant_id: str
    order_id: str
    amount: int
    currency: str
    customer_email: str
    customer_phone: str
    return_url: str
    fail_url: str
    language: str = "fr"


@dataclass(frozen=True, slots=True)
class GatewayResponse:
    transaction_id: str
    status: str
    amount: int
    authorization_code: str = ""
    message: str = ""


@dataclass(frozen=True, slots=True)
class MobileWalletPayment:
    provider: WalletProvider
    phone_number: str
    amount: int
    reference: str
    status: str = "initiated"


@dataclass(slots=True)
class RibValidation:
    is_valid: bool
    bank_code: str = ""
    branch_code: str = ""
    account_number: str = ""
    rib_key: str = ""
    bank_name: str = "Unknown"
    errors: List[str] = field(default_factory=list)


@dataclass(slots=True)
class TaxCalculation:
    subtotal: int
    vat_amount: int
    vat_rate: float
    communal_tax: int
    communal_tax_rate: float
    total_with_tax: int
    currency: str


@dataclass(slots=True)
class PaymentAvailability:
    cod: bool
    card: bool
    mobile_wallet: bool
    bank_transfer: bool
    available_wallets: List[WalletProvider]


@dataclass(frozen=True, slots=True)
class RefundRequest:
    transaction_id: str
    amount: int
    reason: str
    method: RefundMethod = RefundMethod.ORIGINAL


@dataclass(frozen=True, slots=True)
class RefundResult:
    refund_id: str
    amount: int
    method: RefundMethod
    processed_at: datetime
    message: str


def normalize_phone_number(phone: str) -> str:
    """Rewrite local (0...) and 00212 prefixes to +212; other numbers pass through."""

    cleaned = _PHONE_SEPARATORS.sub("", phone)
    if cleaned.startswith("+212"):
        return cleaned
    if cleaned.startswith("00212"):
        return f"+212{cleaned[5:]}"
    if cleaned.startswith("0"):
        return f"+212{cleaned[1:]}"
    return cleaned


def is_moroccan_phone(phone: str) -> bool:
    return bool(_MOROCCAN_PHONE.match(normalize_phone_number(phone)))


def prepare_gateway_payment(
    merchant_id: str,
    order_id: str,
    amount: int,
    *,
    customer_email: str,
    customer_phone: str,
    return_url: str,
    fail_url: str,
    language: str = "fr",
) -> GatewayPaymentRequest:
    if amount < MIN_CARD_AMOUNT:
        raise ValidationError(f"Card payments require at least {MIN_CARD_AMOUNT} centimes, got {amount}")
    if language not in ("fr", "ar", "en"):
        raise ValidationError(f"Unsupported gateway language: {language}")
    return GatewayPaymentRequest(
        merchant_id=merchant_id,
        order_id=order_id,
        amount=amount,
        currency=settings.currency,
        customer_email=customer_email,
        customer_phone=normalize_phone_number(customer_phone),
        return_url=return_url,
        fail_url=fail_url,
        language=language,
    )


def validate_gateway_response(response: GatewayResponse) -> CheckResult:
    errors: list[str] = []
    if not response.transaction_id:
        errors.append("Missing transaction ID")
    if response.status not in GATEWAY_STATUSES:
        errors.append(f"Invalid status: {response.status}")
    if response.amount <= 0:
        errors.append("Invalid amount")
    return CheckResult(valid=not errors, errors=errors)


def validate_mobile_wallet_payment(provider: WalletProvider | str, phone_number: str, amount: int) -> CheckResult:
    try:
        limits = WALLET_LIMITS[WalletProvider(provider)]
    except ValueError:
        return CheckResult(valid=False, errors=[f"Unknown wallet provider: {provider}"])

    errors: list[str] = []
    if amount < limits.min_amount:
        errors.append(f"Amount {amount} below minimum {limits.min_amount} for {limits.name}")
    if amount > limits.max_amount:
        errors.append(f"Amount {amount} exceeds maximum {limits.max_amount} for {limits.name}")
    if not is_moroccan_phone(phone_number):
        errors.append("Invalid Moroccan phone number")
    return CheckResult(valid=not errors, errors=errors)


def create_mobile_wallet_payment(
    provider: WalletProvider | str,
    phone_number: str,
    amount: int,
    reference: str,
) -> MobileWalletPayment:
    check = validate_mobile_wallet_payment(provider, phone_number, amount)
    if not check.valid:
        raise ValidationError("; ".join(check.errors))
    return MobileWalletPayment(
        provider=WalletProvider(provider),
        phone_number=normalize_phone_number(phone_number),
        amount=amount,
        reference=reference,
    )


def validate_rib(rib: str) -> RibValidation:
    """Check a 24-digit RIB: bank(3) branch(4) account(15) key(2).

    The key must equal ``97 - (first_22_digits * 100 mod 97)``.
    """

    cleaned = _RIB_SEPARATORS.sub("", rib)
    if len(cleaned) != 24:
        return RibValidation(is_valid=False, errors=[f"RIB must be 24 digits, got {len(cleaned)}"])
    if not cleaned.isdigit():
        return RibValidation(is_valid=False, errors=["RIB must contain only digits"])

    bank_code, branch_code = cleaned[:3], cleaned[3:7]
    account_number, rib_key = cleaned[7:22], cleaned[22:]
    expected_key = 97 - (int(cleaned[:22]) * 100) % 97
    errors: list[str] = []
    if expected_key != int(rib_key):
        errors.append(f"Invalid RIB key: expected {expected_key:02d}, got {rib_key}")
    return RibValidation(
        is_valid=not errors,
        bank_code=bank_code,
        branch_code=branch_code,
        account_number=account_number,
        rib_key=rib_key,
        bank_name=BANK_CODES.get(bank_code, "Unknown Bank"),
        errors=errors,
    )


def calculate_taxes(subtotal: int, include_communal_tax: bool = False) -> TaxCalculation:
    vat = round_half_up(subtotal * settings.vat_rate)
    communal_rate = COMMUNAL_TAX_RATE if include_communal_tax else 0.0
    communal = round_half_up(subtotal * communal_rate)
    return TaxCalculation(
        subtotal=subtotal,
        vat_amount=vat,
        vat_rate=settings.vat_rate,
        communal_tax=communal,
        communal_tax_rate=communal_rate,
        total_with_tax=subtotal + vat + communal,
        currency=settings.currency,
    )


def get_available_payment_methods(order_amount: int, city: str) -> PaymentAvailability:
    wallets = list(WalletProvider) if city.lower() in MAJOR_CITIES else list(REGIONAL_WALLETS)
    return PaymentAvailability(
        cod=order_amount <= MAX_COD_AMOUNT,
        card=order_amount >= MIN_CARD_AMOUNT,
        mobile_wallet=bool(wallets),
        bank_transfer=order_amount >= MIN_BANK_TRANSFER_AMOUNT,
        available_wallets=wallets,
    )


def validate_refund_request(request: RefundRequest, original_amount: Optional[int] = None) -> None:
    """Raise ``ValidationError`` listing every problem with the refund request."""

    errors: list[str] = []
    if request.amount <= 0:
        errors.append("Refund amount must be positive")
    if original_amount is not None and request.amount > original_amount:
        errors.append(f"Refund amount {request.amount} exceeds original {original_amount}")
    if not request.transaction_id:
        errors.append("Transaction ID is required")
    if len(request.reason.strip()) < MIN_REFUND_REASON_LENGTH:
        errors.append(f"Refund reason must be at least {MIN_REFUND_REASON_LENGTH} characters")
    if errors:
        raise ValidationError("; ".join(errors))


def process_refund(
    request: RefundRequest,
    original_amount: Optional[int] = None,
    *,
    now: Optional[datetime] = None,
) -> RefundResult:
    validate_refund_request(request, original_amount)
    now = now or utc_now()
    refund_id = f"ref-{request.transaction_id}-{int(now.timestamp() * 1000)}"
    method = RefundMethod(request.method)
    log_event(
        f"Refund processed: {refund_id} for {request.amount} centimes",
        component=COMPONENT,
        method=method.value,
    )
    return RefundResult(
        refund_id=refund_id,
        amount=request.amount,
        method=method,
        processed_at=now,
        message=f"Refund of {request.amount} centimes processed via {method.value}",
    )
