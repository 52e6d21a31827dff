from datetime import datetime, timezone

import pytest

from src.dispatch.errors import ValidationError
from src.dispatch.services.settlement.payments import (
    REGIONAL_WALLETS,
    GatewayResponse,
    RefundMethod,
    RefundRequest,
    WalletProvider,
    calculate_taxes,
    create_mobile_wallet_payment,
    get_available_payment_methods,
    is_moroccan_phone,
    normalize_phone_number,
    prepare_gateway_payment,
    process_refund,
    validate_gateway_response,
    validate_mobile_wallet_payment,
    validate_refund_request,
    validate_rib,
)

NOW = datetime(2024, 6, 3, 12, 0, tzinfo=timezone.utc)
VALID_RIB = "007 0000 000000000000000 31"


def _gateway_request(**overrides):
    params = dict(
        customer_email="client@example.ma",
        customer_phone="0612345678",
        return_url="https://example.ma/ok",
        fail_url="https://example.ma/fail",
    )
    params.update(overrides)
    return params


def test_phone_normalization():
    assert normalize_phone_number("06 12-34 56 78") == "+212612345678"
    assert normalize_phone_number("00212612345678") == "+212612345678"
    assert normalize_phone_number("+212 7 12 34 56 78") == "+212712345678"
    assert is_moroccan_phone("0612345678")
    assert not is_moroccan_phone("+33612345678")
    assert not is_moroccan_phone("0812345678")


def test_prepare_gateway_payment():
    request = prepare_gateway_payment("m-1", "O1", 15000, **_gateway_request())
    assert request.currency == "MAD"
    assert request.customer_phone == "+212612345678"
    assert request.language == "fr"

    with pytest.raises(ValidationError):
        prepare_gateway_payment("m-1", "O1", 500, **_gateway_request())
    with pytest.raises(ValidationError):
        prepare_gateway_payment("m-1", "O1", 15000, language="de", **_gateway_request())


def test_gateway_response_shape():
    assert validate_gateway_response(GatewayResponse("tx-1", "approved", 15000)).valid
    bad = validate_gateway_response(GatewayResponse("", "weird", 0))
    assert not bad.valid
    assert len(bad.errors) == 3


def test_mobile_wallet_checks():
    assert validate_mobile_wallet_payment("orange_money", "0612345678", 5000).valid
    too_small = validate_mobile_wallet_payment(WalletProvider.WAFACASH, "0612345678", 100)
    assert not too_small.valid
    assert "below minimum" in too_small.errors[0]
    unknown = validate_mobile_wallet_payment("paypal", "0612345678", 5000)
    assert unknown.errors == ["Unknown wallet provider: paypal"]


def test_create_mobile_wallet_payment():
    payment = create_mobile_wallet_payment("cashplus", "0612345678", 5000, "O1")
    assert payment.provider is WalletProvider.CASHPLUS
    assert payment.status == "initiated"
    with pytest.raises(ValidationError):
        create_mobile_wallet_payment("cashplus", "12345", 5000, "O1")


def test_rib_validation():
    result = validate_rib(VALID_RIB)
    assert result.is_valid
    assert result.bank_name == "Attijariwafa Bank"
    assert result.rib_key == "31"

    wrong_key = validate_rib(VALID_RIB[:-2] + "32")
    assert not wrong_key.is_valid
    assert "expected 31" in wrong_key.errors[0]
    assert not validate_rib("1234").is_valid
    assert not validate_rib("00700000000000000000003X").is_valid


def test_taxes():
    taxes = calculate_taxes(1000)
    assert (taxes.vat_amount, taxes.communal_tax, taxes.total_with_tax) == (200, 0, 1200)


def test_available_payment_methods():
    big_city = get_available_payment_methods(600_000, "Casablanca")
    assert not big_city.cod
    assert big_city.bank_transfer
    assert len(big_city.available_wallets) == len(WalletProvider)

    small_order = get_available_payment_methods(500, "Ouarzazate")
    assert small_order.cod
    assert not small_order.card
    assert small_order.available_wallets == list(REGIONAL_WALLETS)


def test_refund_validation():
    validate_refund_request(RefundRequest("tx-1", 5000, "cold food"), original_amount=10000)
    with pytest.raises(ValidationError) as excinfo:
        validate_refund_request(RefundRequest("", 20000, "no"), original_amount=10000)
    message = str(excinfo.value)
    assert "exceeds original" in message
    assert "Transaction ID" in message
    assert "reason" in message


def test_process_refund():
    result = process_refund(RefundRequest("tx-1", 5000, "cold food", RefundMethod.WALLET_CREDIT), now=NOW)
    assert result.refund_id == f"ref-tx-1-{int(NOW.timestamp() * 1000)}"
    assert result.method is RefundMethod.WALLET_CREDIT
    assert result.processed_at == NOW
    with pytest.raises(ValidationError):
        process_refund(RefundRequest("tx-1", 0, "cold food"))
