from datetime import datetime

import pytest

from drying.services.errors import SmsParseError
from drying.services.sms_parser import parse_recharge_sms

RECEIPT = (
    "Malipo yamekamilika.19ae2eb891659aeb 9007253370934415323 "
    "TOKEN 1471 8551 8870 2747 8392 2802.8KWH Cost 818442.63 VAT 18% 147319.67 "
    "EWURA 1% 8184.43 REA 3% 24553.27 Debt Collected 1500.00 TOTAL TZS 1000000.00 "
    "2025-12-03 09:34"
)


def test_parse_full_receipt():
    parsed = parse_recharge_sms(RECEIPT)

    assert parsed.token == "14718551887027478392"
    assert parsed.kwh_amount == pytest.approx(2802.8)
    assert parsed.total_paid == pytest.approx(1_000_000.0)
    assert parsed.currency == "TZS"
    assert parsed.recharge_time == datetime(2025, 12, 3, 9, 34)
    assert parsed.base_cost == pytest.approx(818442.63)
    assert parsed.vat == pytest.approx(147319.67)
    assert parsed.ewura_fee == pytest.approx(8184.43)
    assert parsed.rea_fee == pytest.approx(24553.27)
    assert parsed.debt_collected == pytest.approx(1500.0)
    assert parsed.unaccounted_amount == pytest.approx(0.0)


def test_parse_receipt_split_over_lines():
    text = (
        "TOKEN 5375 8923 5938 7140 3552\n1399.3KWH\nCost 408606.56\n"
        "TOTAL TZS 500000.00\n2025-10-03 18:08"
    )
    parsed = parse_recharge_sms(text)

    assert parsed.token == "53758923593871403552"
    assert parsed.kwh_amount == pytest.approx(1399.3)
    assert parsed.vat is None
    assert parsed.unaccounted_amount == pytest.approx(500_000.0 - 408606.56)


def test_received_at_used_when_date_missing():
    received = datetime(2025, 12, 4, 10, 0)
    parsed = parse_recharge_sms(RECEIPT.replace(" 2025-12-03 09:34", ""), received_at=received)

    assert parsed.recharge_time == received


def test_missing_date_without_received_at():
    with pytest.raises(SmsParseError) as exc:
        parse_recharge_sms(RECEIPT.replace(" 2025-12-03 09:34", ""))

    assert exc.value.missing_fields == ["date"]


def test_missing_total_and_kwh():
    with pytest.raises(SmsParseError) as exc:
        parse_recharge_sms("TOKEN 1471 8551 8870 2747 8392 Cost 818442.63 2025-12-03 09:34")

    assert exc.value.missing_fields == ["kwh", "total"]
    assert "Invalid SMS format" in str(exc.value)


def test_unrelated_message():
    with pytest.raises(SmsParseError) as exc:
        parse_recharge_sms("Habari, salio lako ni 0.00")

    assert exc.value.missing_fields == ["token", "kwh", "total", "date"]
