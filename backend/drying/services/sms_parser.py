"""
Parse Luku recharge confirmation SMS messages, e.g.

    TOKEN 5375 8923 5938 7140 3552 1399.3KWH Cost 408606.56 VAT 18% 73549.18
    EWURA 1% 4086.07 REA 3% 12258.19 Debt Collected 1500.00 TOTAL TZS 500000.00
    2025-10-03 18:08
"""
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from drying.services.errors import SmsParseError

KWH_RE = re.compile(r'([\d.]+)\s*KWH', re.IGNORECASE)
COST_RE = re.compile(r'\bCost\s+([\d,.]+)')
VAT_RE = re.compile(r'\bVAT\s+\d+(?:\.\d+)?%\s+([\d,.]+)')
EWURA_RE = re.compile(r'\bEWURA\s+\d+(?:\.\d+)?%\s+([\d,.]+)')
REA_RE = re.compile(r'\bREA\s+\d+(?:\.\d+)?%\s+([\d,.]+)')
DEBT_RE = re.compile(r'Debt\s+Collected\s+([\d,.]+)', re.IGNORECASE)
TOTAL_RE = re.compile(r'\bTOTAL\s+([A-Z]{3})\s+([\d,.]+)')
DATE_RE = re.compile(r'(\d{4}-\d{2}-\d{2}\s+\d{2}:\d{2})')


@dataclass
class ParsedRecharge:
    token: str
    kwh_amount: float
    total_paid: float
    currency: str
    recharge_time: datetime
    base_cost: Optional[float] = None
    vat: Optional[float] = None
    ewura_fee: Optional[float] = None
    rea_fee: Optional[float] = None
    debt_collected: Optional[float] = None

    @property
    def fees_total(self) -> float:
        """Sum of the itemized charges printed on the receipt."""
        return sum(
            v or 0.0
            for v in (self.base_cost, self.vat, self.ewura_fee, self.rea_fee, self.debt_collected)
        )

    @property
    def unaccounted_amount(self) -> float:
        return round(self.total_paid - self.fees_total, 2)


def _to_float(raw: str) -> float:
    return float(raw.replace(',', '').rstrip('.'))


def _optional_amount(pattern: re.Pattern, text: str) -> Optional[float]:
    match = pattern.search(text)
    return _to_float(match.group(1)) if match else None


def _split_token_and_kwh(text: str):
    """
    The vendor prints the kWh right after the token digits with only a space
    between them ("... 8392 2802.8KWH"), so the token is everything between
    TOKEN and the kWh figure.
    """
    kwh_match = KWH_RE.search(text)
    token_start = re.search(r'TOKEN\s+', text, re.IGNORECASE)

    token = None
    if token_start:
        end = kwh_match.start() if kwh_match and kwh_match.start() > token_start.end() else len(text)
        digits = re.match(r'[\d\s]+', text[token_start.end():end])
        if digits:
            token = re.sub(r'\s+', '', digits.group(0)) or None

    kwh = _to_float(kwh_match.group(1)) if kwh_match else None
    return token, kwh


def parse_recharge_sms(text: str, received_at: Optional[datetime] = None) -> ParsedRecharge:
    """
    Extract recharge fields from SMS text.
    TOKEN, the kWh quantity and the TOTAL are required. When the message has
    no date, `received_at` is used; without either the SMS is rejected.
    """
    text = " ".join((text or "").split())

    token, kwh = _split_token_and_kwh(text)
    total_match = TOTAL_RE.search(text)
    date_match = DATE_RE.search(text)

    missing = []
    if not token:
        missing.append("token")
    if kwh is None:
        missing.append("kwh")
    if not total_match:
        missing.append("total")
    if not date_match and received_at is None:
        missing.append("date")
    if missing:
        raise SmsParseError(missing)

    if date_match:
        try:
            recharge_time = datetime.strptime(date_match.group(1), '%Y-%m-%d %H:%M')
        except ValueError:
            raise SmsParseError(["date"])
    else:
        recharge_time = received_at

    return ParsedRecharge(
        token=token,
        kwh_amount=kwh,
        total_paid=_to_float(total_match.group(2)),
        currency=total_match.group(1),
        recharge_time=recharge_time,
        base_cost=_optional_amount(COST_RE, text),
        vat=_optional_amount(VAT_RE, text),
        ewura_fee=_optional_amount(EWURA_RE, text),
        rea_fee=_optional_amount(REA_RE, text),
        debt_collected=_optional_amount(DEBT_RE, text),
    )
