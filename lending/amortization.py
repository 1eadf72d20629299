"""Repayment schedule arithmetic.

Everything here is pure: amounts go in and come out as integer minor units,
rates are annual percentages. Intermediate values use ``Decimal`` and are
rounded half-up to a whole minor unit before they reach a schedule line.
"""
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Union

from dateutil.relativedelta import relativedelta

from .models import FeeType, InterestType, TermPeriod

HUNDRED = Decimal(100)

PERIODS_PER_YEAR = {
    TermPeriod.DAYS: 365,
    TermPeriod.WEEKS: 52,
    TermPeriod.MONTHS: 12,
    TermPeriod.YEARS: 1,
}


@dataclass(frozen=True)
class ScheduleLine:
    installment_no: int
    due_date: date
    principal_due: int
    interest_due: int
    outstanding_after: int

    @property
    def total_due(self) -> int:
        return self.principal_due + self.interest_due


def quantize_money(value: Decimal) -> int:
    return int(Decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def as_decimal(value: Union[Decimal, int, float, str]) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def parse_term_period(value: str) -> TermPeriod:
    try:
        return TermPeriod(value)
    except ValueError:
        raise ValueError(f"Unsupported term period: {value!r}") from None


def periods_per_year(term_period: str) -> int:
    return PERIODS_PER_YEAR[parse_term_period(term_period)]


def period_delta(term_period: str, count: int = 1) -> relativedelta:
    unit = parse_term_period(term_period)
    if unit == TermPeriod.DAYS:
        return relativedelta(days=count)
    if unit == TermPeriod.WEEKS:
        return relativedelta(weeks=count)
    if unit == TermPeriod.MONTHS:
        return relativedelta(months=count)
    return relativedelta(years=count)


def due_dates(start: date, term: int, term_period: str) -> List[date]:
    # Offsets are taken from the start date so month-end dates do not drift.
    return [start + period_delta(term_period, idx) for idx in range(1, term + 1)]


def periodic_rate(rate_annual_pct, term_period: str) -> Decimal:
    return as_decimal(rate_annual_pct) / HUNDRED / Decimal(periods_per_year(term_period))


def flat_total_interest(principal: int, rate_annual_pct, term: int, term_period: str) -> int:
    # Divide once at the end so term fractions like 1/52 do not truncate early.
    return quantize_money(
        Decimal(principal) * as_decimal(rate_annual_pct) * Decimal(term)
        / (HUNDRED * Decimal(periods_per_year(term_period)))
    )


def calculate_installment(principal: int, rate_annual_pct, term: int, term_period: str) -> int:
    """Fixed reducing-balance installment ``P*r*(1+r)^N / ((1+r)^N - 1)``."""

    r = periodic_rate(rate_annual_pct, term_period)
    if r == 0:
        return quantize_money(Decimal(principal) / Decimal(term))
    growth = (1 + r) ** term
    return quantize_money(Decimal(principal) * r * growth / (growth - 1))


def _split_evenly(total: int, parts: int) -> List[int]:
    share = total // parts
    lines = [share] * parts
    lines[-1] += total - share * parts
    return lines


def flat_schedule(principal: int, rate_annual_pct, term: int, term_period: str, start: date) -> List[ScheduleLine]:
    total_interest = flat_total_interest(principal, rate_annual_pct, term, term_period)
    principals = _split_evenly(principal, term)
    interests = _split_evenly(total_interest, term)

    lines = []
    outstanding = principal
    for idx, due in enumerate(due_dates(start, term, term_period), start=1):
        outstanding -= principals[idx - 1]
        lines.append(
            ScheduleLine(
                installment_no=idx,
                due_date=due,
                principal_due=principals[idx - 1],
                interest_due=interests[idx - 1],
                outstanding_after=outstanding,
            )
        )
    return lines


def reducing_balance_schedule(
    principal: int, rate_annual_pct, term: int, term_period: str, start: date
) -> List[ScheduleLine]:
    installment = calculate_installment(principal, rate_annual_pct, term, term_period)
    r = periodic_rate(rate_annual_pct, term_period)

    lines = []
    outstanding = principal
    for idx, due in enumerate(due_dates(start, term, term_period), start=1):
        interest = quantize_money(Decimal(outstanding) * r)
        if idx == term:
            # Last line clears whatever rounding left behind.
            principal_part = outstanding
        else:
            principal_part = min(max(installment - interest, 0), outstanding)
        outstanding -= principal_part
        lines.append(
            ScheduleLine(
                installment_no=idx,
                due_date=due,
                principal_due=principal_part,
                interest_due=interest,
                outstanding_after=outstanding,
            )
        )
    return lines


def compute_schedule(
    principal: int,
    rate_annual_pct,
    term: int,
    term_period: str,
    interest_type: str,
    disbursed_at: Union[date, datetime],
) -> List[ScheduleLine]:
    if principal <= 0:
        raise ValueError("Principal must be positive.")
    if term <= 0:
        raise ValueError("Term must be at least one period.")
    if as_decimal(rate_annual_pct) < 0:
        raise ValueError("Interest rate cannot be negative.")

    start = disbursed_at.date() if isinstance(disbursed_at, datetime) else disbursed_at
    if interest_type == InterestType.FLAT:
        return flat_schedule(principal, rate_annual_pct, term, term_period, start)
    if interest_type == InterestType.REDUCING_BALANCE:
        return reducing_balance_schedule(principal, rate_annual_pct, term, term_period, start)
    raise ValueError(f"Unsupported interest type: {interest_type!r}")


def total_interest(lines: List[ScheduleLine]) -> int:
    return sum(line.interest_due for line in lines)


def schedule_summary(lines: List[ScheduleLine]) -> dict:
    principal = sum(line.principal_due for line in lines)
    interest = total_interest(lines)
    return {
        "installments": len(lines),
        "total_principal": principal,
        "total_interest": interest,
        "total_payable": principal + interest,
        "first_due_date": lines[0].due_date if lines else None,
        "last_due_date": lines[-1].due_date if lines else None,
    }


def compute_fee(fee, fee_type: str, principal: int) -> int:
    fee = as_decimal(fee)
    if fee_type == FeeType.FIXED:
        return quantize_money(fee)
    if fee_type == FeeType.PERCENTAGE:
        return quantize_money(Decimal(principal) * fee / HUNDRED)
    raise ValueError(f"Unsupported fee type: {fee_type!r}")


def compute_late_penalty(overdue_principal: int, late_penalty_rate, days_late: int) -> int:
    if not late_penalty_rate or overdue_principal <= 0 or days_late <= 0:
        return 0
    return quantize_money(Decimal(overdue_principal) * as_decimal(late_penalty_rate) / HUNDRED * Decimal(days_late))
