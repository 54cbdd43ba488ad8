from dataclasses import dataclass
from datetime import date

from recurrence import add_months


@dataclass(frozen=True)
class ScheduledPayment:
    payment_number: int
    due_date: date
    amount_cents: int


def split_amount(total_cents: int, number_of_payments: int) -> list[int]:
    """Equal shares of ``total_cents``; the last share absorbs the remainder."""
    if total_cents <= 0:
        raise ValueError("Total amount must be positive")
    if number_of_payments < 1:
        raise ValueError("Number of payments must be at least 1")
    base, remainder = divmod(total_cents, number_of_payments)
    shares = [base] * number_of_payments
    shares[-1] += remainder
    return shares


def payment_schedule(
    first_payment_date: date, total_cents: int, number_of_payments: int
) -> list[ScheduledPayment]:
    shares = split_amount(total_cents, number_of_payments)
    return [
        ScheduledPayment(
            payment_number=index + 1,
            due_date=add_months(first_payment_date, index),
            amount_cents=amount,
        )
        for index, amount in enumerate(shares)
    ]


def settlement_description(
    plan_description: str, payment_number: int, number_of_payments: int
) -> str:
    return f"{plan_description} (Cuota {payment_number}/{number_of_payments})"
