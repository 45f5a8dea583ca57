"""Prometheus metrics for accrual, withdrawals, investments and deposits"""

from prometheus_client import Counter, Histogram

# Accrual metrics
accrual_rows_counter = Counter(
    "ledger_accrual_rows_total",
    "Accrual upserts by outcome",
    ["outcome"],  # created | skipped
)

accrual_failure_counter = Counter(
    "ledger_accrual_failures_total",
    "Investments whose accrual failed during a run",
)

# Withdrawal metrics
withdrawal_request_counter = Counter(
    "ledger_withdrawal_requests_total",
    "Withdrawal requests by source and outcome",
    ["source", "outcome"],  # earnings|wallet, reserved | <error code>
)

withdrawal_finalization_counter = Counter(
    "ledger_withdrawal_finalizations_total",
    "Operator actions on withdrawals",
    ["action"],  # confirmed | failed | processing
)

# Investment / referral metrics
investment_counter = Counter(
    "ledger_investments_total",
    "Investments created by plan tier",
    ["tier"],
)

referral_bonus_counter = Counter(
    "ledger_referral_bonuses_total",
    "Referral bonus attempts by outcome",
    ["outcome"],  # awarded | skipped | error
)

# Deposit metrics
deposit_counter = Counter(
    "ledger_deposits_total",
    "Deposits seen by outcome",
    ["outcome"],  # credited | duplicate | unmatched
)

chain_poll_failure_counter = Counter(
    "ledger_chain_poll_failures_total",
    "Failed chain-tracking API calls",
    ["network"],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_accrual(created: int, skipped: int, failures: int) -> None:
    if created:
        accrual_rows_counter.labels(outcome="created").inc(created)
    if skipped:
        accrual_rows_counter.labels(outcome="skipped").inc(skipped)
    if failures:
        accrual_failure_counter.inc(failures)
