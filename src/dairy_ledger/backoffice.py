"""Back office session: loads the ledgers for an actor and wires them together."""

import argparse
import asyncio
from datetime import date
from typing import Any

import structlog

from dairy_ledger.approval import ApprovalResult, ApprovalWorkflow
from dairy_ledger.billing import BillingEngine
from dairy_ledger.config import Settings, get_settings
from dairy_ledger.errors import (
    NotAuthenticatedError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from dairy_ledger.imports import DeliveryImport, parse_customer_csv, parse_delivery_csv
from dairy_ledger.ledgers import (
    CustomerLedger,
    DeliveryLedger,
    ImportResult,
    OrderLedger,
    PaymentLedger,
    PendingDeliveryQueue,
    SubmissionResult,
)
from dairy_ledger.models import Actor, Customer, Role
from dairy_ledger.quantities import DaySheetLine, build_day_sheet
from dairy_ledger.store import RecordStore, RecordStoreClient

logger = structlog.get_logger(__name__)

PROFILES = "profiles"


async def resolve_actor(client: RecordStoreClient) -> Actor:
    """Resolve the principal behind the client's access token.

    Admin and staff users have a row in ``profiles``; any other signed-in
    user is a customer.
    """
    user = await client.get_user()
    rows = await client.select(PROFILES, {"id": user["id"]}, columns="role,status")
    role = Role(rows[0]["role"]) if rows else Role.CUSTOMER
    return Actor(user_id=str(user["id"]), role=role)


class BackOffice:
    """Ledgers, approval workflow and billing for one actor's session."""

    def __init__(self, store: RecordStore, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.store = store
        self.deliveries = DeliveryLedger(store)
        self.payments = PaymentLedger(store)
        self.customers = CustomerLedger(store, self.deliveries, self.payments)
        self.orders = OrderLedger(store)
        self.pending = PendingDeliveryQueue(store)
        self.approval = ApprovalWorkflow(self.pending, self.deliveries)
        self.actor: Actor | None = None
        self._logger = logger.bind(component="backoffice")

    def _require_actor(self, actor: Actor | None = None) -> Actor:
        actor = actor or self.actor
        if actor is None:
            raise NotAuthenticatedError("not authenticated")
        return actor

    def _require_admin(self, actor: Actor | None = None) -> Actor:
        actor = self._require_actor(actor)
        if not actor.is_admin:
            raise PermissionDeniedError("This action requires the admin role")
        return actor

    async def load(self, actor: Actor | None) -> None:
        """Populate the ledgers visible to ``actor``."""
        actor = self._require_actor(actor)
        self.actor = actor

        if actor.role == Role.CUSTOMER:
            await self.customers.load({"userId": actor.user_id})
            if not len(self.customers):
                self._logger.warning("session_without_profile", user_id=actor.user_id)
                self.actor = None
                raise NotAuthenticatedError(
                    "This account is not associated with an admin, staff or customer profile"
                )
            await asyncio.gather(self.deliveries.load(), self.payments.load())
            self.orders.load_rows([])
            self.pending.load_rows([])
        else:
            await asyncio.gather(
                self.customers.load(),
                self.deliveries.load(),
                self.orders.load(),
                self.payments.load(),
                self.pending.load(),
            )

        self._logger.info(
            "session_loaded",
            role=actor.role.value,
            customers=len(self.customers),
            deliveries=len(self.deliveries),
            payments=len(self.payments),
            pending=len(self.pending),
            legacy_mode=self.customers.legacy_mode,
        )

    def billing(self) -> BillingEngine:
        """Snapshot billing engine over the currently loaded ledgers."""
        return BillingEngine(
            self.customers.all(),
            self.deliveries.all(),
            self.payments.all(),
            orders=self.orders.all(),
            epsilon=self.settings.billing_epsilon,
        )

    def day_sheet(
        self, day: date, edits: dict[Any, float] | None = None, search: str = ""
    ) -> list[DaySheetLine]:
        return build_day_sheet(
            self.customers.active(),
            day,
            orders=self.orders.for_date(day),
            pending=self.pending.for_date(day),
            edits=edits,
            search=search,
        )

    async def submit_day(self, day: date, entries: dict[Any, Any]) -> SubmissionResult:
        return await self.pending.submit_batch(self._require_actor(), day, entries)

    async def approve(self, day: date) -> ApprovalResult:
        return await self.approval.approve_date(self.actor, day)

    async def reject(self, day: date) -> int:
        return await self.approval.reject_date(self.actor, day)

    async def import_customers(self, text: str) -> ImportResult:
        actor = self._require_admin()
        return await self.customers.bulk_import(actor, parse_customer_csv(text))

    async def import_deliveries(self, text: str) -> DeliveryImport:
        """Upsert deliveries from a ``customerName,date,quantity`` CSV."""
        self._require_admin()
        parsed = parse_delivery_csv(text, self.customers.all())
        if not parsed.deliveries:
            raise ValidationError("No deliveries matched a known customer")
        parsed.deliveries = await self.deliveries.upsert_many(parsed.deliveries)
        self._logger.info(
            "deliveries_imported",
            imported=len(parsed.deliveries),
            unknown_names=len(parsed.unknown_names),
            skipped=len(parsed.skipped_lines),
        )
        return parsed


def _find_customer(office: BackOffice, customer_id: str) -> Customer:
    # ids are opaque: integers in older stores, UUIDs in newer ones
    for customer in office.customers.all():
        if str(customer.id) == customer_id:
            return customer
    raise NotFoundError(f"Customer {customer_id} not found")


async def _run_command(args: Any, client: RecordStoreClient) -> str:
    office = BackOffice(client)
    actor = await resolve_actor(client)
    await office.load(actor)

    if args.command == "pending":
        dates = office.pending.pending_dates()
        if not dates:
            return "No pending deliveries."
        return "\n".join(f"{p.date.isoformat()}  {p.count} entries" for p in dates)

    if args.command == "approve":
        result = await office.approve(date.fromisoformat(args.date))
        return result.to_text()

    engine = office.billing()

    if args.command == "balance":
        balances = (
            engine.bill_statuses(args.month) if args.month else engine.customer_balances()
        )
        lines = [
            f"{b.customer.name:<30} billed {b.billed:>10.2f}  paid {b.paid:>10.2f}  "
            f"due {b.outstanding:>10.2f}  {b.status.value}"
            for b in balances
        ]
        lines.append(f"Total outstanding: {engine.total_outstanding():.2f}")
        return "\n".join(lines)

    if args.command == "summary":
        if args.period == "day":
            return engine.daily_summary(date.fromisoformat(args.value)).to_text()
        return engine.monthly_summary(args.value).to_text()

    if args.command == "bill":
        customer = _find_customer(office, args.customer_id)
        statement = engine.monthly_statement(customer, args.month)
        settings = office.settings
        text = statement.to_text(
            settings.business_name, settings.upi_payee, settings.business_contact
        )
        link = statement.upi_link(settings.upi_payee, settings.business_name)
        return f"{text}\n\n{link}" if link else text

    raise ValidationError(f"Unknown command: {args.command}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dairy-ledger",
        description="Dairy delivery back office",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
The session acts as the user whose token is in STORE_ACCESS_TOKEN.

Examples:
  %(prog)s pending                      # Dates with submissions awaiting approval
  %(prog)s approve 2024-05-01           # Approve one date's submissions
  %(prog)s balance --month 2024-05      # Bill status per active customer
  %(prog)s bill 42 --month 2024-05      # Monthly bill for customer 42
        """,
    )
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("pending", help="List dates with pending deliveries")

    approve = commands.add_parser("approve", help="Approve a date's pending deliveries")
    approve.add_argument("date", help="Delivery date (YYYY-MM-DD)")

    balance = commands.add_parser("balance", help="Customer balances")
    balance.add_argument("--month", help="Restrict to a month (YYYY-MM)")

    summary = commands.add_parser("summary", help="Delivery summary")
    summary.add_argument("period", choices=["day", "month"])
    summary.add_argument("value", help="YYYY-MM-DD for a day, YYYY-MM for a month")

    bill = commands.add_parser("bill", help="Monthly bill for a customer")
    bill.add_argument("customer_id", help="Customer id as stored (integer or UUID)")
    bill.add_argument("--month", required=True, help="Billing month (YYYY-MM)")
    return parser


async def main(argv: list[str] | None = None) -> None:
    """Command line entry point.

    Usage:
        dairy-ledger pending
        dairy-ledger approve 2024-05-01
        dairy-ledger balance --month 2024-05
        dairy-ledger summary day 2024-05-01
        dairy-ledger summary month 2024-05
        dairy-ledger bill 42 --month 2024-05
    """
    import sys

    from dairy_ledger.config import configure_logging
    from dairy_ledger.errors import LedgerError, friendly_message

    configure_logging()

    args = build_parser().parse_args(argv)
    logger.info("dairy_ledger_command", command=args.command)

    try:
        async with RecordStoreClient() as client:
            print(await _run_command(args, client))
    except LedgerError as e:
        logger.error("command_failed", command=args.command, error=e.message)
        print(friendly_message(e), file=sys.stderr)
        sys.exit(1)
    except ValueError as e:
        print(f"Invalid argument: {e}", file=sys.stderr)
        sys.exit(2)


def run() -> None:
    """Console script wrapper."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
