from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from curuza.config import Settings, load_settings
from curuza.logging_config import setup_logging
from curuza.repositories.sqlite_repo import SqliteRepository
from curuza.services.access_policy import AccessPolicy
from curuza.services.customer_service import CustomerService
from curuza.services.inventory_service import InventoryService
from curuza.services.ledger_service import StockLedger
from curuza.services.purchase_plan_service import PurchasePlanService
from curuza.services.reporting_service import ReportingService
from curuza.services.sales_service import SalesService
from curuza.services.session_service import SessionService


@dataclass(frozen=True)
class AppContainer:
    repo: SqliteRepository
    policy: AccessPolicy
    ledger: StockLedger
    inventory: InventoryService
    sales: SalesService
    customers: CustomerService
    plans: PurchasePlanService
    reporting: ReportingService
    sessions: SessionService


def build_container(db_path: Path | str, settings: Settings | None = None) -> AppContainer:
    timeout = settings.db_timeout if settings else 30.0
    repo = SqliteRepository(db_path, timeout=timeout)
    repo.init_db()

    policy = AccessPolicy()
    ledger = StockLedger(repo, policy)
    inventory = InventoryService(repo, ledger, policy)
    sales = SalesService(repo, ledger, policy)
    customers = CustomerService(repo, policy)
    plans = PurchasePlanService(repo, ledger, policy)
    reporting = ReportingService(
        repo,
        policy,
        low_stock_threshold=settings.low_stock_threshold if settings else 10,
    )
    sessions = SessionService(
        repo,
        identity_url=settings.identity_url if settings else "",
        api_key=settings.identity_api_key if settings else "",
        policy=policy,
    )

    return AppContainer(
        repo=repo,
        policy=policy,
        ledger=ledger,
        inventory=inventory,
        sales=sales,
        customers=customers,
        plans=plans,
        reporting=reporting,
        sessions=sessions,
    )


def bootstrap(settings: Settings | None = None) -> AppContainer:
    settings = settings or load_settings()
    setup_logging(settings.logs_dir, level=settings.log_level)
    return build_container(settings.db_path, settings)
