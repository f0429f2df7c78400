from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from curuza.domain.errors import NotFoundError, ValidationError
from curuza.domain.models import (
    Actor,
    DashboardStats,
    MonthlyUnits,
    Product,
    ProductMetrics,
    ProductValuation,
    SalesByPeriod,
    TopProduct,
)
from curuza.domain.money import CENT, ZERO
from curuza.services.access_policy import AccessPolicy


def line_profit(unit_price: Decimal, purchase_price: Decimal, quantity: int) -> Decimal:
    return (unit_price - purchase_price) * quantity


def _lines(rows):
    # (sale_id, sale_date, product_id, name, qty, unit_price, discount, purchase_price)
    for r in rows:
        yield (
            str(r[0]),
            str(r[1]),
            str(r[2]),
            str(r[3]),
            int(r[4]),
            Decimal(str(r[5])),
            Decimal(str(r[6])),
            Decimal(str(r[7])),
        )


class ReportingService:
    """Read-only projections over products, sales and the stock ledger."""

    def __init__(self, repo, policy: AccessPolicy | None = None, low_stock_threshold: int = 10):
        self.repo = repo
        self.policy = policy or AccessPolicy()
        self.low_stock_threshold = int(low_stock_threshold)

    def _sales_owner(self, actor: Actor) -> Optional[str]:
        owner = self.policy.owner_filter(actor, "read", "sale")
        self.policy.require(actor, "read", "sale_item")
        return owner

    def dashboard_stats(self, actor: Actor) -> DashboardStats:
        owner = self._sales_owner(actor)
        product_owner = self.policy.owner_filter(actor, "read", "product")

        total_sales = sum((s.total_amount for s in self.repo.list_sales(owner)), ZERO)
        total_profit = sum(
            (line_profit(price, cost, qty) for *_, qty, price, _disc, cost in _lines(self.repo.sale_lines(owner))),
            ZERO,
        )
        return DashboardStats(
            total_sales=total_sales,
            total_profit=total_profit,
            total_products=len(self.repo.list_products(product_owner)),
            low_stock_count=len(self.repo.list_low_stock(self.low_stock_threshold, product_owner)),
        )

    def sales_by_period(self, actor: Actor, days: int = 7) -> list[SalesByPeriod]:
        if int(days) < 1:
            raise ValidationError("Days must be >= 1.")
        owner = self._sales_owner(actor)
        today = datetime.now(timezone.utc).date()
        start = today - timedelta(days=int(days) - 1)
        start_iso = start.isoformat()

        totals: dict[str, Decimal] = {(start + timedelta(days=i)).isoformat(): ZERO for i in range(int(days))}
        profits = dict(totals)

        for s in self.repo.list_sales(owner, start_iso):
            day = s.sale_date[:10]
            if day in totals:
                totals[day] += s.total_amount
        for _sid, sale_date, _pid, _name, qty, price, _disc, cost in _lines(self.repo.sale_lines(owner, start_iso)):
            day = sale_date[:10]
            if day in profits:
                profits[day] += line_profit(price, cost, qty)

        return [SalesByPeriod(date=d, total=totals[d], profit=profits[d]) for d in totals]

    def top_products(self, actor: Actor, since: Optional[str] = None, limit: int = 5) -> list[TopProduct]:
        owner = self._sales_owner(actor)
        units: dict[str, int] = defaultdict(int)
        revenue: dict[str, Decimal] = defaultdict(lambda: ZERO)
        names: dict[str, str] = {}
        for _sid, _date, pid, name, qty, price, disc, _cost in _lines(self.repo.sale_lines(owner, since)):
            units[pid] += qty
            revenue[pid] += price * qty - disc
            names[pid] = name

        ranked = sorted(units, key=lambda pid: (-units[pid], -revenue[pid], names[pid]))
        return [
            TopProduct(product_id=pid, name=names[pid], units_sold=units[pid], revenue=revenue[pid])
            for pid in ranked[: int(limit)]
        ]

    def low_stock(self, actor: Actor, threshold: Optional[int] = None) -> list[Product]:
        owner = self.policy.owner_filter(actor, "read", "product")
        limit = self.low_stock_threshold if threshold is None else int(threshold)
        return self.repo.list_low_stock(limit, owner)

    def inventory_valuation(self, actor: Actor) -> list[ProductValuation]:
        owner = self.policy.owner_filter(actor, "read", "product")
        out = []
        for p in self.repo.list_products(owner):
            stock_value = p.purchase_price * p.current_stock
            potential = p.sale_price * p.current_stock
            out.append(
                ProductValuation(
                    product_id=p.id,
                    name=p.name,
                    current_stock=p.current_stock,
                    stock_value=stock_value,
                    potential_revenue=potential,
                    potential_profit=potential - stock_value,
                )
            )
        return out

    def product_metrics(self, product_id: str, actor: Actor) -> ProductMetrics:
        self.policy.require(actor, "read", "product")
        self.policy.require(actor, "read", "inventory_transaction")
        product = self.repo.get_product(product_id)
        if not product:
            raise NotFoundError("Product not found.")
        owner = self._sales_owner(actor)

        sale_ids = set()
        units = 0
        revenue = cost = profit = ZERO
        by_day: dict[str, Decimal] = defaultdict(lambda: ZERO)
        by_month_units: dict[str, int] = defaultdict(int)
        by_month_revenue: dict[str, Decimal] = defaultdict(lambda: ZERO)
        for sid, sale_date, _pid, _name, qty, price, disc, purchase in _lines(
            self.repo.sale_lines(owner, None, product_id)
        ):
            line_revenue = price * qty - disc
            sale_ids.add(sid)
            units += qty
            revenue += line_revenue
            cost += purchase * qty
            profit += line_profit(price, purchase, qty)
            by_day[sale_date[:10]] += line_revenue
            by_month_units[sale_date[:7]] += qty
            by_month_revenue[sale_date[:7]] += line_revenue

        stock_in = stock_out = 0
        last_in = last_out = None
        # newest first
        for tx in self.repo.transactions_for_product(product_id):
            if tx.transaction_type == "in":
                stock_in += tx.quantity
                last_in = last_in or tx.transaction_date
            else:
                stock_out += tx.quantity
                last_out = last_out or tx.transaction_date

        avg_stock = Decimal(stock_in + product.current_stock) / 2
        turnover = (Decimal(units) / avg_stock).quantize(CENT) if avg_stock else ZERO
        best_day = max(by_day, key=lambda d: by_day[d]) if by_day else None

        return ProductMetrics(
            product_id=product_id,
            total_sales=len(sale_ids),
            total_units=units,
            total_revenue=revenue,
            total_cost=cost,
            total_profit=profit,
            average_sale_price=(revenue / units).quantize(CENT) if units else ZERO,
            profit_margin=(profit / revenue * 100).quantize(CENT) if revenue else ZERO,
            total_stock_in=stock_in,
            total_stock_out=stock_out,
            stock_turnover_rate=turnover,
            last_stock_in=last_in,
            last_stock_out=last_out,
            best_sale_day=best_day,
            best_sale_day_revenue=by_day[best_day] if best_day else ZERO,
            monthly_breakdown=[
                MonthlyUnits(month=m, units=by_month_units[m], revenue=by_month_revenue[m])
                for m in sorted(by_month_units)
            ],
        )
