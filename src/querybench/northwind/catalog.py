"""
Comparison matrix of Northwind queries.

Each QuerySpec describes one logical query in every strategy's dialect: raw
SQL with $n placeholders, a Core statement factory, and an ORM query. The
catalog registers one group per query and one case per selected strategy, so
adding a query means adding a table entry rather than another block of
near-identical benchmark code.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy import bindparam, func, select
from sqlalchemy.orm import joinedload, selectinload

from querybench.northwind.schema import (
    Customer,
    Employee,
    Order,
    OrderDetail,
    Product,
    Supplier,
    customers,
    details,
    employees,
    orders,
    products,
    suppliers,
)
from querybench.northwind.seed import NorthwindInputs
from querybench.registry import CaseRegistry, GroupBuilder, Scenario

RAW_STRATEGIES = ("raw", "raw-prepared", "raw-async")
PREPARED_STRATEGIES = ("raw-prepared", "builder-prepared")


@dataclass
class QuerySpec:
    """
    One logical query expressed for every strategy.

    Attributes:
        group: Group name shown in reports
        prepared_name: Base name of server-side prepared statements
        sql: Raw SQL using $1..$n placeholders
        builder: Zero-argument factory returning a Core statement
        orm: ORM select, or callable (session, params) -> rows
        inputs: NorthwindInputs attribute iterated once per value
        param: Bind name of the per-input parameter
        pattern: Format applied to each input value (e.g. "%{}%")
        fan_out: Issue all per-input queries concurrently where supported
        page_size: Paginate with limit/offset until a short page
        expected: Row count every case must return, from the seeded data
    """
    group: str
    prepared_name: str
    sql: str
    builder: Callable[[], Any]
    orm: Any
    inputs: Optional[str] = None
    param: str = "id"
    pattern: str = "{}"
    fan_out: bool = False
    page_size: Optional[int] = None
    expected: Optional[Callable[[NorthwindInputs], int]] = None


ORDER_SUMMARY_SQL = (
    'select "id", "shipped_date", "ship_name", "ship_city", "ship_country", '
    'count("product_id") as "products", sum("quantity") as "quantity", '
    'sum("quantity" * "unit_price") as "total_price" '
    'from "orders" as "o" left join "order_details" as "od" on "od"."order_id" = "o"."id"'
)


def order_summary_statement():
    return (
        select(
            orders.c.id,
            orders.c.shipped_date,
            orders.c.ship_name,
            orders.c.ship_city,
            orders.c.ship_country,
            func.count(details.c.product_id).label("products"),
            func.sum(details.c.quantity).label("quantity"),
            func.sum(details.c.quantity * details.c.unit_price).label("total_price"),
        )
        .select_from(orders.outerjoin(details, details.c.order_id == orders.c.id))
        .group_by(orders.c.id)
    )


def summarize_order(order: Order) -> Dict[str, Any]:
    """Aggregate an ORM order's lines the way the SQL summary does."""
    return {
        "id": order.id,
        "shipped_date": order.shipped_date,
        "ship_name": order.ship_name,
        "ship_city": order.ship_city,
        "ship_country": order.ship_country,
        "products": len(order.details),
        "quantity": sum(d.quantity for d in order.details),
        "total_price": sum(d.quantity * d.unit_price for d in order.details),
    }


def orm_all_order_summaries(session, params) -> List[Dict[str, Any]]:
    loaded = session.scalars(select(Order).options(selectinload(Order.details)))
    return [summarize_order(order) for order in loaded]


def orm_order_summary_page(session, params) -> List[Dict[str, Any]]:
    loaded = session.scalars(
        select(Order)
        .options(selectinload(Order.details))
        .order_by(Order.id)
        .limit(params["limit"])
        .offset(params["offset"])
    )
    return [summarize_order(order) for order in loaded]


def orm_order_summary(session, params) -> List[Dict[str, Any]]:
    order = session.get(Order, params["id"], options=[selectinload(Order.details)])
    return [summarize_order(order)] if order is not None else []


def orm_get(model) -> Callable[[Any, Dict[str, Any]], Any]:
    """Primary key lookup through the session (findUnique equivalent)."""
    def lookup(session, params):
        return session.get(model, params["id"])
    return lookup


def _employee_with_reportee():
    recipient = employees.alias("recipient")
    return (
        select(
            employees,
            recipient.c.last_name.label("reports_lname"),
            recipient.c.first_name.label("reports_fname"),
        )
        .select_from(employees.outerjoin(recipient, recipient.c.id == employees.c.recipient_id))
        .where(employees.c.id == bindparam("id"))
    )


QUERIES: List[QuerySpec] = [
    QuerySpec(
        group="select * from customer",
        prepared_name="Customers-getAll",
        sql='select * from "customers"',
        builder=lambda: select(customers),
        orm=select(Customer),
        expected=lambda inputs: inputs.counts["customers"],
    ),
    QuerySpec(
        group="select * from customer where id = ?",
        prepared_name="Customers-getInfo",
        sql='select * from "customers" where "customers"."id" = $1',
        builder=lambda: select(customers).where(customers.c.id == bindparam("id")),
        orm=orm_get(Customer),
        inputs="customer_ids",
    ),
    QuerySpec(
        group="select * from customer where company_name ilike ?",
        prepared_name="Customers-search",
        sql='select * from "customers" where "customers"."company_name" ilike $1',
        builder=lambda: select(customers).where(customers.c.company_name.ilike(bindparam("term"))),
        orm=select(Customer).where(Customer.company_name.ilike(bindparam("term"))),
        inputs="customer_searches",
        param="term",
        pattern="%{}%",
    ),
    QuerySpec(
        group="select * from employee",
        prepared_name="Employees-getAll",
        sql='select * from "employees"',
        builder=lambda: select(employees),
        orm=select(Employee),
        expected=lambda inputs: inputs.counts["employees"],
    ),
    QuerySpec(
        group="select * from employee where id = ? left join reportee",
        prepared_name="Employees-getInfo",
        sql=(
            'select "e1".*, "e2"."last_name" as "reports_lname", "e2"."first_name" as "reports_fname" '
            'from "employees" as "e1" left join "employees" as "e2" on "e2"."id" = "e1"."recipient_id" '
            'where "e1"."id" = $1'
        ),
        builder=_employee_with_reportee,
        orm=select(Employee).options(joinedload(Employee.recipient)).where(Employee.id == bindparam("id")),
        inputs="employee_ids",
    ),
    QuerySpec(
        group="select * from supplier",
        prepared_name="Suppliers-getAll",
        sql='select * from "suppliers"',
        builder=lambda: select(suppliers),
        orm=select(Supplier),
        expected=lambda inputs: inputs.counts["suppliers"],
    ),
    QuerySpec(
        group="select * from supplier where id = ?",
        prepared_name="Suppliers-getInfo",
        sql='select * from "suppliers" where "suppliers"."id" = $1',
        builder=lambda: select(suppliers).where(suppliers.c.id == bindparam("id")),
        orm=orm_get(Supplier),
        inputs="supplier_ids",
    ),
    QuerySpec(
        group="select * from product",
        prepared_name="Products-getAll",
        sql='select * from "products"',
        builder=lambda: select(products),
        orm=select(Product),
        expected=lambda inputs: inputs.counts["products"],
    ),
    QuerySpec(
        group="select * from product left join supplier where product.id = ?",
        prepared_name="Products-getInfo",
        sql=(
            'select "products".*, "suppliers".* from "products" '
            'left join "suppliers" on "products"."supplier_id" = "suppliers"."id" '
            'where "products"."id" = $1'
        ),
        builder=lambda: (
            select(products, suppliers)
            .select_from(products.outerjoin(suppliers, products.c.supplier_id == suppliers.c.id))
            .where(products.c.id == bindparam("id"))
        ),
        orm=select(Product).options(joinedload(Product.supplier)).where(Product.id == bindparam("id")),
        inputs="product_ids",
    ),
    QuerySpec(
        group="select * from product where product.name ilike ?",
        prepared_name="Products-search",
        sql='select * from "products" where "products"."name" ilike $1',
        builder=lambda: select(products).where(products.c.name.ilike(bindparam("term"))),
        orm=select(Product).where(Product.name.ilike(bindparam("term"))),
        inputs="product_searches",
        param="term",
        pattern="%{}%",
    ),
    QuerySpec(
        group="select all order with sum and count",
        prepared_name="Orders-getAll",
        sql=ORDER_SUMMARY_SQL + ' group by "o"."id"',
        builder=order_summary_statement,
        orm=orm_all_order_summaries,
        expected=lambda inputs: inputs.counts["orders"],
    ),
    QuerySpec(
        group="select order with sum and count using limit with offset",
        prepared_name="Orders-getLimit-withOffset",
        sql=ORDER_SUMMARY_SQL + ' group by "o"."id" order by "o"."id" asc limit $1 offset $2',
        builder=lambda: (
            order_summary_statement()
            .order_by(orders.c.id)
            .limit(bindparam("limit"))
            .offset(bindparam("offset"))
        ),
        orm=orm_order_summary_page,
        page_size=50,
        expected=lambda inputs: inputs.counts["orders"],
    ),
    QuerySpec(
        group="select order where order.id = ? with sum and count",
        prepared_name="Orders-getById",
        sql=ORDER_SUMMARY_SQL + ' where "o"."id" = $1 group by "o"."id"',
        builder=lambda: order_summary_statement().where(orders.c.id == bindparam("id")),
        orm=orm_order_summary,
        inputs="order_ids",
        fan_out=True,
    ),
    QuerySpec(
        group="select * from order_detail where order_id = ?",
        prepared_name="Orders-getInfo",
        sql=(
            'select * from "orders" as "o" '
            'left join "order_details" as "od" on "o"."id" = "od"."order_id" '
            'left join "products" as "p" on "od"."product_id" = "p"."id" '
            'where "o"."id" = $1'
        ),
        builder=lambda: (
            select(orders, details, products)
            .select_from(
                orders.outerjoin(details, orders.c.id == details.c.order_id)
                .outerjoin(products, details.c.product_id == products.c.id)
            )
            .where(orders.c.id == bindparam("id"))
        ),
        orm=(
            select(Order, OrderDetail, Product)
            .outerjoin(Order.details)
            .outerjoin(OrderDetail.product)
            .where(Order.id == bindparam("id"))
        ),
        inputs="order_ids",
    ),
]


def _query_for(spec: QuerySpec, strategy: str) -> Any:
    if strategy in RAW_STRATEGIES:
        return spec.sql
    if strategy == "orm":
        return spec.orm
    return spec.builder


def _prepared_name(spec: QuerySpec, strategy: str) -> Optional[str]:
    if strategy == "raw-prepared":
        return spec.prepared_name
    if strategy == "builder-prepared":
        return f"{spec.prepared_name}-B"
    return None


def _bind(strategy: str, values: Dict[str, Any]) -> Any:
    """Raw drivers take positional parameters, SQLAlchemy takes a dict."""
    if strategy in RAW_STRATEGIES:
        return tuple(values.values())
    return values


def _paginated_case(group: GroupBuilder, strategy: str, adapter: Any, spec: QuerySpec) -> None:
    query = _query_for(spec, strategy)
    name = _prepared_name(spec, strategy)
    limit = spec.page_size
    state: Dict[str, Any] = {}

    setup = None
    if name:
        def setup():
            state["handle"] = adapter.prepare(name, query)

    def operation():
        rows: List[Any] = []
        offset = 0
        while True:
            params = _bind(strategy, {"limit": limit, "offset": offset})
            handle = state.get("handle")
            if handle is not None:
                page = adapter.execute_prepared(handle, params)
            else:
                page = adapter.execute(query, params)
            rows.extend(page)
            offset += limit
            if len(page) < limit:
                return rows

    group.define_case(strategy, adapter, operation, setup=setup)


def scenario_for(spec: QuerySpec, strategy: str, inputs: NorthwindInputs) -> Scenario:
    """Data description of one QuerySpec executed by one strategy."""
    param_sets: Optional[Sequence[Any]] = None
    if spec.inputs:
        param_sets = [
            _bind(strategy, {spec.param: spec.pattern.format(value)})
            for value in getattr(inputs, spec.inputs)
        ]

    return Scenario(
        query=_query_for(spec, strategy),
        inputs=param_sets,
        prepare_as=_prepared_name(spec, strategy),
        fan_out=spec.fan_out,
    )


def register_catalog(
    registry: CaseRegistry,
    adapters: Dict[str, Any],
    inputs: NorthwindInputs,
    specs: Sequence[QuerySpec] = QUERIES,
) -> None:
    """
    Register one group per QuerySpec with one case per adapter.

    Args:
        registry: Registry to populate
        adapters: Strategy identifier to ExecutorAdapter, in report order
        inputs: Input sets derived from the seeded data
        specs: Query specs (defaults to the full catalog)
    """
    for spec in specs:
        expected = spec.expected(inputs) if spec.expected is not None else None
        group = registry.define_group(spec.group, expected_rows=expected)

        for strategy, adapter in adapters.items():
            if spec.page_size:
                _paginated_case(group, strategy, adapter, spec)
            else:
                group.define_scenario(strategy, adapter, scenario_for(spec, strategy, inputs))
