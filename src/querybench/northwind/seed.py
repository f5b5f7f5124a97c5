"""
Deterministic Northwind fixture data.

Every strategy's backend is seeded with the same rows (fixed random seed) so
cases in a group read identical data. Also derives the input sets the
catalog iterates over: id lists and ILIKE search terms.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, List

import numpy as np
import structlog
from sqlalchemy import Engine, insert

from querybench.northwind.schema import (
    Base,
    customers,
    details,
    employees,
    orders,
    products,
    suppliers,
)

logger = structlog.get_logger()

BASE_SIZES = {
    "customers": 90,
    "employees": 10,
    "suppliers": 30,
    "products": 80,
    "orders": 800,
}

COMPANY_WORDS = [
    "Alfreds", "Blauer", "Bottom", "Centro", "Comercio", "Consolidated", "Drachen",
    "Ernst", "Familia", "Folk", "Frankenversand", "Galeria", "Hanari", "Island",
    "Königlich", "Lazy", "Maison", "Morgenstern", "North", "Ottilies", "Piccolo",
    "Queen", "Rattlesnake", "Santé", "Split", "Tortuga", "Vaffeljernet", "Wolski",
]
COMPANY_SUFFIXES = ["Trading", "Markets", "Delikatessen", "Imports", "Foods", "Export", "Co."]
PRODUCT_WORDS = [
    "Chai", "Chang", "Aniseed", "Cajun", "Gumbo", "Boysenberry", "Dried", "Pears",
    "Cranberry", "Sauce", "Mishi", "Kobe", "Ikura", "Queso", "Cabrales", "Konbu",
    "Tofu", "Genen", "Shouyu", "Pavlova", "Alice", "Mutton", "Carnarvon", "Tigers",
]
FIRST_NAMES = ["Nancy", "Andrew", "Janet", "Margaret", "Steven", "Michael", "Robert", "Laura", "Anne"]
LAST_NAMES = ["Davolio", "Fuller", "Leverling", "Peacock", "Buchanan", "Suyama", "King", "Callahan", "Dodsworth"]
CITIES = ["Berlin", "London", "Madrid", "Seattle", "Tokyo", "Lyon", "Sao Paulo", "Oslo", "Graz", "Boston"]
COUNTRIES = ["Germany", "UK", "Spain", "USA", "Japan", "France", "Brazil", "Norway", "Austria", "USA"]
TITLES = ["Sales Representative", "Owner", "Marketing Manager", "Order Administrator", "Accounting Manager"]


@dataclass
class NorthwindInputs:
    """Input sets for per-id and search groups, plus seeded table sizes"""
    customer_ids: List[int] = field(default_factory=list)
    employee_ids: List[int] = field(default_factory=list)
    supplier_ids: List[int] = field(default_factory=list)
    product_ids: List[int] = field(default_factory=list)
    order_ids: List[int] = field(default_factory=list)
    customer_searches: List[str] = field(default_factory=list)
    product_searches: List[str] = field(default_factory=list)
    counts: Dict[str, int] = field(default_factory=dict)


def table_sizes(scale: int = 1) -> Dict[str, int]:
    """Row counts per table for a dataset scale factor."""
    return {table: size * scale for table, size in BASE_SIZES.items()}


def _choice(rng: np.random.Generator, values: List[str]) -> str:
    return values[int(rng.integers(len(values)))]


def _company(rng: np.random.Generator) -> str:
    return f"{_choice(rng, COMPANY_WORDS)} {_choice(rng, COMPANY_WORDS)} {_choice(rng, COMPANY_SUFFIXES)}"


def generate_rows(scale: int = 1, seed: int = 42) -> Dict[str, List[dict]]:
    """
    Generate reproducible rows for every table.

    Args:
        scale: Dataset scale factor (multiplies BASE_SIZES)
        seed: Random seed for reproducibility

    Returns:
        Table name to list of row dicts
    """
    rng = np.random.default_rng(seed)
    sizes = table_sizes(scale)
    epoch = date(1996, 7, 4)

    customer_rows = [
        {
            "id": i,
            "company_name": _company(rng),
            "contact_name": f"{_choice(rng, FIRST_NAMES)} {_choice(rng, LAST_NAMES)}",
            "contact_title": _choice(rng, TITLES),
            "address": f"{int(rng.integers(1, 999))} Obere Str.",
            "city": CITIES[i % len(CITIES)],
            "postal_code": f"{int(rng.integers(10000, 99999))}",
            "region": None,
            "country": COUNTRIES[i % len(COUNTRIES)],
            "phone": f"030-{int(rng.integers(1000000, 9999999))}",
        }
        for i in range(1, sizes["customers"] + 1)
    ]

    employee_rows = []
    for i in range(1, sizes["employees"] + 1):
        employee_rows.append({
            "id": i,
            "last_name": _choice(rng, LAST_NAMES),
            "first_name": _choice(rng, FIRST_NAMES),
            "title": _choice(rng, TITLES),
            "title_of_courtesy": "Ms." if i % 2 else "Mr.",
            "birth_date": epoch - timedelta(days=int(rng.integers(9000, 20000))),
            "hire_date": epoch - timedelta(days=int(rng.integers(0, 1500))),
            "address": f"{int(rng.integers(1, 999))} W. Capital Way",
            "city": CITIES[i % len(CITIES)],
            "postal_code": f"{int(rng.integers(10000, 99999))}",
            "country": COUNTRIES[i % len(COUNTRIES)],
            "home_phone": f"(206) 555-{int(rng.integers(1000, 9999))}",
            "extension": int(rng.integers(100, 9999)),
            "notes": "Seeded employee record.",
            # First employee reports to nobody, the rest to an earlier one
            "recipient_id": int(rng.integers(1, i)) if i > 1 else None,
        })

    supplier_rows = [
        {
            "id": i,
            "company_name": _company(rng),
            "contact_name": f"{_choice(rng, FIRST_NAMES)} {_choice(rng, LAST_NAMES)}",
            "contact_title": _choice(rng, TITLES),
            "address": f"{int(rng.integers(1, 999))} Gilbert St.",
            "city": CITIES[i % len(CITIES)],
            "region": None,
            "postal_code": f"{int(rng.integers(10000, 99999))}",
            "country": COUNTRIES[i % len(COUNTRIES)],
            "phone": f"(171) 555-{int(rng.integers(1000, 9999))}",
        }
        for i in range(1, sizes["suppliers"] + 1)
    ]

    product_rows = [
        {
            "id": i,
            "name": f"{_choice(rng, PRODUCT_WORDS)} {_choice(rng, PRODUCT_WORDS)}",
            "qt_per_unit": f"{int(rng.integers(1, 48))} boxes",
            "unit_price": round(float(rng.uniform(2.5, 260.0)), 2),
            "units_in_stock": int(rng.integers(0, 120)),
            "units_on_order": int(rng.integers(0, 100)),
            "reorder_level": int(rng.integers(0, 30)),
            "discontinued": int(rng.integers(0, 2)),
            "supplier_id": int(rng.integers(1, sizes["suppliers"] + 1)),
        }
        for i in range(1, sizes["products"] + 1)
    ]

    order_rows = []
    detail_rows = []
    for i in range(1, sizes["orders"] + 1):
        order_date = epoch + timedelta(days=int(rng.integers(0, 700)))
        shipped = rng.random() > 0.05
        order_rows.append({
            "id": i,
            "order_date": order_date,
            "required_date": order_date + timedelta(days=28),
            "shipped_date": order_date + timedelta(days=int(rng.integers(1, 30))) if shipped else None,
            "ship_via": int(rng.integers(1, 4)),
            "freight": round(float(rng.uniform(0.5, 900.0)), 2),
            "ship_name": _company(rng),
            "ship_city": CITIES[i % len(CITIES)],
            "ship_region": None,
            "ship_postal_code": f"{int(rng.integers(10000, 99999))}",
            "ship_country": COUNTRIES[i % len(COUNTRIES)],
            "customer_id": int(rng.integers(1, sizes["customers"] + 1)),
            "employee_id": int(rng.integers(1, sizes["employees"] + 1)),
        })

        # Some orders have no lines so the LEFT JOINs matter
        line_count = int(rng.integers(0, 6))
        product_ids = rng.choice(sizes["products"], size=line_count, replace=False) + 1
        for product_id in product_ids:
            detail_rows.append({
                "order_id": i,
                "product_id": int(product_id),
                "unit_price": product_rows[int(product_id) - 1]["unit_price"],
                "quantity": int(rng.integers(1, 120)),
                "discount": float(rng.choice([0.0, 0.05, 0.1, 0.15, 0.2, 0.25])),
            })

    return {
        "customers": customer_rows,
        "employees": employee_rows,
        "suppliers": supplier_rows,
        "products": product_rows,
        "orders": order_rows,
        "order_details": detail_rows,
    }


def build_inputs(rows: Dict[str, List[dict]], sample_size: int = 50, seed: int = 42) -> NorthwindInputs:
    """
    Derive catalog input sets from generated rows.

    Args:
        rows: Output of generate_rows()
        sample_size: Maximum ids / search terms per input set
        seed: Random seed for reproducibility
    """
    rng = np.random.default_rng(seed + 1)

    def sample_ids(table: str) -> List[int]:
        ids = [row["id"] for row in rows[table]]
        count = min(sample_size, len(ids))
        return sorted(int(i) for i in rng.choice(ids, size=count, replace=False))

    def searches(table: str, column: str) -> List[str]:
        terms = []
        for row in rows[table][:sample_size]:
            word = row[column].split()[0]
            terms.append(word[:4].lower())
        return terms

    return NorthwindInputs(
        customer_ids=sample_ids("customers"),
        employee_ids=sample_ids("employees"),
        supplier_ids=sample_ids("suppliers"),
        product_ids=sample_ids("products"),
        order_ids=sample_ids("orders"),
        customer_searches=searches("customers", "company_name"),
        product_searches=searches("products", "name"),
        counts={table: len(table_rows) for table, table_rows in rows.items()},
    )


def seed_database(engine: Engine, scale: int = 1, seed: int = 42, sample_size: int = 50) -> NorthwindInputs:
    """
    Create the schema and load deterministic rows.

    Existing tables are dropped first so every backend starts identical.

    Returns:
        NorthwindInputs for registering the catalog
    """
    rows = generate_rows(scale=scale, seed=seed)

    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)

    with engine.begin() as conn:
        for table in (customers, employees, suppliers, products, orders, details):
            table_rows = rows[table.name]
            if table is employees:
                # Self reference: insert in id order, managers first
                for row in table_rows:
                    conn.execute(insert(table), row)
            elif table_rows:
                conn.execute(insert(table), table_rows)

    logger.info(
        "Database seeded",
        url=engine.url.render_as_string(hide_password=True),
        rows={name: len(table_rows) for name, table_rows in rows.items()},
    )
    return build_inputs(rows, sample_size=sample_size, seed=seed)
