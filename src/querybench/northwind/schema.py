"""
Northwind-style schema shared by every strategy.

Declared once with the SQLAlchemy ORM; the Core tables (Model.__table__) back
the query-builder strategies and the raw SQL in the catalog uses the same
table and column names.
"""

from datetime import date
from typing import List, Optional

from sqlalchemy import Date, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_name: Mapped[str] = mapped_column(String(80))
    contact_name: Mapped[str] = mapped_column(String(60))
    contact_title: Mapped[str] = mapped_column(String(60))
    address: Mapped[str] = mapped_column(String(120))
    city: Mapped[str] = mapped_column(String(40))
    postal_code: Mapped[Optional[str]] = mapped_column(String(16))
    region: Mapped[Optional[str]] = mapped_column(String(40))
    country: Mapped[str] = mapped_column(String(40))
    phone: Mapped[str] = mapped_column(String(24))

    orders: Mapped[List["Order"]] = relationship(back_populates="customer")


class Employee(Base):
    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    last_name: Mapped[str] = mapped_column(String(40))
    first_name: Mapped[str] = mapped_column(String(40))
    title: Mapped[str] = mapped_column(String(60))
    title_of_courtesy: Mapped[str] = mapped_column(String(16))
    birth_date: Mapped[date] = mapped_column(Date)
    hire_date: Mapped[date] = mapped_column(Date)
    address: Mapped[str] = mapped_column(String(120))
    city: Mapped[str] = mapped_column(String(40))
    postal_code: Mapped[str] = mapped_column(String(16))
    country: Mapped[str] = mapped_column(String(40))
    home_phone: Mapped[str] = mapped_column(String(24))
    extension: Mapped[int] = mapped_column(Integer)
    notes: Mapped[str] = mapped_column(Text)
    recipient_id: Mapped[Optional[int]] = mapped_column(ForeignKey("employees.id"))

    recipient: Mapped[Optional["Employee"]] = relationship(remote_side=[id])


class Supplier(Base):
    __tablename__ = "suppliers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_name: Mapped[str] = mapped_column(String(80))
    contact_name: Mapped[str] = mapped_column(String(60))
    contact_title: Mapped[str] = mapped_column(String(60))
    address: Mapped[str] = mapped_column(String(120))
    city: Mapped[str] = mapped_column(String(40))
    region: Mapped[Optional[str]] = mapped_column(String(40))
    postal_code: Mapped[str] = mapped_column(String(16))
    country: Mapped[str] = mapped_column(String(40))
    phone: Mapped[str] = mapped_column(String(24))

    products: Mapped[List["Product"]] = relationship(back_populates="supplier")


class Product(Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(80))
    qt_per_unit: Mapped[str] = mapped_column(String(40))
    unit_price: Mapped[float] = mapped_column(Float)
    units_in_stock: Mapped[int] = mapped_column(Integer)
    units_on_order: Mapped[int] = mapped_column(Integer)
    reorder_level: Mapped[int] = mapped_column(Integer)
    discontinued: Mapped[int] = mapped_column(Integer)
    supplier_id: Mapped[int] = mapped_column(ForeignKey("suppliers.id"))

    supplier: Mapped[Supplier] = relationship(back_populates="products")


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_date: Mapped[date] = mapped_column(Date)
    required_date: Mapped[date] = mapped_column(Date)
    shipped_date: Mapped[Optional[date]] = mapped_column(Date)
    ship_via: Mapped[int] = mapped_column(Integer)
    freight: Mapped[float] = mapped_column(Float)
    ship_name: Mapped[str] = mapped_column(String(80))
    ship_city: Mapped[str] = mapped_column(String(40))
    ship_region: Mapped[Optional[str]] = mapped_column(String(40))
    ship_postal_code: Mapped[Optional[str]] = mapped_column(String(16))
    ship_country: Mapped[str] = mapped_column(String(40))
    customer_id: Mapped[int] = mapped_column(ForeignKey("customers.id"))
    employee_id: Mapped[int] = mapped_column(ForeignKey("employees.id"))

    customer: Mapped[Customer] = relationship(back_populates="orders")
    details: Mapped[List["OrderDetail"]] = relationship(back_populates="order")


class OrderDetail(Base):
    __tablename__ = "order_details"

    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), primary_key=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), primary_key=True)
    unit_price: Mapped[float] = mapped_column(Float)
    quantity: Mapped[int] = mapped_column(Integer)
    discount: Mapped[float] = mapped_column(Float)

    order: Mapped[Order] = relationship(back_populates="details")
    product: Mapped[Product] = relationship()


customers = Customer.__table__
employees = Employee.__table__
suppliers = Supplier.__table__
products = Product.__table__
orders = Order.__table__
details = OrderDetail.__table__
