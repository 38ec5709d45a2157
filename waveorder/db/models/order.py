# waveorder/db/models/order.py
from sqlalchemy import Column, String, Integer, Float, ForeignKey
from sqlalchemy.orm import relationship

from waveorder.db.base import BaseModel, new_id


class Product(BaseModel):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=new_id)
    business_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=False)


class Customer(BaseModel):
    __tablename__ = "customers"

    id = Column(String(36), primary_key=True, default=new_id)
    business_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)


class Order(BaseModel):
    """Storefront order; type plus status/payment_status decide completion"""
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=new_id)
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=False, index=True)
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=True, index=True)

    type = Column(String(20), nullable=False)  # DELIVERY, PICKUP, DINE_IN
    status = Column(String(30), nullable=False)
    payment_status = Column(String(20), nullable=False)
    total = Column(Float, default=0.0, nullable=False)

    # Relationships
    business = relationship("Business", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", lazy="selectin", cascade="all, delete-orphan")


class OrderItem(BaseModel):
    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True, default=new_id)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, default=1, nullable=False)
    price = Column(Float, default=0.0, nullable=False)

    order = relationship("Order", back_populates="items")
    product = relationship("Product", lazy="joined")
