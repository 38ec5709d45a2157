# waveorder/db/models/__init__.py
from waveorder.db.models.business import Business, BusinessUser
from waveorder.db.models.user import User
from waveorder.db.models.subscription import Subscription
from waveorder.db.models.analytics import Analytics, VisitorSession
from waveorder.db.models.order import Product, Customer, Order, OrderItem
from waveorder.db.models.feedback import BusinessFeedback
from waveorder.db.models.support import SupportTicket, TicketComment
from waveorder.db.models.system_log import SystemLog

__all__ = [
    "Business", "BusinessUser", "User", "Subscription",
    "Analytics", "VisitorSession",
    "Product", "Customer", "Order", "OrderItem",
    "BusinessFeedback", "SupportTicket", "TicketComment", "SystemLog",
]
