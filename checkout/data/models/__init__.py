#import all models so SQLAlchemy registers them in Base.metadata

from checkout.data.models.cart import CartModel
from checkout.data.models.cart_item import CartItemModel
from checkout.data.models.inventory import InventoryModel
from checkout.data.models.order import OrderModel, OrderItemModel, OrderStatusHistoryModel
from checkout.data.models.payment import PaymentModel, PaymentAttemptModel
from checkout.data.models.audit_finding import AuditFindingModel

__all__ = [
    "CartModel",
    "CartItemModel",
    "InventoryModel",
    "OrderModel",
    "OrderItemModel",
    "OrderStatusHistoryModel",
    "PaymentModel",
    "PaymentAttemptModel",
    "AuditFindingModel",
]
