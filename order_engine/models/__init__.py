from order_engine.models.tenant import Tenant
from order_engine.models.menu_item import MenuItem
from order_engine.models.coupon import Coupon
from order_engine.models.order import Order
from order_engine.models.order_item import OrderItem
from order_engine.models.inventory import Ingredient, Recipe, StockMovement
