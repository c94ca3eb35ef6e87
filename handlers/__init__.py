# handlers/__init__.py
from aiogram import Dispatcher

from .admin import admin_router
from .common import common_router
from .courier import courier_router
from .fraud import fraud_router
from .order_form import order_form_router
from .orders import orders_router


def register_handlers(dp: Dispatcher):
    """
    Registers every router on the main dispatcher.
    Order matters: routers with FSM text steps go first.
    """
    dp.include_router(order_form_router)
    dp.include_router(fraud_router)
    dp.include_router(orders_router)
    dp.include_router(courier_router)
    dp.include_router(admin_router)
    dp.include_router(common_router)
