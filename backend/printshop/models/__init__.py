from .auth import User, SessionToken, USER_ROLES
from .catalog import (
    FilamentType,
    FilamentColor,
    PrintingOption,
    PrintingOptionValue,
    PricingTable,
    PricingRow,
    PRINTING_OPTION_TYPES,
)
from .files import TempFile, UserFile, ProfilePicture, FILE_TYPES
from .addresses import Address
from .orders import (
    Order,
    OrderItem,
    OrderStatusHistory,
    FinalizeFilesJob,
    ORDER_STATUSES,
    FORWARD_STATUSES,
    PAYMENT_STATUSES,
    PAYMENT_METHODS,
)
from .shipping import CourierSettings, ShippingRateCache, SUPPORTED_COURIERS

__all__ = [
    "User",
    "SessionToken",
    "USER_ROLES",
    "FilamentType",
    "FilamentColor",
    "PrintingOption",
    "PrintingOptionValue",
    "PricingTable",
    "PricingRow",
    "PRINTING_OPTION_TYPES",
    "TempFile",
    "UserFile",
    "ProfilePicture",
    "FILE_TYPES",
    "Address",
    "Order",
    "OrderItem",
    "OrderStatusHistory",
    "FinalizeFilesJob",
    "ORDER_STATUSES",
    "FORWARD_STATUSES",
    "PAYMENT_STATUSES",
    "PAYMENT_METHODS",
    "CourierSettings",
    "ShippingRateCache",
    "SUPPORTED_COURIERS",
]
