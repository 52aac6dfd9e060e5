from backend.models.user import User, UserRole, DEODetails, VODetails
from backend.models.contractor import Contractor, Supporter
from backend.models.voucher import Voucher, VoucherStatus

__all__ = [
    "User",
    "UserRole",
    "DEODetails",
    "VODetails",
    "Contractor",
    "Supporter",
    "Voucher",
    "VoucherStatus",
]
