from .admin_schema import UserTarget, RoleChange, BanRequest, UserList, AdminActionResult
from .excel_schema import (
    SheetCreate, SheetDelete, SheetOverwrite, SaveAllRequest, ConvertRequest,
    SheetList, LatestSheet, SheetMutation, SaveAllResult, CellRead, SheetPreview,
    WorkbookMeta, UploadResult
)
from .legal_schema import LegalRead, LegalUpdate
from .payment_schema import PaymentModeIn, PaymentInit, PaymentVerify, PaymentRead, PricingRead, PricingUpdate
from .support_schema import (
    AssistRequest, AssistSession, SessionValidation,
    TicketCreate, TicketRead, TicketRespond, ResponseRead
)
from .user_schema import UserCreate, UserLogin, TokenRead, UserRead, IdentityRead

__all__ = [
    # Admin
    "UserTarget", "RoleChange", "BanRequest", "UserList", "AdminActionResult",

    # Excel
    "SheetCreate", "SheetDelete", "SheetOverwrite", "SaveAllRequest", "ConvertRequest",
    "SheetList", "LatestSheet", "SheetMutation", "SaveAllResult", "CellRead", "SheetPreview",
    "WorkbookMeta", "UploadResult",

    # Legal
    "LegalRead", "LegalUpdate",

    # Payment
    "PaymentModeIn", "PaymentInit", "PaymentVerify", "PaymentRead", "PricingRead", "PricingUpdate",

    # Support
    "AssistRequest", "AssistSession", "SessionValidation",
    "TicketCreate", "TicketRead", "TicketRespond", "ResponseRead",

    # User
    "UserCreate", "UserLogin", "TokenRead", "UserRead", "IdentityRead",
]
