from cafedesk.models.user import User
from cafedesk.models.refresh_token import RefreshToken
from cafedesk.models.audit_log import AuditLog
from cafedesk.models.product import Product
from cafedesk.models.sales import Sale, SaleItem
from cafedesk.models.invoice import Invoice, InvoiceItem
from cafedesk.models.expense import Expense
from cafedesk.models.cash_register import CashRegisterBalance, CashRegisterEntry
from cafedesk.models.blog import BlogPost
