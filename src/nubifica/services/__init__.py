from .identifiers import IdentifierService
from .inventory_service import InventoryService
from .client_service import ClientService
from .document_service import DocumentService
from .expense_service import ExpenseService
from .settings_service import SettingsService
from .reporting_service import ReportingService
from .excel_service import ExcelService
from .auth_service import AuthService
from .backup_service import BackupService
from .operations_service import OperationsService

__all__ = [
    "IdentifierService",
    "InventoryService",
    "ClientService",
    "DocumentService",
    "ExpenseService",
    "SettingsService",
    "ReportingService",
    "ExcelService",
    "AuthService",
    "BackupService",
    "OperationsService",
]
