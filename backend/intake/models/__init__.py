from intake.models.shipment import Shipment
from intake.models.document import Document
from intake.models.history import WorkflowHistoryEntry
from intake.models.extraction import ExtractionRecord
from intake.models.file_costing import FileCosting
from intake.models.duplicate import DuplicateSettings, DuplicateCheck
from intake.models.notification import Notification, AuditEvent

__all__ = [
    "Shipment", "Document", "WorkflowHistoryEntry", "ExtractionRecord", "FileCosting",
    "DuplicateSettings", "DuplicateCheck", "Notification", "AuditEvent",
]
