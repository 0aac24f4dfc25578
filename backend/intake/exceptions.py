"""Service-level errors, mapped to HTTP status codes by the routers."""


class IntakeError(Exception):
    pass


class DocumentNotFoundError(IntakeError, LookupError):
    def __init__(self, document_id: str):
        super().__init__(f"Document {document_id} not found")
        self.document_id = document_id


class FileCostingNotFoundError(IntakeError, LookupError):
    def __init__(self, costing_id: str):
        super().__init__(f"File costing {costing_id} not found")
        self.costing_id = costing_id


class InvalidTransitionError(IntakeError):
    """The requested action is not allowed from the record's current status."""

    def __init__(self, action: str, current_status: str, entity: str = "document"):
        super().__init__(f"Cannot {action} a {entity} in status '{current_status}'")
        self.action = action
        self.current_status = current_status


class WorkflowRuleError(IntakeError, ValueError):
    pass


class ConcurrentUpdateError(IntakeError):
    def __init__(self, entity_id: str):
        super().__init__(f"{entity_id} was modified by another request; reload and retry")
        self.entity_id = entity_id


class MalformedWorkbookError(IntakeError, ValueError):
    pass


class IntakeRejectedError(IntakeError):
    def __init__(self, reason: str, status_code: int = 400):
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code


class DuplicateBlockedError(IntakeRejectedError):
    def __init__(self, reason: str, matches: list):
        super().__init__(reason, status_code=409)
        self.matches = matches
