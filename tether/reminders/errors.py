class ReminderError(Exception):
    """Base class for errors surfaced by the reminder engine."""


class NotFoundError(ReminderError):
    def __init__(self, entity: str, identifier) -> None:
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} {identifier} not found")


class ValidationError(ReminderError):
    pass


class LabelRequiredError(ValidationError):
    def __init__(self) -> None:
        super().__init__("label is required")


class TransportError(ReminderError):
    """A transport could not deliver; treated as transient by the dispatcher."""


class StorageError(ReminderError):
    pass
