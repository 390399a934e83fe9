class ReconciliationError(Exception):
    """Base class for errors that abort a cost calculation."""


class ValidationError(ReconciliationError):
    """Reading/recharge history is malformed or insufficient to compute a cost."""


class ConfigurationError(ReconciliationError):
    """A required rate (electricity or hourly running cost) is not configured."""


class NotFoundError(LookupError):
    """A referenced run, reading or recharge does not exist."""


class RunNotFoundError(NotFoundError):
    def __init__(self, run_id):
        super().__init__(f"Drying run {run_id} not found")
        self.run_id = run_id


class SmsParseError(ValueError):
    """Recharge SMS text is missing required fields."""

    def __init__(self, missing_fields):
        self.missing_fields = list(missing_fields)
        super().__init__(
            "Invalid SMS format. Could not parse: " + ", ".join(self.missing_fields)
        )
