"""Exception hierarchy for the statement import pipeline.

Field-level problems in a CSV row are never raised; they are attached to the
transaction as ValidationError records (see schemas.py). The exceptions here
cover caller misuse, missing configuration and data-source failures.
"""


class StatementImportError(Exception):
    """Base import error."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class MappingValidationError(StatementImportError):
    """A column mapping was used without passing validate_mapping."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("Invalid column mapping: " + "; ".join(self.errors))


class ConfigurationError(StatementImportError):
    """Required settings are missing."""

    def __init__(self, detail: str = "Import settings are not configured"):
        super().__init__(detail)


class DataSourceError(StatementImportError):
    """Existing transactions could not be fetched."""

    def __init__(self, detail: str = "Failed to fetch existing transactions"):
        super().__init__(detail)
