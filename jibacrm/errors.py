"""
Error taxonomy for the contact store.

A missing contact is not an error: mutations return None / False instead.
"""


class CrmError(Exception):
    """Base class for all Jiba CRM errors."""


class ValidationError(CrmError, ValueError):
    """Input rejected before it reached the store (missing name, bad field...)."""


class NoValidContactsError(ValidationError):
    """An import file decoded fine but contained no record with both a name and a phone."""


class DecodeError(CrmError, ValueError):
    """A whole import file could not be parsed. Nothing was written."""


class StorageUnavailableError(CrmError, RuntimeError):
    """The backing medium could not be read or written."""
