"""
Exception taxonomy for the assembly pipeline.

Only AssemblyConfigError ever reaches the caller of assemble(); shortages,
validation failures and collaborator outages are reported on the result.
"""


class AssemblyError(Exception):
    """Base class for all assembly errors."""


class AssemblyConfigError(AssemblyError, ValueError):
    """Invalid request: raised before any stage runs."""


class ItemStoreError(AssemblyError):
    """The item store could not answer a query."""


class GenerationServiceError(AssemblyError):
    """A generation batch failed (bad response, transient API error)."""


class GenerationServiceUnavailable(GenerationServiceError):
    """The generative service cannot be reached at all; retrying is pointless."""


class SlotAlreadyFilled(AssemblyError):
    pass


class AnswerKeyMismatch(AssemblyError):
    """A form's answer key disagrees with its items after shuffling."""
