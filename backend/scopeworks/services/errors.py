"""Domain exceptions raised by ScopeWorks services and translated by the API layer."""


class ScopeWorksError(Exception):
    """Base class for all ScopeWorks domain errors."""


class InvalidConfiguration(ScopeWorksError):
    """Pricing configuration that would make money maths meaningless (e.g. zero billable days)."""


class NotFound(ScopeWorksError):
    """A project, version, role or overhead item could not be resolved."""


class DuplicateSlug(ScopeWorksError):
    """A project with the requested slug already exists."""
