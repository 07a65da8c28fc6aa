"""
Domain exceptions raised at the engine's input boundaries.

Routers translate these into HTTP errors; nothing inside the analysis
loop lets them escape.
"""


class TraceWardenError(Exception):
    """Base class for all TraceWarden errors."""


class MalformedPayloadError(TraceWardenError):
    """A trace export envelope could not be parsed; nothing was ingested."""


class MalformedResponseBodyError(TraceWardenError):
    """A route response submitted for a schema check is not valid JSON."""


class IncidentCreationError(TraceWardenError):
    """An incident was requested without any usable events."""
