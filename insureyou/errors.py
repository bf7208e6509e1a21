"""Exception taxonomy for the chat pipeline.

Only ``RequestValidationFailed`` ever reaches the HTTP caller as an error
status.  Everything else is raised by a collaborator adapter and downgraded
by the orchestrator into assistant text or an empty result.
"""


class AssistantError(Exception):
    """Base class for all pipeline errors."""


class RequestValidationFailed(AssistantError):
    """The inbound request body is missing or malformed (400)."""


class GenerationFault(AssistantError):
    """The generation collaborator failed or returned an unusable answer."""


class PayloadSerializationError(AssistantError):
    """The outgoing generation payload could not be serialized."""
