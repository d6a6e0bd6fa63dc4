"""Exceptions raised by the nexor client."""


class NexorError(Exception):
    """Base class for every error raised by this package."""


class EncodeError(NexorError):
    """A message could not be serialized."""


class DecodeError(NexorError):
    """A payload does not match the expected message schema."""


class RemoteError(NexorError):
    """The replier's handler failed while serving a request."""


class TransportError(NexorError):
    """The broker rejected an operation or the connection failed."""


class PublishError(TransportError):
    """The broker did not confirm a published message."""


class NoResponders(TransportError):
    """Nobody is listening on the requested subject."""


class RequestTimeout(TransportError):
    """No reply arrived before the request timed out."""


class StreamNotFound(TransportError):
    """The named stream does not exist on the broker."""
