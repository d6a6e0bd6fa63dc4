from dataclasses import dataclass
from typing import Dict, Optional, Sequence

ACK_WAIT = 30  # seconds, fixed for every durable consumer

SINGLE_TOKEN = "*"
TAIL_TOKENS = (">", "#")
RETAIN_ALL = "#"


@dataclass(frozen=True)
class StreamConfig:
    """A named stream capturing every message published on *subjects*.

    The stream keeps a durable retention queue of the same name, so every
    publish on its subjects is stored even before a consumer exists. Limits
    are optional; when set they bound the retention queue and the queues of
    the durable consumers created on the stream.
    """
    name: str
    subjects: Sequence[str] = ()
    description: str = ""
    max_msgs: Optional[int] = None
    max_bytes: Optional[int] = None
    max_age: Optional[float] = None  # seconds

    def __post_init__(self):
        if not self.name:
            raise ValueError("Stream name must not be empty")
        if not self.subjects:
            raise ValueError(f"Stream '{self.name}' needs at least one subject")
        object.__setattr__(self, "subjects", tuple(self.subjects))

    def queue_arguments(self) -> Dict[str, int]:
        arguments = {}
        if self.max_msgs is not None:
            arguments["x-max-length"] = int(self.max_msgs)
        if self.max_bytes is not None:
            arguments["x-max-length-bytes"] = int(self.max_bytes)
        if self.max_age is not None:
            arguments["x-message-ttl"] = int(self.max_age * 1000)
        return arguments


def routing_key(subject: str) -> str:
    """Translate a subject (``orders.*.created``, ``orders.>``) into an AMQP
    topic routing key."""
    if not subject:
        raise ValueError("Subject must not be empty")
    tokens = subject.split(".")
    if tokens[-1] == ">":
        tokens[-1] = "#"
    return ".".join(tokens)


def subject_matches(pattern: str, subject: str) -> bool:
    """Topic match with AMQP semantics: a trailing ``>`` or ``#`` covers zero
    or more tokens, so ``orders.>`` also matches a bare ``orders``."""
    pattern_tokens = pattern.split(".")
    subject_tokens = subject.split(".")
    for i, token in enumerate(pattern_tokens):
        if token in TAIL_TOKENS:
            return len(subject_tokens) >= i
        if i >= len(subject_tokens):
            return False
        if token != SINGLE_TOKEN and token != subject_tokens[i]:
            return False
    return len(pattern_tokens) == len(subject_tokens)


def stream_queue(stream: str) -> str:
    return stream


def consumer_queue(stream: str, durable: str) -> str:
    return f"{stream}.{durable}"


def consumer_arguments(stream_config: Optional[StreamConfig] = None) -> Dict[str, int]:
    arguments = {"x-consumer-timeout": ACK_WAIT * 1000}
    if stream_config is not None:
        arguments.update(stream_config.queue_arguments())
    return arguments
