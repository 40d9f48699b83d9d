class MessagingError(Exception):
    """Base error of the invoice event channels."""


class PublishError(MessagingError):
    """The event was not accepted by the channel; the publisher must not assume delivery."""


class ChannelClosedError(PublishError):
    """Published after ``stop()``."""
