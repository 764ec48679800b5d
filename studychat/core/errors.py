import math


class ChatError(Exception):
    """Base class for errors surfaced to the chat caller"""


class ValidationError(ChatError, ValueError):
    """Request rejected before anything was persisted"""


class RateLimitError(ChatError):
    """Too many completion requests in the trailing window"""

    def __init__(self, wait_seconds: float):
        self.wait_seconds = wait_seconds
        super().__init__(
            f"⏳ Too many requests. Please wait about {math.ceil(wait_seconds)} seconds before trying again."
        )


class ResourceError(Exception):
    """A single resource could not be downloaded or decoded"""
