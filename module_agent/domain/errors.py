from typing import Optional


class ChatError(Exception):
    """Error surfaced to the chat caller with a stable status code"""

    code: str = "internal"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class InvalidArgumentError(ChatError):
    code = "invalid-argument"


class UnauthenticatedError(ChatError):
    code = "unauthenticated"


class InternalChatError(ChatError):
    code = "internal"


class ServiceUnavailableError(ChatError):
    code = "unavailable"


class ProviderError(Exception):
    """Raised by LLM provider adapters when a completion request fails"""
