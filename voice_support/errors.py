"""
Exception types raised by the voice support application.

Business-rule rejections (return window expired, order not found, ...) are
not exceptions: agents complete with ``success: False`` for those. The types
here cover caller contract violations and collaborator failures.
"""


class VoiceSupportError(Exception):
    """Base class for application errors."""


class UnknownAgentTypeError(VoiceSupportError):
    """Raised when an agent type name is not registered."""

    def __init__(self, agent_type: str):
        super().__init__(f"Unknown agent type: {agent_type}")
        self.agent_type = agent_type


class AgentTimeoutError(VoiceSupportError):
    """Raised into an agent whose execution exceeded the time limit."""

    def __init__(self, message: str = "Agent execution timeout"):
        super().__init__(message)


class CommerceError(VoiceSupportError):
    """The commerce backend failed for a reason other than "not found"."""


class SpeechSessionError(VoiceSupportError):
    """
    The speech-to-speech vendor reported an error or the connection failed.

    ``fatal`` is set when the session cannot continue (connection lost and
    the reconnect budget is exhausted).
    """

    def __init__(self, message: str, fatal: bool = False):
        super().__init__(message)
        self.fatal = fatal
