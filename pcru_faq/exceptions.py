"""Failure types raised at the collaborator seams.

None of these escape AnswerResolutionPolicy.resolve(): every call site maps
them to a "no result" signal and moves on to the next layer.
"""


class FAQAssistantError(Exception):
    """Base class for assistant errors."""


class StoreUnavailable(FAQAssistantError):
    """Knowledge-base connection missing or a read query failed."""


class UpstreamTimeout(FAQAssistantError):
    """An AI or web-search call exceeded its time budget."""


class UpstreamError(FAQAssistantError):
    """An AI or web-search call returned an error payload."""
