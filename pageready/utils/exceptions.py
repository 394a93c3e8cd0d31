"""
pageready/utils/exceptions.py

Custom exceptions for pageready.

Contains:
- PageReadyError: Base exception
- DOMReadyTimeoutError: DOM content never became ready
- RegistryFlushedError: Resource data requested after the registry was flushed
- BrowserConnectionError, NoSessionIdError: CDP connection failures
"""


class PageReadyError(Exception):
    """
    Base exception for all pageready errors.
    """


class DOMReadyTimeoutError(PageReadyError):
    """
    Raised when Page.domContentEventFired does not arrive before the DOM-ready deadline.
    """

    def __init__(self, timeout_s: float) -> None:
        self.timeout_s = timeout_s
        super().__init__(f"domContentEventFired timed out after {timeout_s:g} seconds")


class RegistryFlushedError(PageReadyError):
    """
    Raised when resource data is exported from a registry that has already been flushed.
    """


class BrowserConnectionError(PageReadyError):
    """
    Exception raised when unable to connect to the browser or find a page target.
    """


class NoSessionIdError(PageReadyError):
    """
    Exception raised when a method requires a CDP session ID but none is available.
    """
