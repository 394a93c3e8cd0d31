"""
tests/unit/data_models/test_cdp_events.py

Tests for ResourceEvent normalization of CDP event params.
"""

from pageready.data_models.cdp import CDPEventMethod, ResourceEvent


class TestResourceEventFromCdpParams:
    """
    Tests for ResourceEvent.from_cdp_params.
    """

    def test_request_will_be_sent(self) -> None:
        """Request fields are lifted from the nested request object."""
        event = ResourceEvent.from_cdp_params({
            "requestId": "1000.1",
            "request": {"url": "http://a.test/app.js", "method": "GET"},
            "timestamp": 12.5,
            "type": "Script",
            "frameId": "F1",
        })

        assert event.request_id == "1000.1"
        assert event.url == "http://a.test/app.js"
        assert event.method == "GET"
        assert event.resource_type == "script"
        assert event.timestamp_ms == 12500

    def test_response_received(self) -> None:
        """Response fields are lifted from the nested response object."""
        event = ResourceEvent.from_cdp_params({
            "requestId": "1000.1",
            "type": "Document",
            "response": {
                "url": "http://a.test/",
                "status": 404,
                "mimeType": "text/html",
                "fromDiskCache": True,
            },
        })

        assert event.url == "http://a.test/"
        assert event.status == 404
        assert event.mime_type == "text/html"
        assert event.from_disk_cache is True
        assert event.resource_type == "document"
        assert event.timestamp_ms is None

    def test_missing_fields_are_none(self) -> None:
        """Partial or missing params never raise."""
        for params in (None, {}, {"requestId": "r1", "request": "oops", "timestamp": "soon"}):
            event = ResourceEvent.from_cdp_params(params)
            assert event.url is None
            assert event.method is None
            assert event.timestamp is None

    def test_model_carries_only_tracked_fields(self) -> None:
        """Frame and loader identifiers are not part of the normalized event."""
        assert set(ResourceEvent.model_fields) == {
            "request_id", "url", "method", "resource_type", "timestamp",
            "status", "mime_type", "from_disk_cache",
        }

    def test_unknown_fields_ignored(self) -> None:
        """Extra keys in model input are dropped."""
        event = ResourceEvent(request_id="r1", redirectResponse={"status": 301})

        assert event.request_id == "r1"
        assert not hasattr(event, "redirectResponse")


class TestResourceEventFromMemoryCache:
    """
    Tests for ResourceEvent.from_memory_cache_params.
    """

    def test_resource_lifted_into_response_shape(self) -> None:
        """The cached resource becomes the response; request-level fields come from the event."""
        event = ResourceEvent.from_memory_cache_params({
            "requestId": "r3",
            "loaderId": "L1",
            "documentURL": "http://a.test/",
            "timestamp": 3.0,
            "resource": {"url": "http://a.test/app.css", "type": "Stylesheet", "mimeType": "text/css"},
        })

        assert event.request_id == "r3"
        assert event.url == "http://a.test/app.css"
        assert event.resource_type == "stylesheet"
        assert event.mime_type == "text/css"
        assert event.timestamp_ms == 3000

    def test_missing_resource(self) -> None:
        """A memory cache event without a resource still keys by request ID."""
        event = ResourceEvent.from_memory_cache_params({"requestId": "r3"})

        assert event.request_id == "r3"
        assert event.url is None


class TestCDPEventMethod:
    """
    Tests for CDPEventMethod.
    """

    def test_values_are_cdp_method_names(self) -> None:
        """Enum members compare equal to the raw CDP method strings."""
        assert CDPEventMethod.LOADING_FINISHED == "Network.loadingFinished"
        assert CDPEventMethod.DOM_CONTENT_EVENT_FIRED == "Page.domContentEventFired"
        assert len(CDPEventMethod) == 7
