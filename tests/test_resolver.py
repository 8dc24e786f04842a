"""
Tests for turning backend node ids into marker selectors.

Run with: pytest tests/test_resolver.py -v
"""
import asyncio

import pytest

from tabpilot.cdp.dom import NodeResolver, css_quote, marked_node_ids, marker_selector
from tabpilot.core.errors import ProtocolError, SessionError, StaleNodeError

RESOLUTION_STEPS = ["DOM.resolveNode", "DOM.getDocument", "DOM.requestNode", "DOM.setAttributeValue"]


def resolution_calls(host):
    return [m for m in host.methods() if m in RESOLUTION_STEPS]


# =============================================================================
# Selector Formatting Tests
# =============================================================================

class TestSelectorFormatting:
    """Tests for quoting marker values into attribute selectors."""

    def test_marker_selector(self):
        assert marker_selector("data-tabpilot-id", "104") == '[data-tabpilot-id="104"]'

    def test_css_quote_escapes(self):
        assert css_quote('a"b') == '"a\\"b"'
        assert css_quote("a\\b") == '"a\\\\b"'
        assert css_quote("a\nb") == '"a\\a b"'


# =============================================================================
# Resolution Tests
# =============================================================================

class TestResolve:
    """Tests for the resolution pipeline."""

    @pytest.mark.asyncio
    async def test_resolve(self, host, resolver, session):
        """Test that resolution tags the node and returns a matching selector."""
        selector = await resolver.resolve(session, 10)

        assert resolution_calls(host) == RESOLUTION_STEPS
        button = host.pages["TAB-1"].nodes[10]
        marker = button.attributes["data-tabpilot-id"]
        assert marker.isdigit()
        assert selector == f'[data-tabpilot-id="{marker}"]'
        assert host.pages["TAB-1"].query(selector) == [button]

    @pytest.mark.asyncio
    async def test_marker_is_live_node_id(self, host, resolver, session):
        await resolver.resolve(session, 11)
        request = [c for c in host.calls if c[0] == "DOM.setAttributeValue"][0]
        assert request[1]["value"] == str(request[1]["nodeId"])

    @pytest.mark.asyncio
    async def test_document_requested_once(self, host, resolver, session):
        """Test that the document is fetched once per DOM enablement."""
        await resolver.resolve(session, 10)
        await resolver.resolve(session, 11)
        await resolver.resolve(session, 12)
        assert host.methods().count("DOM.getDocument") == 1
        assert session.document_requested

    @pytest.mark.asyncio
    async def test_document_refetched_after_reenable(self, host, manager, resolver, session):
        await resolver.resolve(session, 10)
        await manager.disable_dom(session)
        await manager.enable_dom(session)
        await resolver.resolve(session, 10)
        assert host.methods().count("DOM.getDocument") == 2

    @pytest.mark.asyncio
    async def test_document_refetched_after_update(self, host, resolver, session):
        """Test that a replaced document is requested again before resolving."""
        await resolver.resolve(session, 10)
        host.update_document(session.session_id)
        selector = await resolver.resolve(session, 10)
        assert host.methods().count("DOM.getDocument") == 2
        assert len(host.pages["TAB-1"].query(selector)) == 1

    @pytest.mark.asyncio
    async def test_resolve_twice(self, host, resolver, session):
        """Test that each resolution re-writes its marker and both selectors find the node."""
        first = await resolver.resolve(session, 10)
        second = await resolver.resolve(session, 10)

        page = host.pages["TAB-1"]
        assert page.query(first) == [page.nodes[10]]
        assert page.query(second) == [page.nodes[10]]
        assert host.methods().count("DOM.resolveNode") == 2
        assert host.methods().count("DOM.setAttributeValue") == 2

    @pytest.mark.asyncio
    async def test_distinct_nodes_distinct_selectors(self, host, resolver, session):
        button = await resolver.resolve(session, 10)
        textbox = await resolver.resolve(session, 11)
        assert button != textbox
        page = host.pages["TAB-1"]
        assert page.query(textbox) == [page.nodes[11]]

    @pytest.mark.asyncio
    async def test_custom_marker_attribute(self, host, dispatcher, session):
        resolver = NodeResolver(dispatcher, marker_attribute="data-test-ref")
        selector = await resolver.resolve(session, 12)
        assert selector.startswith('[data-test-ref="')
        assert "data-test-ref" in host.pages["TAB-1"].nodes[12].attributes

    @pytest.mark.asyncio
    async def test_concurrent_resolutions_do_not_interleave(self, host, resolver, session):
        """Test that concurrent resolutions run their steps back to back."""
        original_call = host.call

        async def yielding_call(method, params=None, session_id=None):
            await asyncio.sleep(0)
            return await original_call(method, params, session_id)

        host.call = yielding_call
        selectors = await asyncio.gather(
            resolver.resolve(session, 10),
            resolver.resolve(session, 11),
            resolver.resolve(session, 12),
        )

        steps = resolution_calls(host)
        assert steps[:4] == RESOLUTION_STEPS
        assert steps[4:] == [s for s in RESOLUTION_STEPS if s != "DOM.getDocument"] * 2
        assert len(set(selectors)) == 3


# =============================================================================
# Failure Tests
# =============================================================================

class TestResolveFailures:
    """Tests for stale nodes and unusable sessions."""

    @pytest.mark.asyncio
    async def test_unknown_backend_id(self, host, resolver, session):
        with pytest.raises(StaleNodeError) as exc_info:
            await resolver.resolve(session, 999)
        assert exc_info.value.backend_node_id == 999
        assert exc_info.value.target_id == "TAB-1"
        assert resolution_calls(host) == ["DOM.resolveNode"]

    @pytest.mark.asyncio
    async def test_removed_before_resolve(self, host, resolver, session):
        host.remove_node("TAB-1", 10)
        with pytest.raises(StaleNodeError):
            await resolver.resolve(session, 10)

    @pytest.mark.asyncio
    async def test_removed_before_request_node(self, host, resolver, session):
        """Test that a node removed mid-resolution yields no selector and no write."""
        host.before["DOM.requestNode"] = lambda params, session_id: host.remove_node("TAB-1", 10)

        with pytest.raises(StaleNodeError):
            await resolver.resolve(session, 10)
        assert "DOM.setAttributeValue" not in host.methods()
        assert host.pages["TAB-1"].nodes[10].attributes == {}

    @pytest.mark.asyncio
    async def test_request_node_rejected(self, host, resolver, session):
        host.fail_next["DOM.requestNode"] = "Could not find node with given id"
        with pytest.raises(StaleNodeError, match="could not request live node"):
            await resolver.resolve(session, 10)
        assert "DOM.setAttributeValue" not in host.methods()

    @pytest.mark.asyncio
    async def test_removed_before_marker_write(self, host, resolver, session):
        host.before["DOM.setAttributeValue"] = lambda params, session_id: host.remove_node("TAB-1", 11)
        with pytest.raises(StaleNodeError):
            await resolver.resolve(session, 11)
        assert host.pages["TAB-1"].nodes[11].attributes == {}

    @pytest.mark.asyncio
    async def test_document_request_rejected(self, host, resolver, session):
        """Test that a refused document request is a protocol failure, not staleness."""
        host.fail_next["DOM.getDocument"] = "Internal error"
        with pytest.raises(ProtocolError):
            await resolver.resolve(session, 10)
        assert not session.document_requested

    @pytest.mark.asyncio
    async def test_requires_dom(self, host, manager, resolver):
        session = await manager.attach("TAB-1")
        with pytest.raises(SessionError):
            await resolver.resolve(session, 10)
        assert resolution_calls(host) == []

    @pytest.mark.asyncio
    async def test_detached_session(self, host, manager, resolver, session):
        await manager.detach(session)
        calls = len(host.calls)
        with pytest.raises(SessionError):
            await resolver.resolve(session, 10)
        assert len(host.calls) == calls


# =============================================================================
# Batch Tests
# =============================================================================

class TestResolveMany:
    """Tests for resolving several ids in one call."""

    @pytest.mark.asyncio
    async def test_resolve_many(self, host, resolver, session):
        selectors = await resolver.resolve_many(session, [10, 11, 12])
        assert list(selectors) == [10, 11, 12]
        assert host.methods().count("DOM.getDocument") == 1

    @pytest.mark.asyncio
    async def test_resolve_many_stops_on_stale(self, resolver, session):
        with pytest.raises(StaleNodeError):
            await resolver.resolve_many(session, [10, 999, 12])

    @pytest.mark.asyncio
    async def test_resolve_many_skip_stale(self, resolver, session):
        selectors = await resolver.resolve_many(session, [10, 999, 12], skip_stale=True)
        assert list(selectors) == [10, 12]


# =============================================================================
# Marker Uniqueness Tests
# =============================================================================

class TestMarkerUniqueness:
    """Tests for markers left behind by earlier sessions."""

    def test_marked_node_ids(self):
        """Test that the document walk reaches shadow roots and frame documents."""
        root = {
            "nodeId": 1,
            "children": [
                {"nodeId": 2, "attributes": ["id", "data-tabpilot-id"]},
                {
                    "nodeId": 3,
                    "attributes": ["data-tabpilot-id", "7"],
                    "shadowRoots": [{"nodeId": 4, "children": [
                        {"nodeId": 5, "attributes": ["data-tabpilot-id", "9"]},
                    ]}],
                },
                {"nodeId": 6, "contentDocument": {"nodeId": 7, "children": [
                    {"nodeId": 8, "attributes": ["class", "x", "data-tabpilot-id", "2"]},
                ]}},
            ],
        }
        assert sorted(marked_node_ids(root, "data-tabpilot-id")) == [3, 5, 8]

    @pytest.mark.asyncio
    async def test_marker_from_earlier_session_does_not_collide(self, host, manager, resolver):
        """Test that a selector issued in a new session matches only its own node."""
        page = host.pages["TAB-1"]
        async with manager.session("TAB-1") as first:
            old = await resolver.resolve(first, 10)

        # Shift document order so the new session hands the button's old id to <html>
        page.add_node(20, "div", first=True)

        async with manager.session("TAB-1") as second:
            selector = await resolver.resolve(second, 1)

            assert selector == old
            assert page.query(selector) == [page.nodes[1]]
            assert "data-tabpilot-id" not in page.nodes[10].attributes
            assert "DOM.removeAttribute" in host.methods()

    @pytest.mark.asyncio
    async def test_sweep_runs_once_per_enablement(self, host, resolver, session):
        await resolver.resolve(session, 10)
        await resolver.resolve(session, 11)
        assert "DOM.removeAttribute" not in host.methods()

    @pytest.mark.asyncio
    async def test_markers_swept_after_reenable(self, host, manager, resolver, session):
        """Test that a new enablement clears markers written in the previous one."""
        await resolver.resolve(session, 10)
        await manager.disable_dom(session)
        await manager.enable_dom(session)
        selector = await resolver.resolve(session, 11)

        page = host.pages["TAB-1"]
        assert host.methods().count("DOM.removeAttribute") == 1
        assert "data-tabpilot-id" not in page.nodes[10].attributes
        assert page.query(selector) == [page.nodes[11]]

    @pytest.mark.asyncio
    async def test_failed_marker_clear_is_tolerated(self, host, manager, resolver, session):
        await resolver.resolve(session, 10)
        await manager.disable_dom(session)
        await manager.enable_dom(session)
        host.fail_next["DOM.removeAttribute"] = "Could not find node with given id"

        selector = await resolver.resolve(session, 11)
        assert host.pages["TAB-1"].query(selector) == [host.pages["TAB-1"].nodes[11]]
        assert session.document_requested
