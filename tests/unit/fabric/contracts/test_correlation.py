"""Unit tests for the correlation context and its propagation helpers."""

import pytest
import structlog

from modules.fabric.contracts.correlation import (
    PARENT_REQUEST_ID_HEADER,
    REQUEST_ID_HEADER,
    CorrelationContext,
    correlation_scope,
    current_correlation,
)


class TestCorrelationContext:
    def test_new_mints_distinct_ids(self):
        first = CorrelationContext.new()
        second = CorrelationContext.new()
        assert first.id != second.id
        assert first.parent_id is None

    def test_blank_id_rejected(self):
        with pytest.raises(ValueError):
            CorrelationContext(id="   ")

    def test_is_immutable(self):
        ctx = CorrelationContext.new()
        with pytest.raises(ValueError):
            ctx.id = "other"

    def test_derive_reuses_id_by_default(self):
        ctx = CorrelationContext(id="R1")
        derived = ctx.derive()
        assert derived == ctx

    def test_derive_distinct_links_to_parent(self):
        ctx = CorrelationContext(id="R1")
        derived = ctx.derive(distinct=True)
        assert derived.id != "R1"
        assert derived.parent_id == "R1"

    def test_wire_form_uses_camel_case(self):
        ctx = CorrelationContext(id="R2", parent_id="R1")
        assert ctx.to_wire() == {"id": "R2", "parentId": "R1"}


class TestHeaders:
    def test_to_headers(self):
        ctx = CorrelationContext(id="R2", parent_id="R1")
        assert ctx.to_headers() == {REQUEST_ID_HEADER: "R2", PARENT_REQUEST_ID_HEADER: "R1"}

    def test_to_headers_without_parent(self):
        assert CorrelationContext(id="R1").to_headers() == {REQUEST_ID_HEADER: "R1"}

    def test_from_headers_is_case_insensitive_and_trims(self):
        ctx = CorrelationContext.from_headers({"X-Request-Id": "  R1 "})
        assert ctx == CorrelationContext(id="R1")

    def test_from_headers_accepts_fallback_names(self):
        assert CorrelationContext.from_headers({"request-id": "R1"}).id == "R1"
        assert CorrelationContext.from_headers({"x-correlation-id": "R1"}).id == "R1"

    def test_from_headers_reads_parent(self):
        headers = CorrelationContext(id="R2", parent_id="R1").to_headers()
        assert CorrelationContext.from_headers(headers).parent_id == "R1"

    @pytest.mark.parametrize("headers", [None, {}, {REQUEST_ID_HEADER: "  "}, {REQUEST_ID_HEADER: 7}])
    def test_from_headers_without_id(self, headers):
        assert CorrelationContext.from_headers(headers) is None


class TestCorrelationScope:
    def test_sets_and_restores_current(self):
        assert current_correlation() is None
        ctx = CorrelationContext(id="R1")
        with correlation_scope(ctx):
            assert current_correlation() is ctx
        assert current_correlation() is None

    def test_nested_scopes_restore_outer(self):
        outer = CorrelationContext(id="R1")
        inner = outer.derive(distinct=True)
        with correlation_scope(outer):
            with correlation_scope(inner):
                assert current_correlation() is inner
            assert current_correlation() is outer

    def test_binds_log_context(self):
        ctx = CorrelationContext(id="R2", parent_id="R1")
        with correlation_scope(ctx):
            bound = structlog.contextvars.get_contextvars()
            assert bound["correlation_id"] == "R2"
            assert bound["parent_correlation_id"] == "R1"
        assert "correlation_id" not in structlog.contextvars.get_contextvars()

    def test_none_scope_has_no_current_context(self):
        with correlation_scope(CorrelationContext(id="R1")):
            with correlation_scope(None):
                assert current_correlation() is None
