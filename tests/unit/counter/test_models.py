"""Tests for counter binding validation."""

import pytest

from docsequence.core.modules.counter.models import CounterBinding, CounterRecord
from docsequence.errors import ConfigurationError


class TestCounterBinding:
    """Tests for CounterBinding defaults and validation."""

    def test_defaults(self):
        """Test that a bare binding counts the primary identifier with hooks on."""
        binding = CounterBinding(model_name="Article")
        assert binding.resolved_inc_field == "id"
        assert binding.resolved_counter_name == "Article_id"
        assert binding.reference_fields == []
        assert binding.hooks_enabled is True

    def test_reference_fields_require_counter_name(self):
        """Test that scoped counters must be named explicitly."""
        with pytest.raises(ConfigurationError, match="counter_name"):
            CounterBinding(model_name="Inhabitant", inc_field="inhabitant", reference_fields=["country"])

    def test_duplicate_reference_fields_rejected(self):
        """Test that a reference field cannot be listed twice."""
        with pytest.raises(ConfigurationError, match="Duplicate"):
            CounterBinding(model_name="M", inc_field="n", reference_fields=["a", "a"], counter_name="c")

    def test_inc_field_cannot_reference_itself(self):
        """Test that the counted field is not one of its own references."""
        with pytest.raises(ConfigurationError):
            CounterBinding(model_name="M", inc_field="n", reference_fields=["n"], counter_name="c")

    def test_blank_names_rejected(self):
        """Test that blank names are configuration errors."""
        with pytest.raises(ConfigurationError):
            CounterBinding(model_name=" ")
        with pytest.raises(ConfigurationError):
            CounterBinding(model_name="M", inc_field="")
        with pytest.raises(ConfigurationError):
            CounterBinding(model_name="M", counter_name="  ")


class TestCounterRecord:
    """Tests for CounterRecord parsing."""

    def test_mongo_document_parsed(self):
        """Test that stored documents with an ObjectId-like _id are accepted."""
        record = CounterRecord.model_validate({"_id": "abc", "counter_id": "c", "seq": 4, "counter_name": "c"})
        assert record.seq == 4
        assert record.scope is None

    def test_new_record_starts_at_zero(self):
        """Test that a counter that never allocated holds 0."""
        assert CounterRecord(counter_id="c").seq == 0
