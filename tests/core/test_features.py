"""Tests for idmatch.core.features module."""

import math
from datetime import date

import pytest
from pydantic import BaseModel

from idmatch.core.errors import ConfigurationError
from idmatch.core.features import (
    DEFAULT_PERSON_FEATURE_CONFIG,
    DEFAULT_PERSON_FEATURE_COUNT,
    DEFAULT_PERSON_FEATURE_NAMES,
    EXTENDED_FEATURE_CONFIG,
    MINIMAL_FEATURE_CONFIG,
    MINIMAL_FEATURE_NAMES,
    PATIENT_FEATURE_CONFIG,
    FeatureConfigBuilder,
    FeatureExtractor,
    calculate_feature_count,
    calculate_feature_stats,
    compare_feature_vectors,
    date_diff,
    generate_feature_names,
    get_feature_by_name,
    get_feature_config,
    get_field_features,
    missing_indicator,
    numeric_diff,
    resolve_field,
    split_feature_name,
)
from idmatch.core.models import FeatureExtractionConfig, FieldFeatureConfig, RecordPair


class Address(BaseModel):
    city: str | None = None


class Customer(BaseModel):
    name: str
    address: Address | None = None


@pytest.fixture
def extractor():
    """Extractor over a name field and a nested city field."""
    config = FeatureExtractionConfig(
        fields=(
            FieldFeatureConfig(field="name", extractors=("jaro_winkler", "exact")),
            FieldFeatureConfig(field="address.city", extractors=("levenshtein",)),
        )
    )
    return FeatureExtractor(config)


class TestFeatureNames:
    """Tests for feature naming and ordering."""

    def test_names_follow_field_then_extractor_order(self, extractor):
        """Test names are generated per field, extractors first, then the indicator."""
        assert extractor.get_feature_names() == [
            "name_jaro_winkler",
            "name_exact",
            "name_missing",
            "address.city_levenshtein",
            "address.city_missing",
        ]
        assert extractor.get_feature_count() == 5

    def test_get_feature_names_returns_copy(self, extractor):
        """Test mutating the returned list doesn't affect the extractor."""
        names = extractor.get_feature_names()
        names.clear()
        assert extractor.get_feature_count() == 5
        assert len(extractor.get_feature_names()) == 5

    def test_missing_indicator_can_be_disabled(self):
        """Test per-field and default indicator switches."""
        config = FeatureExtractionConfig(
            fields=(
                FieldFeatureConfig(field="a", extractors=("exact",), include_missing_indicator=False),
                FieldFeatureConfig(field="b", extractors=("exact",)),
            ),
            include_missing_by_default=False,
        )
        assert FeatureExtractor(config).get_feature_names() == ["a_exact", "b_exact"]

    def test_explicit_missing_extractor_not_duplicated(self):
        """Test a field listing 'missing' gets no extra indicator."""
        config = FeatureExtractionConfig(
            fields=(FieldFeatureConfig(field="email", extractors=("exact", "missing")),)
        )
        assert FeatureExtractor(config).get_feature_names() == ["email_exact", "email_missing"]


class TestExtract:
    """Tests for FeatureExtractor.extract."""

    def test_values_match_names_and_are_normalized(self, extractor):
        """Test vector shape and value range."""
        pair = RecordPair(
            record1={"name": "Jon Smith", "address": {"city": "Oslo"}},
            record2={"name": "John Smith", "address": {"city": "Osло"}},
        )
        vector = extractor.extract(pair)

        assert len(vector.values) == len(vector.names)
        assert all(0.0 <= value <= 1.0 for value in vector.values)

    def test_identical_records(self, extractor):
        """Test identical records give full similarity and no missing flags."""
        record = {"name": "Acme", "address": {"city": "Berlin"}}
        vector = extractor.extract(RecordPair(record1=record, record2=dict(record)))
        assert vector.values == [1.0, 1.0, 0.0, 1.0, 0.0]

    def test_attribute_records_and_missing_nested_values(self, extractor):
        """Test pydantic records resolve by attribute; a None segment is missing."""
        pair = RecordPair(
            record1=Customer(name="Acme", address=Address(city="Berlin")),
            record2=Customer(name="acme", address=None),
        )
        vector = extractor.extract(pair)

        assert get_feature_by_name(vector, "name_exact") == 1.0  # case-insensitive
        assert get_feature_by_name(vector, "address.city_levenshtein") == 0.0
        assert get_feature_by_name(vector, "address.city_missing") == 1.0
        assert vector.metadata["missing_field_count"] == 1
        assert vector.metadata["fields_processed"] == 2

    def test_weight_is_applied_then_clamped(self):
        """Test weighted values are clamped when normalizing, kept otherwise."""
        fields = (FieldFeatureConfig(field="code", extractors=("exact",), weight=2.0),)
        pair = RecordPair(record1={"code": "X1"}, record2={"code": "X1"})

        clamped = FeatureExtractor(FeatureExtractionConfig(fields=fields)).extract(pair)
        raw = FeatureExtractor(FeatureExtractionConfig(fields=fields, normalize=False)).extract(pair)

        assert get_feature_by_name(clamped, "code_exact") == 1.0
        assert get_feature_by_name(raw, "code_exact") == 2.0

    def test_empty_string_counts_as_missing(self, extractor):
        """Test the missing indicator treats empty strings as missing."""
        pair = RecordPair(record1={"name": ""}, record2={"name": "Acme"})
        assert get_feature_by_name(extractor.extract(pair), "name_missing") == 1.0

    def test_extract_batch_preserves_order(self, extractor):
        """Test batch extraction returns one vector per pair, in order."""
        pairs = [
            RecordPair(record1={"name": "Acme"}, record2={"name": "Acme"}),
            RecordPair(record1={"name": "Acme"}, record2={"name": "Zenith"}),
        ]
        vectors = extractor.extract_batch(pairs)
        assert [get_feature_by_name(v, "name_exact") for v in vectors] == [1.0, 0.0]


class TestConfigurationErrors:
    """Construction fails fast on invalid configuration."""

    def test_field_without_extractors(self):
        """Test a field must name at least one extractor."""
        config = FeatureExtractionConfig(fields=(FieldFeatureConfig(field="name", extractors=()),))
        with pytest.raises(ConfigurationError, match="at least one extractor"):
            FeatureExtractor(config)

    def test_field_without_name(self):
        """Test a field must have a name."""
        config = FeatureExtractionConfig(fields=(FieldFeatureConfig(field="", extractors=("exact",)),))
        with pytest.raises(ConfigurationError, match="field name"):
            FeatureExtractor(config)

    def test_unregistered_custom_extractor(self):
        """Test 'custom' requires a registered function for the field."""
        config = FeatureExtractionConfig(fields=(FieldFeatureConfig(field="tags", extractors=("custom",)),))
        with pytest.raises(ConfigurationError, match="no custom function"):
            FeatureExtractor(config)

    def test_invalid_dict_config(self):
        """Test dict configs are validated and wrapped in ConfigurationError."""
        with pytest.raises(ConfigurationError):
            FeatureExtractor({"fields": [{"field": "name", "extractors": ["telepathy"]}]})

    def test_configuration_error_is_value_error(self):
        """Test callers can catch configuration problems as ValueError."""
        config = FeatureExtractionConfig(fields=(FieldFeatureConfig(field="x", extractors=()),))
        with pytest.raises(ValueError):
            FeatureExtractor(config)


class TestBuiltinExtractors:
    """Tests for numeric, date and missing extractors."""

    def test_numeric_diff(self):
        """Test relative numeric similarity."""
        assert numeric_diff(100, 80) == pytest.approx(0.8)
        assert numeric_diff(5, 5) == 1.0
        assert numeric_diff(0, 0) == 1.0
        assert numeric_diff("10", 10) == 1.0
        assert numeric_diff(10, -10) == 0.0
        assert numeric_diff("abc", 10) == 0.0
        assert numeric_diff(None, None) == 1.0
        assert numeric_diff(None, 3) == 0.0

    def test_date_diff(self):
        """Test exponential decay by days apart."""
        assert date_diff("2021-01-01", "2021-01-01") == 1.0
        assert date_diff("2021-01-01", "2022-01-01") == pytest.approx(math.exp(-1))
        assert date_diff(date(2021, 1, 1), "2021-01-01") == 1.0
        assert date_diff("not a date", "2021-01-01") == 0.0
        assert date_diff(None, None) == 1.0
        assert date_diff("2021-01-01", None) == 0.0

    def test_missing_indicator(self):
        """Test missing indicator values."""
        assert missing_indicator("a", "b") == 0.0
        assert missing_indicator(None, "b") == 1.0
        assert missing_indicator("a", "") == 1.0


class TestFieldResolution:
    """Tests for dotted path resolution and feature name parsing."""

    def test_resolve_field(self):
        """Test nested dicts, missing keys and scalar intermediates."""
        record = {"address": {"city": "Oslo"}, "name": "Acme"}
        assert resolve_field(record, "address.city") == "Oslo"
        assert resolve_field(record, "address.zip") is None
        assert resolve_field(record, "name.upper") is None
        assert resolve_field(None, "name") is None

    def test_split_feature_name(self):
        """Test feature names split into field and extractor kind."""
        assert split_feature_name("address.city_jaro_winkler") == ("address.city", "jaro_winkler")
        assert split_feature_name("first_name_missing") == ("first_name", "missing")
        assert split_feature_name("date_of_birth_date_diff") == ("date_of_birth", "date_diff")
        assert split_feature_name("score") is None


class TestPresetsAndBuilder:
    """Tests for preset extractors and FeatureConfigBuilder."""

    def test_from_fields(self):
        """Test the default kinds are jaro_winkler and exact."""
        extractor = FeatureExtractor.from_fields(["name"])
        assert extractor.get_feature_names() == ["name_jaro_winkler", "name_exact", "name_missing"]

    def test_for_person_matching(self):
        """Test the person preset covers the usual identity fields."""
        extractor = FeatureExtractor.for_person_matching()
        fields = [config.field for config in extractor.get_field_configs()]
        assert fields == [
            "first_name",
            "last_name",
            "email",
            "phone",
            "date_of_birth",
            "address",
            "ssn",
        ]
        assert extractor.get_feature_count() == 22

    def test_builder_with_custom_field(self):
        """Test a custom extractor registered through the builder is used."""

        def tag_overlap(a, b):
            a, b = set(a or []), set(b or [])
            return len(a & b) / len(a | b) if a | b else 1.0

        extractor = (
            FeatureConfigBuilder()
            .add_name_field("name", weight=1.2)
            .add_numeric_field("age")
            .add_custom_field("tags", tag_overlap)
            .build_extractor()
        )
        pair = RecordPair(
            record1={"name": "Ann", "age": 40, "tags": ["a", "b"]},
            record2={"name": "Ann", "age": 40, "tags": ["b", "c"]},
        )
        vector = extractor.extract(pair)

        assert get_feature_by_name(vector, "tags_custom") == pytest.approx(1 / 3)
        assert get_feature_by_name(vector, "age_numeric_diff") == 1.0
        assert "name_metaphone" in vector.names

    def test_builder_string_field_phonetic(self):
        """Test the phonetic option adds soundex and metaphone."""
        config = FeatureConfigBuilder().add_string_field("city", phonetic=True).build()
        assert config.fields[0].extractors == (
            "jaro_winkler",
            "levenshtein",
            "exact",
            "soundex",
            "metaphone",
        )


class TestNamedPresets:
    """Tests for named preset configs and config-level naming helpers."""

    def test_generate_feature_names_without_extractor(self):
        """Test names come from the config alone, in extraction order."""
        config = (
            FeatureConfigBuilder()
            .add_field("a", ["exact", "jaro_winkler"])
            .add_field("b", ["exact"])
            .build()
        )
        assert generate_feature_names(config) == [
            "a_exact",
            "a_jaro_winkler",
            "a_missing",
            "b_exact",
            "b_missing",
        ]
        assert calculate_feature_count(config) == 5
        assert FeatureExtractor(config).get_feature_names() == generate_feature_names(config)

    def test_generate_feature_names_respects_missing_indicator_flag(self):
        """Test per-field and config-wide indicator settings."""
        config = FeatureExtractionConfig(
            fields=(
                FieldFeatureConfig(field="a", extractors=("exact",)),
                FieldFeatureConfig(
                    field="b", extractors=("exact",), include_missing_indicator=True
                ),
            ),
            include_missing_by_default=False,
        )
        assert generate_feature_names(config) == ["a_exact", "b_exact", "b_missing"]

    def test_person_preset_counts(self):
        """Test the person preset produces 22 features."""
        assert calculate_feature_count(DEFAULT_PERSON_FEATURE_CONFIG) == 22
        assert DEFAULT_PERSON_FEATURE_COUNT == 22
        assert DEFAULT_PERSON_FEATURE_NAMES[0] == "first_name_jaro_winkler"
        assert DEFAULT_PERSON_FEATURE_NAMES[-1] == "ssn_missing"

    def test_get_feature_config_returns_preset(self):
        """Test names resolve to the shared preset objects."""
        assert get_feature_config("person") is DEFAULT_PERSON_FEATURE_CONFIG
        assert get_feature_config("minimal") is MINIMAL_FEATURE_CONFIG
        assert get_feature_config("extended") is EXTENDED_FEATURE_CONFIG
        assert get_feature_config("patient") is PATIENT_FEATURE_CONFIG

    def test_get_feature_config_unknown_name(self):
        """Test an unknown preset name is a configuration error."""
        with pytest.raises(ConfigurationError, match="Unknown feature preset 'banking'"):
            get_feature_config("banking")

    def test_minimal_preset(self):
        """Test the minimal preset covers names and email only."""
        fields = [config.field for config in MINIMAL_FEATURE_CONFIG.fields]
        assert fields == ["first_name", "last_name", "email"]
        assert MINIMAL_FEATURE_NAMES == tuple(generate_feature_names(MINIMAL_FEATURE_CONFIG))
        assert len(MINIMAL_FEATURE_NAMES) == 9

    def test_extended_preset_adds_identity_fields(self):
        """Test the extended preset is a superset of the person preset."""
        extended = {config.field for config in EXTENDED_FEATURE_CONFIG.fields}
        person = {config.field for config in DEFAULT_PERSON_FEATURE_CONFIG.fields}

        assert person < extended
        assert {"middle_name", "suffix", "city", "state", "zip_code", "drivers_license"} <= extended
        first_name = EXTENDED_FEATURE_CONFIG.fields[0]
        assert "metaphone" in first_name.extractors

    def test_patient_preset_weights_identifiers(self):
        """Test MRN and date of birth carry the heaviest weights."""
        weights = {config.field: config.weight for config in PATIENT_FEATURE_CONFIG.fields}
        assert PATIENT_FEATURE_CONFIG.fields[0].field == "mrn"
        assert weights["mrn"] >= 2.0
        assert weights["date_of_birth"] >= 2.0
        assert "gender" in weights

    def test_for_preset(self):
        """Test an extractor can be built from a preset name."""
        extractor = FeatureExtractor.for_preset("minimal")
        assert extractor.get_feature_names() == list(MINIMAL_FEATURE_NAMES)
        assert FeatureExtractor.for_preset("person").get_feature_count() == 22

        with pytest.raises(ConfigurationError):
            FeatureExtractor.for_preset("unknown")


class TestVectorHelpers:
    """Tests for feature vector inspection helpers."""

    def test_get_field_features_and_compare(self, extractor):
        """Test per-field selection and per-feature differences."""
        same = extractor.extract(RecordPair(record1={"name": "Acme"}, record2={"name": "Acme"}))
        other = extractor.extract(RecordPair(record1={"name": "Acme"}, record2={"name": "Zeta"}))

        assert set(get_field_features(same, "name")) == {
            "name_jaro_winkler",
            "name_exact",
            "name_missing",
        }
        diff = compare_feature_vectors(same, other)
        assert diff["name_exact"] == {"value1": 1.0, "value2": 0.0, "diff": 1.0}

    def test_calculate_feature_stats(self, extractor):
        """Test min/max/mean/std over a feature."""
        vectors = [
            extractor.extract(RecordPair(record1={"name": "Acme"}, record2={"name": n}))
            for n in ("Acme", "Zeta")
        ]
        stats = calculate_feature_stats(vectors, "name_exact")
        assert stats == {"min": 0.0, "max": 1.0, "mean": 0.5, "std_dev": 0.5}
        assert calculate_feature_stats(vectors, "unknown") is None
