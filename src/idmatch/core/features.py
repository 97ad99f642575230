"""Feature extraction for ML-assisted matching.

The FeatureExtractor converts a RecordPair into a fixed-length FeatureVector
using a per-field configuration of extractor kinds, weights and
missing-value indicators. Feature names are generated once, at
construction, as ``"<field>_<extractor>"`` (plus ``"<field>_missing"``), in
the same order as the values of every extracted vector.
"""

import logging
import math
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import date, datetime, timezone
from typing import Any, Literal

import numpy as np
from dateutil import parser as date_parser

from idmatch.core import comparators
from idmatch.core.errors import ConfigurationError
from idmatch.core.models import (
    EXTRACTOR_KINDS,
    ExtractorKind,
    FeatureExtractionConfig,
    FeatureVector,
    FieldFeatureConfig,
    RecordPair,
)

logger = logging.getLogger(__name__)

ExtractorFn = Callable[[Any, Any], float]

_DAYS_PER_YEAR = 365.0
_SECONDS_PER_DAY = 86400.0
_SCALARS = (str, bytes, int, float, bool)


def numeric_diff(value1: Any, value2: Any) -> float:
    """Relative numeric similarity: 1 - |a - b| / max(|a|, |b|), floored at 0.

    Returns 1.0 when both values are missing, 0.0 when one is missing or
    either value is not numeric.
    """
    if value1 is None and value2 is None:
        return 1.0
    if value1 is None or value2 is None:
        return 0.0

    num1, num2 = _to_number(value1), _to_number(value2)
    if num1 is None or num2 is None:
        return 0.0
    if num1 == num2:
        return 1.0

    max_abs = max(abs(num1), abs(num2))
    if max_abs == 0:
        return 1.0
    return max(0.0, 1.0 - abs(num1 - num2) / max_abs)


def date_diff(value1: Any, value2: Any) -> float:
    """Date proximity with exponential decay: exp(-days_apart / 365).

    Returns 1.0 when both values are missing or the dates are equal, 0.0
    when one is missing or either value is not a valid date.
    """
    if value1 is None and value2 is None:
        return 1.0
    if value1 is None or value2 is None:
        return 0.0

    date1, date2 = _to_datetime(value1), _to_datetime(value2)
    if date1 is None or date2 is None:
        return 0.0

    days_apart = abs((date1 - date2).total_seconds()) / _SECONDS_PER_DAY
    if days_apart == 0:
        return 1.0
    return math.exp(-days_apart / _DAYS_PER_YEAR)


def missing_indicator(value1: Any, value2: Any) -> float:
    """1.0 if either value is None or an empty string, else 0.0."""
    missing1 = value1 is None or value1 == ""
    missing2 = value2 is None or value2 == ""
    return 1.0 if missing1 or missing2 else 0.0


def _to_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def _to_datetime(value: Any) -> datetime | None:
    """Coerce datetimes, dates, epoch milliseconds and date strings.

    Naive datetimes are treated as UTC so that mixed inputs can be compared.
    """
    parsed: datetime
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, int | float) and not isinstance(value, bool):
        try:
            parsed = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        try:
            parsed = date_parser.parse(value)
        except (ValueError, OverflowError):
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


BUILTIN_EXTRACTORS: dict[str, ExtractorFn] = {
    "exact": lambda a, b: comparators.exact_match(a, b, case_sensitive=False),
    "levenshtein": comparators.levenshtein,
    "jaro_winkler": comparators.jaro_winkler,
    "soundex": comparators.soundex,
    "metaphone": comparators.metaphone,
    "numeric_diff": numeric_diff,
    "date_diff": date_diff,
    "missing": missing_indicator,
}


def resolve_field(record: Any, path: str) -> Any:
    """Resolve a dotted field path on a dict or attribute-bearing record.

    Missing keys, missing attributes and None segments resolve to None.

    Example:
        >>> resolve_field({"address": {"city": "Oslo"}}, "address.city")
        'Oslo'
        >>> resolve_field({"address": None}, "address.city") is None
        True
    """
    current = record
    for part in path.split("."):
        if current is None or isinstance(current, _SCALARS):
            return None
        if isinstance(current, Mapping):
            current = current.get(part)
        else:
            current = getattr(current, part, None)
    return current


def split_feature_name(name: str) -> tuple[str, str] | None:
    """Split ``"<field>_<extractor>"`` into (field, extractor).

    Returns None when the name does not end in a known extractor kind.
    """
    for kind in EXTRACTOR_KINDS:
        suffix = f"_{kind}"
        if name.endswith(suffix) and len(name) > len(suffix):
            return name[: -len(suffix)], kind
    return None


def _includes_missing_indicator(
    config: FeatureExtractionConfig, field_config: FieldFeatureConfig
) -> bool:
    include = field_config.include_missing_indicator
    if include is None:
        include = config.include_missing_by_default
    return include and "missing" not in field_config.extractors


def generate_feature_names(config: FeatureExtractionConfig) -> list[str]:
    """Feature names a config produces, in extraction order.

    Example:
        >>> config = FeatureConfigBuilder().add_field("a", ["exact", "jaro_winkler"]).build()
        >>> generate_feature_names(config)
        ['a_exact', 'a_jaro_winkler', 'a_missing']
    """
    names: list[str] = []
    for field_config in config.fields:
        names.extend(f"{field_config.field}_{kind}" for kind in field_config.extractors)
        if _includes_missing_indicator(config, field_config):
            names.append(f"{field_config.field}_missing")
    return names


def calculate_feature_count(config: FeatureExtractionConfig) -> int:
    """Extractor values plus missing indicators a config produces."""
    return len(generate_feature_names(config))


class FeatureExtractor:
    """Converts record pairs into numeric feature vectors.

    For each configured field, the field's value is resolved in both records
    and every configured extractor produces one similarity value, multiplied
    by the field weight. A missing-value indicator is appended per field
    unless disabled or the field already lists the ``missing`` extractor.

    Example:
        config = FeatureExtractionConfig(
            fields=[
                FieldFeatureConfig(field="name", extractors=["jaro_winkler", "exact"]),
                FieldFeatureConfig(field="address.city", extractors=["levenshtein"]),
            ]
        )
        extractor = FeatureExtractor(config)
        vector = extractor.extract(RecordPair(record1=left, record2=right))
        vector.names
        # ['name_jaro_winkler', 'name_exact', 'name_missing',
        #  'address.city_levenshtein', 'address.city_missing']

    Note:
        Construction fails fast with ConfigurationError for a field without a
        name, a field without extractors, or a ``custom`` extractor whose
        function is not registered.
    """

    def __init__(
        self,
        config: FeatureExtractionConfig | Mapping[str, Any],
        custom_extractors: Mapping[str, ExtractorFn] | None = None,
    ):
        """Initialize FeatureExtractor.

        Args:
            config: Extraction config (or a dict that validates into one)
            custom_extractors: Additional ``custom`` extractor functions keyed
                by field name; they take precedence over the config's own.

        Raises:
            ConfigurationError: If the configuration is invalid.
        """
        if not isinstance(config, FeatureExtractionConfig):
            config = FeatureExtractionConfig.model_validate(config)

        self._config = config
        self._custom_extractors: dict[str, ExtractorFn] = {
            **config.custom_extractors,
            **(custom_extractors or {}),
        }
        self._validate_config()
        self._feature_names: tuple[str, ...] = tuple(generate_feature_names(config))

        logger.debug(
            "FeatureExtractor configured: %d fields, %d features",
            len(config.fields),
            len(self._feature_names),
        )

    @property
    def config(self) -> FeatureExtractionConfig:
        return self._config

    def _validate_config(self) -> None:
        for field_config in self._config.fields:
            if not field_config.field:
                raise ConfigurationError("Field configuration must have a field name")
            if not field_config.extractors:
                raise ConfigurationError(
                    f'Field "{field_config.field}" must have at least one extractor'
                )
            if (
                "custom" in field_config.extractors
                and field_config.field not in self._custom_extractors
            ):
                raise ConfigurationError(
                    f'Custom extractor specified for field "{field_config.field}" '
                    "but no custom function provided"
                )

    def get_feature_names(self) -> list[str]:
        """Feature names in extraction order (a copy)."""
        return list(self._feature_names)

    def get_feature_count(self) -> int:
        return len(self._feature_names)

    def get_field_configs(self) -> list[FieldFeatureConfig]:
        """Field configurations (copies)."""
        return [field_config.model_copy() for field_config in self._config.fields]

    def _extractor_for(self, field_config: FieldFeatureConfig, kind: ExtractorKind) -> ExtractorFn:
        if kind == "custom":
            return self._custom_extractors[field_config.field]
        return BUILTIN_EXTRACTORS[kind]

    def extract(self, pair: RecordPair) -> FeatureVector:
        """Extract the feature vector for one record pair.

        Args:
            pair: The record pair to encode

        Returns:
            FeatureVector whose names are this extractor's feature names.
            Metadata carries extraction_time_ms, fields_processed and
            missing_field_count.
        """
        start = time.perf_counter()
        values: list[float] = []
        missing_field_count = 0

        for field_config in self._config.fields:
            value1 = resolve_field(pair.record1, field_config.field)
            value2 = resolve_field(pair.record2, field_config.field)
            weight = (
                field_config.weight
                if field_config.weight is not None
                else self._config.default_weight
            )

            if value1 is None or value2 is None:
                missing_field_count += 1

            for kind in field_config.extractors:
                extractor = self._extractor_for(field_config, kind)
                values.append(float(extractor(value1, value2)) * weight)

            if _includes_missing_indicator(self._config, field_config):
                values.append(missing_indicator(value1, value2))

        if self._config.normalize:
            values = [_clamp_unit(value) for value in values]

        return FeatureVector(
            values=values,
            names=list(self._feature_names),
            metadata={
                "extraction_time_ms": (time.perf_counter() - start) * 1000.0,
                "fields_processed": len(self._config.fields),
                "missing_field_count": missing_field_count,
            },
        )

    def extract_batch(self, pairs: Iterable[RecordPair]) -> list[FeatureVector]:
        """Extract feature vectors for many pairs, preserving input order."""
        return [self.extract(pair) for pair in pairs]

    @classmethod
    def from_fields(
        cls,
        fields: Sequence[str],
        kinds: Sequence[ExtractorKind] = ("jaro_winkler", "exact"),
    ) -> "FeatureExtractor":
        """Create an extractor applying the same extractor kinds to every field."""
        config = FeatureExtractionConfig(
            fields=tuple(FieldFeatureConfig(field=field, extractors=tuple(kinds)) for field in fields),
        )
        return cls(config)

    @classmethod
    def for_person_matching(cls) -> "FeatureExtractor":
        """Create an extractor tuned for person / customer records."""
        return cls(DEFAULT_PERSON_FEATURE_CONFIG)

    @classmethod
    def for_preset(cls, name: "FeaturePreset") -> "FeatureExtractor":
        """Create an extractor from a named preset (see ``get_feature_config``)."""
        return cls(get_feature_config(name))


def _clamp_unit(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return min(1.0, max(0.0, value))


class FeatureConfigBuilder:
    """Fluent builder for FeatureExtractionConfig.

    Example:
        extractor = (
            FeatureConfigBuilder()
            .add_name_field("first_name", weight=1.2)
            .add_exact_field("email")
            .add_date_field("date_of_birth")
            .add_custom_field("tags", tag_overlap)
            .build_extractor()
        )
    """

    def __init__(self) -> None:
        self._fields: list[FieldFeatureConfig] = []
        self._custom_extractors: dict[str, ExtractorFn] = {}
        self._normalize = True

    def add_field(
        self,
        field: str,
        extractors: Sequence[ExtractorKind],
        weight: float | None = None,
        include_missing_indicator: bool | None = None,
    ) -> "FeatureConfigBuilder":
        self._fields.append(
            FieldFeatureConfig(
                field=field,
                extractors=tuple(extractors),
                weight=weight,
                include_missing_indicator=include_missing_indicator,
            )
        )
        return self

    def add_string_field(
        self, field: str, weight: float | None = None, phonetic: bool = False
    ) -> "FeatureConfigBuilder":
        """Add jaro_winkler, levenshtein and exact (plus soundex/metaphone if phonetic)."""
        extractors: list[ExtractorKind] = ["jaro_winkler", "levenshtein", "exact"]
        if phonetic:
            extractors.extend(["soundex", "metaphone"])
        return self.add_field(field, extractors, weight=weight)

    def add_exact_field(self, field: str, weight: float | None = None) -> "FeatureConfigBuilder":
        return self.add_field(field, ["exact"], weight=weight)

    def add_numeric_field(self, field: str, weight: float | None = None) -> "FeatureConfigBuilder":
        return self.add_field(field, ["numeric_diff", "exact"], weight=weight)

    def add_date_field(self, field: str, weight: float | None = None) -> "FeatureConfigBuilder":
        return self.add_field(field, ["date_diff", "exact"], weight=weight)

    def add_name_field(self, field: str, weight: float | None = None) -> "FeatureConfigBuilder":
        return self.add_field(
            field, ["jaro_winkler", "soundex", "metaphone", "exact"], weight=weight
        )

    def add_custom_extractor(self, field: str, fn: ExtractorFn) -> "FeatureConfigBuilder":
        """Register a custom extractor function for a field."""
        self._custom_extractors[field] = fn
        return self

    def add_custom_field(
        self, field: str, fn: ExtractorFn, weight: float | None = None
    ) -> "FeatureConfigBuilder":
        """Register ``fn`` and add the field with a single ``custom`` extractor."""
        self._custom_extractors[field] = fn
        return self.add_field(field, ["custom"], weight=weight)

    def normalize(self, value: bool) -> "FeatureConfigBuilder":
        self._normalize = value
        return self

    def build(self) -> FeatureExtractionConfig:
        return FeatureExtractionConfig(
            fields=tuple(self._fields),
            normalize=self._normalize,
            custom_extractors=dict(self._custom_extractors),
        )

    def build_extractor(self) -> FeatureExtractor:
        return FeatureExtractor(self.build())


# Named presets. The person preset is the layout of the bundled pretrained weights.
DEFAULT_PERSON_FEATURE_CONFIG = (
    FeatureConfigBuilder()
    .add_field("first_name", ["jaro_winkler", "soundex", "exact"], weight=1.0)
    .add_field("last_name", ["jaro_winkler", "soundex", "exact"], weight=1.2)
    .add_field("email", ["levenshtein", "exact"], weight=1.5)
    .add_field("phone", ["levenshtein", "exact"], weight=1.3)
    .add_field("date_of_birth", ["exact", "date_diff"], weight=1.4)
    .add_field("address", ["levenshtein", "jaro_winkler"], weight=0.8)
    .add_field("ssn", ["exact"], weight=2.0)
    .build()
)

MINIMAL_FEATURE_CONFIG = (
    FeatureConfigBuilder()
    .add_field("first_name", ["jaro_winkler", "exact"], weight=1.0)
    .add_field("last_name", ["jaro_winkler", "exact"], weight=1.2)
    .add_field("email", ["levenshtein", "exact"], weight=1.5)
    .build()
)

EXTENDED_FEATURE_CONFIG = (
    FeatureConfigBuilder()
    .add_field("first_name", ["jaro_winkler", "soundex", "metaphone", "exact"], weight=1.0)
    .add_field("middle_name", ["jaro_winkler", "exact"], weight=0.6)
    .add_field("last_name", ["jaro_winkler", "soundex", "metaphone", "exact"], weight=1.2)
    .add_field("suffix", ["exact"], weight=0.5)
    .add_field("email", ["levenshtein", "exact"], weight=1.5)
    .add_field("phone", ["levenshtein", "exact"], weight=1.3)
    .add_field("date_of_birth", ["exact", "date_diff"], weight=1.4)
    .add_field("address", ["levenshtein", "jaro_winkler"], weight=0.8)
    .add_field("city", ["jaro_winkler", "exact"], weight=0.6)
    .add_field("state", ["exact"], weight=0.5)
    .add_field("zip_code", ["exact", "levenshtein"], weight=0.8)
    .add_field("ssn", ["exact"], weight=2.0)
    .add_field("drivers_license", ["exact"], weight=1.8)
    .build()
)

PATIENT_FEATURE_CONFIG = (
    FeatureConfigBuilder()
    .add_field("mrn", ["exact", "levenshtein"], weight=2.5)
    .add_field("first_name", ["jaro_winkler", "soundex", "exact"], weight=1.0)
    .add_field("last_name", ["jaro_winkler", "soundex", "exact"], weight=1.2)
    .add_field("date_of_birth", ["exact", "date_diff"], weight=2.0)
    .add_field("gender", ["exact"], weight=0.8)
    .add_field("ssn", ["exact"], weight=2.0)
    .add_field("phone", ["levenshtein", "exact"], weight=1.0)
    .add_field("address", ["levenshtein", "jaro_winkler"], weight=0.7)
    .build()
)

DEFAULT_PERSON_FEATURE_NAMES: tuple[str, ...] = tuple(
    generate_feature_names(DEFAULT_PERSON_FEATURE_CONFIG)
)
DEFAULT_PERSON_FEATURE_COUNT = len(DEFAULT_PERSON_FEATURE_NAMES)
MINIMAL_FEATURE_NAMES: tuple[str, ...] = tuple(generate_feature_names(MINIMAL_FEATURE_CONFIG))

FeaturePreset = Literal["person", "minimal", "extended", "patient"]

_PRESETS: dict[str, FeatureExtractionConfig] = {
    "person": DEFAULT_PERSON_FEATURE_CONFIG,
    "minimal": MINIMAL_FEATURE_CONFIG,
    "extended": EXTENDED_FEATURE_CONFIG,
    "patient": PATIENT_FEATURE_CONFIG,
}


def get_feature_config(name: FeaturePreset) -> FeatureExtractionConfig:
    """Return a named preset config.

    Raises:
        ConfigurationError: If ``name`` is not a known preset.
    """
    try:
        return _PRESETS[name]
    except KeyError:
        msg = f"Unknown feature preset {name!r}; expected one of {sorted(_PRESETS)}"
        raise ConfigurationError(msg) from None


def get_feature_by_name(vector: FeatureVector, name: str) -> float | None:
    """Value of the named feature, or None if the vector has no such feature."""
    try:
        return vector.values[vector.names.index(name)]
    except ValueError:
        return None


def get_field_features(vector: FeatureVector, field: str) -> dict[str, float]:
    """All features belonging to ``field``, keyed by feature name."""
    prefix = f"{field}_"
    return {
        name: value
        for name, value in zip(vector.names, vector.values, strict=True)
        if name.startswith(prefix)
    }


def compare_feature_vectors(
    vector1: FeatureVector, vector2: FeatureVector
) -> dict[str, dict[str, float]]:
    """Per-feature difference between two vectors.

    Features absent from ``vector2`` compare against 0.0.

    Returns:
        Mapping of feature name to {"value1", "value2", "diff"}
    """
    lookup = dict(zip(vector2.names, vector2.values, strict=True))
    result: dict[str, dict[str, float]] = {}
    for name, value1 in zip(vector1.names, vector1.values, strict=True):
        value2 = lookup.get(name, 0.0)
        result[name] = {"value1": value1, "value2": value2, "diff": value1 - value2}
    return result


def calculate_feature_stats(
    vectors: Sequence[FeatureVector], feature_name: str
) -> dict[str, float] | None:
    """Min, max, mean and population standard deviation of one feature.

    Returns None when no vector carries the feature.
    """
    values = [
        value
        for value in (get_feature_by_name(vector, feature_name) for vector in vectors)
        if value is not None
    ]
    if not values:
        return None

    array = np.asarray(values, dtype=float)
    return {
        "min": float(array.min()),
        "max": float(array.max()),
        "mean": float(array.mean()),
        "std_dev": float(array.std()),
    }
