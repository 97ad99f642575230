"""
Basic usage example for idmatch.

This example demonstrates the prediction path end to end:
- FeatureExtractor: Encode a record pair into named similarity features
- SimpleClassifier: Score the pair with logistic-regression weights
- ScoreIntegrator: Blend the ML probability into a deterministic match result
"""

import asyncio

from idmatch import FeatureExtractor, ScoreIntegrator, SimpleClassifier
from idmatch.core.models import RecordPair
from idmatch.core.prediction import format_prediction
from idmatch.integration.models import FieldScore, MatchResult, MatchScore


async def main() -> None:
    """Demonstrate basic usage of idmatch."""
    print("=" * 60)
    print("idmatch - Basic Usage Example")
    print("=" * 60)

    # 1. Build a feature extractor
    print("\n1. Creating feature extractor...")
    extractor = FeatureExtractor.from_fields(["name", "email"])
    for name in extractor.get_feature_names():
        print(f"  - {name}")

    # 2. Extract features for a pair
    print("\n2. Extracting features...")
    candidate = {"name": "Jon Smith", "email": "jon.smith@example.com"}
    existing = {"name": "John Smith", "email": "jon.smith@example.com"}
    vector = extractor.extract(RecordPair(record1=candidate, record2=existing))
    for name, value in zip(vector.names, vector.values, strict=True):
        print(f"  {name:<22} {value:.3f}")

    # 3. Load weights into a classifier (normally read from a weights file)
    print("\n3. Loading classifier weights...")
    classifier = SimpleClassifier(feature_extractor=extractor)
    classifier.load_weights(
        {
            "modelType": "SimpleClassifier",
            "version": "1.0.0",
            "weights": [2.0, 1.0, -1.0, 1.5, 2.5, -1.0],
            "bias": -3.5,
            "featureNames": extractor.get_feature_names(),
        }
    )
    print(f"  Ready: {classifier.is_ready()}")

    # 4. Predict
    print("\n4. Predicting...")
    prediction = await classifier.predict(RecordPair(record1=candidate, record2=existing))
    print(format_prediction(prediction, top_n=3))

    # 5. Blend with a deterministic result
    print("\n5. Integrating with a deterministic score...")
    prior = MatchResult(
        outcome="potential-match",
        candidate_record=existing,
        score=MatchScore(
            total_score=55.0,
            max_possible_score=100.0,
            normalized_score=0.55,
            field_scores=[FieldScore(field="email", similarity=1.0, contribution=55.0)],
        ),
        explanation="Email matched exactly; names differ",
    )
    integrator = ScoreIntegrator(classifier, mode="hybrid", ml_weight=0.4)
    enhanced = await integrator.enhance_match_result(candidate, existing, prior)

    print(f"  Outcome: {prior.outcome} -> {enhanced.outcome}")
    print(f"  Score: {prior.score.total_score:.1f} -> {enhanced.score.total_score:.1f}")
    print(f"  {enhanced.explanation}")

    print("\n" + "=" * 60)
    print("Example complete!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
