import pytest

from clipintel.features import extract_features
from clipintel.intent import (
    IntentClassifier,
    OnlineIntentModel,
    RuleBasedIntentModel,
    create_model,
)
from clipintel.models import Intent, TrainingSample
from clipintel.sample_generation import generate_samples


def test_uninitialized_classifier_predicts_unknown():
    clf = IntentClassifier()
    prediction = clf.predict(extract_features("https://example.com/checkout"))

    assert prediction.intent is Intent.UNKNOWN
    assert prediction.confidence == 0.0


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://example.com/checkout", Intent.PURCHASE),
        ("https://example.com/order?token=abc", Intent.PURCHASE),
        ("https://coffee.example/menu/drinks", Intent.BROWSE),
        ("https://example.com/faq", Intent.INFORMATION),
        ("https://example.com/book/table", Intent.BOOKING),
        ("https://example.com/share?invite=1", Intent.SOCIAL),
        ("https://example.com/watch/video", Intent.ENTERTAINMENT),
        ("https://example.com/tasks/upload", Intent.PRODUCTIVITY),
    ],
)
def test_rule_table_predictions(classifier, url, expected):
    prediction = classifier.predict(extract_features(url))

    assert prediction.intent is expected
    assert 0.0 < prediction.confidence <= 1.0
    assert prediction.factors


def test_no_matching_tokens_is_unknown(classifier):
    prediction = classifier.predict(extract_features("https://example.com/"))

    assert prediction.intent is Intent.UNKNOWN
    assert prediction.confidence == 0.0


def test_rule_predictions_are_deterministic(classifier):
    features = extract_features("https://example.com/menu/checkout")
    first = classifier.predict(features)
    second = classifier.predict(features)

    assert first == second


def test_incremental_update_learns_new_tokens(classifier):
    features = extract_features("https://example.com/zzq")
    assert classifier.predict(features).intent is Intent.UNKNOWN

    trained = classifier.incremental_update(
        [TrainingSample("https://example.com/zzq", "entertainment")] * 3
    )

    assert trained == 3
    assert classifier.predict(features).intent is Intent.ENTERTAINMENT


def test_incremental_update_swaps_model(classifier):
    before = classifier.model
    classifier.incremental_update([TrainingSample("https://a.com/x", "purchase")])

    assert classifier.model is not before
    assert classifier.version == 1
    # The previous model is left untouched
    assert "x" not in before.learned


def test_invalid_samples_are_skipped(classifier):
    samples = [
        TrainingSample("not a url", "purchase"),
        TrainingSample("https://a.com/x", "nonsense"),
        TrainingSample("https://a.com/x", "unknown"),
        TrainingSample("https://a.com/cart", "purchase"),
    ]

    assert classifier.incremental_update(samples) == 1


def test_update_with_only_invalid_samples_keeps_model(classifier):
    before = classifier.model

    assert classifier.incremental_update([TrainingSample("bad", "purchase")]) == 0
    assert classifier.model is before
    assert classifier.version == 0


def test_retrain_threshold():
    clf = IntentClassifier(retrain_threshold=3)
    sample = TrainingSample("https://a.com/cart", "purchase")

    clf.add_samples([sample, sample])
    assert not clf.should_retrain()

    clf.add_samples([sample])
    assert clf.should_retrain()

    pending = clf.take_pending()
    assert len(pending) == 3
    assert clf.pending_count == 0
    assert not clf.should_retrain()


def test_default_threshold_is_one_thousand():
    clf = IntentClassifier()
    clf.add_samples([TrainingSample("https://a.com/cart", "purchase")] * 999)
    assert not clf.should_retrain()
    clf.add_samples([TrainingSample("https://a.com/cart", "purchase")])
    assert clf.should_retrain()


def test_save_and_load_model(tmp_path, classifier):
    classifier.incremental_update([TrainingSample("https://a.com/zzq", "booking")])
    model_path = str(tmp_path / "models" / "intent.joblib")
    classifier.save_model(model_path)

    restored = IntentClassifier()
    restored.initialize(model_path)

    assert isinstance(restored.model, RuleBasedIntentModel)
    assert restored.predict(extract_features("https://a.com/zzq")).intent is (
        Intent.BOOKING
    )


def test_initialize_rejects_foreign_model_file(tmp_path):
    import joblib

    model_path = str(tmp_path / "other.joblib")
    joblib.dump({"not": "a model"}, model_path)

    with pytest.raises(TypeError):
        IntentClassifier().initialize(model_path)


def test_create_model():
    assert isinstance(create_model("rules"), RuleBasedIntentModel)
    assert isinstance(create_model("online"), OnlineIntentModel)
    with pytest.raises(ValueError):
        create_model("neural")


def test_online_model_unfitted_predicts_unknown():
    clf = IntentClassifier(OnlineIntentModel())
    clf.initialize()

    prediction = clf.predict(extract_features("https://example.com/checkout"))
    assert prediction.intent is Intent.UNKNOWN


def test_online_model_learns_from_samples():
    clf = IntentClassifier(OnlineIntentModel())
    clf.initialize()
    train = [TrainingSample(url, intent) for url, intent in generate_samples(700, 7)]
    for _ in range(5):
        clf.incremental_update(train)

    held_out = generate_samples(70, 11)
    correct = 0
    for url, intent in held_out:
        prediction = clf.predict(extract_features(url))
        assert 0.0 <= prediction.confidence <= 1.0
        correct += prediction.intent.value == intent

    assert correct / len(held_out) > 0.6
