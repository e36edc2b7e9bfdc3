import pytest

from clipintel.collaborators import ZScoreAnomalyDetector
from clipintel.intent import IntentClassifier
from clipintel.learning import BehaviorLearningLoop, derive_training_sample
from clipintel.models import BehaviorAction, TrainingSample, UserBehavior


@pytest.fixture
def loop(historical):
    return BehaviorLearningLoop(
        IntentClassifier(), historical, ZScoreAnomalyDetector()
    )


def visit(path, action=BehaviorAction.URL_ACCESS, duration=0.0):
    return UserBehavior(action, "https://example.com" + path, duration=duration)


def test_patterns_accumulate(run, loop):
    async def scenario():
        for path in ["/menu", "/cart", "/menu", "/menu", "/cart", "/about"]:
            await loop.ingest(visit(path))
        await loop.ingest(visit("/cart", BehaviorAction.BUTTON_TAP, 4.0))
        return await loop.ingest(visit("/cart", BehaviorAction.BUTTON_TAP, 6.0))

    outcome = run(scenario())
    patterns = outcome.patterns

    assert patterns.total_events == 8
    assert patterns.frequent_paths == ("/cart", "/menu")
    assert patterns.path_counts["/about"] == 1
    assert patterns.preferred_actions == ("url_access", "button_tap")
    assert patterns.session_count == 2
    assert patterns.session_mean == pytest.approx(5.0)
    assert ("/menu", "/cart", 2) in patterns.path_sequences


def test_patterns_are_a_snapshot(run, loop):
    async def scenario():
        first = await loop.ingest(visit("/menu"))
        await loop.ingest(visit("/menu"))
        return first

    first = run(scenario())

    assert first.patterns.total_events == 1
    assert loop.snapshot().total_events == 2


def test_reset_patterns(run, loop):
    async def scenario():
        await loop.ingest(visit("/menu"))
        await loop.ingest(visit("/menu"))
        await loop.reset_patterns()

    run(scenario())
    patterns = loop.snapshot()

    assert patterns.total_events == 0
    assert patterns.frequent_paths == ()
    assert patterns.session_count == 0


def test_session_duration_anomaly(run, loop):
    async def scenario():
        for i in range(10):
            await loop.ingest(visit("/menu", duration=10.0 + 2 * (i % 2)))
        return await loop.ingest(visit("/menu", duration=100.0))

    outcome = run(scenario())

    assert [a.anomaly_type for a in outcome.anomalies] == ["session_duration"]
    assert 0.0 < outcome.anomalies[0].severity <= 1.0


def test_no_anomaly_before_enough_sessions(run, loop):
    async def scenario():
        await loop.ingest(visit("/menu", duration=10.0))
        await loop.ingest(visit("/menu", duration=12.0))
        return await loop.ingest(visit("/menu", duration=500.0))

    assert run(scenario()).anomalies == ()


def test_rapid_exit(run, loop):
    outcome = run(loop.ingest(visit("/menu", BehaviorAction.EXIT, 0.3)))

    assert [a.anomaly_type for a in outcome.anomalies] == ["rapid_exit"]


def test_derived_training_samples(run, loop):
    async def scenario():
        purchase = await loop.ingest(visit("/cart", BehaviorAction.PURCHASE))
        swipe = await loop.ingest(visit("/cart", BehaviorAction.SWIPE_GESTURE))
        return purchase, swipe

    purchase, swipe = run(scenario())

    assert purchase.samples_added == 1
    assert swipe.samples_added == 0
    assert loop.classifier.take_pending() == [
        TrainingSample("https://example.com/cart", "purchase")
    ]


@pytest.mark.parametrize(
    "action,label",
    [
        (BehaviorAction.PURCHASE, "purchase"),
        (BehaviorAction.SEARCH, "information"),
        (BehaviorAction.NAVIGATION, "browse"),
        (BehaviorAction.URL_ACCESS, "browse"),
        (BehaviorAction.BUTTON_TAP, None),
        (BehaviorAction.EXIT, None),
    ],
)
def test_derive_training_sample(action, label):
    sample = derive_training_sample(visit("/x", action))
    assert (sample.intent if sample else None) == label


def test_store_samples_are_forwarded(run, loop, historical):
    historical.add_training_samples(
        [TrainingSample("https://a.com/cart", "purchase")] * 2
    )

    outcome = run(loop.ingest(visit("/menu", BehaviorAction.BUTTON_TAP)))

    assert outcome.samples_added == 2
    assert loop.classifier.pending_count == 2


def test_insights_are_stored(run, loop, historical):
    run(loop.ingest(visit("/menu", BehaviorAction.EXIT, 0.2)))

    behavior, patterns, anomalies = historical.insights[-1]
    assert behavior.url == "https://example.com/menu"
    assert patterns.total_events == 1
    assert anomalies[0].anomaly_type == "rapid_exit"


def test_sample_derivation_can_be_disabled(run, historical):
    loop = BehaviorLearningLoop(IntentClassifier(), historical, derive_samples=False)

    outcome = run(loop.ingest(visit("/cart", BehaviorAction.PURCHASE)))

    assert outcome.samples_added == 0
