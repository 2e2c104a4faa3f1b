# tests/test_classifier.py
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from listing_pipeline.classifier import Classifier, KeywordBlacklist, Label

FIXTURES = Path(__file__).parent / "fixtures" / "labeled_items.json"
AS_OF = datetime(2026, 10, 19, tzinfo=timezone.utc)

LABELED = json.loads(FIXTURES.read_text(encoding="utf-8"))


@pytest.mark.parametrize("case", LABELED, ids=[c["item"]["propertyCode"] for c in LABELED])
def test_labeled_fixtures(case):
    assert Classifier().classify(case["item"], AS_OF) is Label(case["label"])


def test_classification_is_deterministic():
    clf = Classifier()
    first = [clf.classify(c["item"], AS_OF) for c in LABELED]
    second = [Classifier().classify(c["item"], AS_OF) for c in LABELED]
    assert first == second


def test_age_threshold_uses_given_reference_time():
    item = {
        "status": "good",
        "firstActivationDate": int((AS_OF - timedelta(days=91)).timestamp() * 1000),
        "contactInfo": {"userType": "private", "contactName": "Ana"},
    }
    assert Classifier().classify(item, AS_OF) is Label.EXPIRED
    assert Classifier().classify(item, AS_OF - timedelta(days=2)) is Label.PRIVATE
    assert Classifier(max_age_days=120).classify(item, AS_OF) is Label.PRIVATE


def test_blacklist_is_case_insensitive_and_checks_commercial_name():
    bl = KeywordBlacklist()
    assert bl.classify("TECNOCASA Centro", "") is Label.AGENCY
    assert bl.classify("Luis", "Consultores Andaluces") is Label.AGENCY
    assert bl.classify("Luis", "") is Label.PRIVATE
    assert bl.classify("", "") is Label.PRIVATE


def test_blacklist_from_file(tmp_path):
    path = tmp_path / "keywords.txt"
    path.write_text("# one per line\nhomes\n sl \n", encoding="utf-8")
    bl = KeywordBlacklist.from_file(path)
    assert bl.classify("Sunny Homes", "") is Label.AGENCY
    assert bl.classify("Pisos Mar SL", "") is Label.AGENCY
    assert bl.classify("Isla Verde", "") is Label.PRIVATE
    # a keyword the default list has is gone once the list is replaced
    assert bl.classify("Inmobiliaria Sol", "") is Label.PRIVATE


def test_detector_is_pluggable():
    class NeverAgency:
        def classify(self, name, commercial_name):
            return Label.PRIVATE

    item = {"status": "good", "contactInfo": {"userType": "private", "contactName": "Inmobiliaria Sol"}}
    assert Classifier().classify(item, AS_OF) is Label.AGENCY
    assert Classifier(NeverAgency()).classify(item, AS_OF) is Label.PRIVATE
