import pytest

from lift_feed.classifier import classify, is_peak_to_peak
from lift_feed.models import Mountain


@pytest.mark.parametrize(
    "sector, grouping",
    [(None, None), ("Blackcomb", None), ("Whistler", "Whistler Mountain"), (None, "BC lifts")],
)
def test_peak_to_peak_is_both_regardless_of_hints(sector, grouping):
    assert classify("Peak 2 Peak Gondola", sector, grouping) is Mountain.BOTH


def test_peak_to_peak_spellings():
    assert is_peak_to_peak("PEAK-2-PEAK")
    assert is_peak_to_peak("Peak to Peak gondola")
    assert not is_peak_to_peak("Peak Express")


def test_blackcomb_tokens_win_over_whistler_tokens():
    assert classify("Whistler Blackcomb Glacier Express") is Mountain.BLACKCOMB
    assert classify("Harmony Express", sector="Blackcomb") is Mountain.BLACKCOMB


def test_whistler_tokens():
    assert classify("Peak Express") is Mountain.WHISTLER
    assert classify("Creekside Gondola") is Mountain.WHISTLER
    assert classify("Chair 9", page_grouping="Whistler Mountain") is Mountain.WHISTLER


def test_grouping_abbreviations_are_whole_words():
    assert classify("Chair 9", page_grouping="BC lifts") is Mountain.BLACKCOMB
    assert classify("Chair 9", page_grouping="WH - upper") is Mountain.WHISTLER
    # "bc" inside another word is not an abbreviation.
    assert classify("Chair 9", page_grouping="abcde") is Mountain.UNKNOWN


def test_unlisted_names_stay_unknown():
    assert classify("Mystery Lift") is Mountain.UNKNOWN
    assert classify("") is Mountain.UNKNOWN
    assert classify(None) is Mountain.UNKNOWN
