import dataclasses

import pytest

from hcs200 import PROFILES, Modulation, Profile, get_profile


def test_known_profiles():
    assert list(PROFILES) == ["hcs200", "hcs200_fsk", "intellicode"]


@pytest.mark.parametrize("name,spec", [
    ("hcs200", "n=hcs200,m=OOK_PWM,s=393,l=787,r=9000,g=1500"),
    ("hcs200_fsk", "n=hcs200_fsk,m=FSK_PWM,s=393,l=787,r=9000,g=1500"),
    ("intellicode", "n=intellicode,m=OOK_PWM,s=197,l=393,r=4500,g=750"),
])
def test_flex_spec(name, spec):
    assert get_profile(name).flex_spec() == spec


def test_tolerance_left_unset():
    for profile in PROFILES.values():
        assert profile.tolerance == 0


def test_threshold_splits_short_and_long():
    assert get_profile("hcs200").threshold == 590
    assert get_profile("intellicode").threshold == 295


def test_fsk_variant_shares_timing():
    ook, fsk = get_profile("hcs200"), get_profile("hcs200_fsk")
    assert fsk.modulation is Modulation.FSK_PWM
    assert (ook.short_width, ook.long_width, ook.gap_limit, ook.reset_limit) == \
        (fsk.short_width, fsk.long_width, fsk.gap_limit, fsk.reset_limit)


def test_timing_windows():
    # gap between 2x TE longest and 10x TE shortest, reset between 10x and 39x
    hcs = get_profile("hcs200")
    assert 1320 < hcs.gap_limit < 2600
    assert 6600 < hcs.reset_limit < 10140


def test_tolerance_in_flex_spec():
    profile = Profile("test", "Test", Modulation.OOK_PWM, 100, 200, 300, 400, tolerance=50)
    assert profile.flex_spec().endswith(",t=50")


def test_profiles_immutable():
    with pytest.raises(dataclasses.FrozenInstanceError):
        get_profile("hcs200").short_width = 1


def test_unknown_profile():
    with pytest.raises(KeyError, match="intellicode"):
        get_profile("nope")
