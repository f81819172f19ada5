import pytest

from services.versions import (
    SuffixPolicy,
    UnsupportedVersionError,
    compare,
    detect_long_term_variant,
    parse_version,
)

CHANNELS = {
    "LATEST_FIREFOX_VERSION": "142.0",
    "FIREFOX_ESR": "140.1.0esr",
    "FIREFOX_ESR115": "115.6.0esr",
}


def test_equal_versions():
    assert compare("1.2.3", "1.2.3") == 0


def test_numeric_components_compare_as_numbers():
    assert compare("1.2.10", "1.2.9") == 1
    assert compare("1.2.9", "1.2.10") == -1


def test_shorter_core_is_zero_padded():
    assert compare("1.2", "1.2.0") == 0
    assert compare("v1.2", "1.2.0.0") == 0


@pytest.mark.parametrize(
    "a,b",
    [("1.0", "2.0"), ("128.0.3", "128.0"), ("3.10", "3.9.9"), ("0.0.1", "0.1")],
)
def test_comparison_is_antisymmetric(a, b):
    assert compare(a, b) == -compare(b, a)


def test_community_marker_outranks_plain_release():
    assert compare("140.0", "140.0-gnu5") == -1
    assert compare("140.0-gnu5", "140.0") == 1


def test_community_marker_can_be_turned_off():
    plain = SuffixPolicy(marker_prefix=None)
    assert compare("140.0", "140.0-gnu5", plain) == 1


def test_release_outranks_prerelease():
    assert compare("2.0", "2.0-beta") == 1
    assert compare("2.0-beta", "2.0") == -1


def test_suffix_ordering():
    assert compare("128.0-2", "128.0-10") == -1
    # non-numeric suffixes compare reversed
    assert compare("1.0-alpha", "1.0-beta") == 1
    assert compare("1.0-gnu2", "1.0-gnu1") == -1


@pytest.mark.parametrize("bad", [None, "", 3, ["1.0"]])
def test_non_string_inputs_return_none(bad):
    assert compare(bad, "1.0") is None
    assert compare("1.0", bad) is None


def test_malformed_components_order_low():
    assert parse_version("x.2").numbers == (-1, 2)
    assert compare("abc", "0.0.1") == -1


def test_leading_digits_and_trimming():
    ident = parse_version("  v115.0esr-1 ")
    assert ident.numbers == (115, 0)
    assert ident.suffix == "1"


def test_detects_oldest_extended_support_channel():
    assert detect_long_term_variant("115.5.0", CHANNELS) == "115.6.0esr"


def test_detects_middle_and_latest_channels():
    assert detect_long_term_variant("140.0.1esr", CHANNELS) == "140.1.0esr"
    assert detect_long_term_variant("141.0", CHANNELS) == "142.0"


def test_version_older_than_every_channel_is_unsupported():
    with pytest.raises(UnsupportedVersionError) as exc_info:
        detect_long_term_variant("90.0", CHANNELS)
    assert exc_info.value.cause == "unsupported"


def test_unusable_channels_are_ignored():
    channels = {"LATEST": "142.0", "ESR": "", "BROKEN": None}
    assert detect_long_term_variant("142.0", channels) == "142.0"
    with pytest.raises(UnsupportedVersionError):
        detect_long_term_variant("142.0", {"ESR": ""})
    with pytest.raises(UnsupportedVersionError):
        detect_long_term_variant("", CHANNELS)
