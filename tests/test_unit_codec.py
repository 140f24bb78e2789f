import re

import pytest

from download_access.services.codec import TokenCodec


CHROME_120_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
CHROME_120_WINDOWS_PATCHED = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.6099.71 Safari/537.36"
)
CHROME_121_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36"
)
CHROME_120_MAC = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
FIREFOX_121_MAC = "Mozilla/5.0 (Macintosh; Intel Mac OS X 14.1; rv:121.0) Gecko/20100101 Firefox/121.0"


def test_generated_token_shape_and_uniqueness():
    codec = TokenCodec("test-secret")
    token_id = codec.new_token_id()
    first = codec.generate("user-1", "product-1", token_id)
    second = codec.generate("user-1", "product-1", token_id)

    assert re.fullmatch(r"dl_\d{13,}_[0-9a-f]{32}", first)
    assert first != second
    # Nothing of the inputs leaks into the string
    assert "user-1" not in first and "product-1" not in first and token_id not in first


def test_token_ids_are_unique_uuids():
    ids = {TokenCodec.new_token_id() for _ in range(50)}
    assert len(ids) == 50
    assert all(len(i) == 36 for i in ids)


def test_codec_requires_secret():
    with pytest.raises(ValueError):
        TokenCodec("")


def test_identical_user_agents_score_one():
    assert TokenCodec.user_agent_similarity(CHROME_120_WINDOWS, CHROME_120_WINDOWS) == 1.0


def test_same_components_with_different_patch_versions_score_one():
    assert TokenCodec.user_agent_similarity(CHROME_120_WINDOWS, CHROME_120_WINDOWS_PATCHED) == 1.0


def test_different_browser_and_os_score_zero():
    assert TokenCodec.user_agent_similarity(CHROME_120_WINDOWS, FIREFOX_121_MAC) == 0.0


def test_matching_browser_only_scores_below_threshold():
    score = TokenCodec.user_agent_similarity(CHROME_120_WINDOWS, CHROME_120_MAC)
    assert score == 0.6
    assert score < 0.8


def test_matching_os_only_scores_point_four():
    assert TokenCodec.user_agent_similarity(CHROME_120_WINDOWS, CHROME_121_WINDOWS) == 0.4


def test_unparseable_user_agents_score_zero():
    assert TokenCodec.user_agent_similarity("curl/8.4.0", "python-requests/2.31") == 0.0
    assert TokenCodec.user_agent_similarity(CHROME_120_WINDOWS, "") == 0.0
