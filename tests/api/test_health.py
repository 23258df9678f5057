import pytest

from tabpulse.api.services.health import (
    domain_from_url,
    format_duration,
    health_score,
    is_privileged_url,
    is_whitelisted,
    minutes,
    seconds,
)

MINUTE_MS = 60 * 1000


class TestHealthScore:
    def test_healthy_baseline(self):
        assert health_score(0, 0, 60) == 100

    def test_deductions(self):
        # long idle -10, jank 1000/50 -20, fps -20, network -10, media -30
        score = health_score(
            11 * MINUTE_MS, 1000, 10, network_active=True, media_playing=True
        )
        assert score == 10

    def test_jank_penalty_is_capped(self):
        assert health_score(0, 2000, 60) == 60
        assert health_score(0, 100_000, 60) == 60

    def test_negative_jank_is_ignored(self):
        assert health_score(0, -500, 60) == 100

    def test_clamped_to_zero(self):
        score = health_score(
            60 * MINUTE_MS, 10_000, 0, network_active=True, media_playing=True
        )
        assert score == 0

    def test_idle_exactly_ten_minutes_is_not_long(self):
        assert health_score(10 * MINUTE_MS, 0, 60) == 100

    def test_rounds_half_up(self):
        # 25 / 50 = 0.5 -> 99.5 -> 100
        assert health_score(0, 25, 60) == 100
        assert health_score(0, 75, 60) == 99

    @pytest.mark.parametrize("idle", [0, 11 * MINUTE_MS])
    def test_monotonic_in_jank_and_fps(self, idle):
        jank_scores = [health_score(idle, j, 60) for j in range(0, 3000, 50)]
        assert jank_scores == sorted(jank_scores, reverse=True)

        fps_scores = [health_score(idle, 0, f) for f in range(0, 61)]
        assert fps_scores == sorted(fps_scores)
        assert all(0 <= s <= 100 for s in jank_scores + fps_scores)


class TestUrlHelpers:
    def test_whitelist_is_suffix_based(self):
        domains = ("youtube.com",)
        assert is_whitelisted("https://music.youtube.com/watch", domains) is True
        assert is_whitelisted("https://youtube.com/", domains) is True
        assert is_whitelisted("https://notyoutube.com/", domains) is False
        assert is_whitelisted("https://example.com/", domains) is False

    def test_whitelist_with_bad_url(self):
        assert is_whitelisted("not a url", ("youtube.com",)) is False
        assert domain_from_url("http://[::1") == ""

    def test_privileged_schemes(self):
        assert is_privileged_url("chrome://extensions") is True
        assert is_privileged_url("about:blank") is True
        assert is_privileged_url("https://example.com") is False
        assert is_privileged_url("file:///tmp/a.html") is False


def test_time_helpers():
    assert minutes(2) == 120_000
    assert seconds(1.5) == 1500


@pytest.mark.parametrize(
    ("mins", "label"), [(30, "(30m)"), (59, "(59m)"), (60, "(1h)"), (120, "(2h)")]
)
def test_format_duration(mins, label):
    assert format_duration(mins) == label
