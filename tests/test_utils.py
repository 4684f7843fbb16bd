import datetime as dt

from utils import (
    ProbeStatus,
    build_ffmpeg_cmd,
    build_streamlink_cmd,
    classify_probe_output,
    date_stamp,
    datetime_stamp,
    hide_token,
    log_timestamp,
    minute_stamp,
    twitch_url,
)

WHEN = dt.datetime(2024, 3, 5, 7, 8, 9)


def test_stamps():
    assert date_stamp(WHEN) == "20240305"
    assert datetime_stamp(WHEN) == "20240305_070809"
    assert minute_stamp(WHEN) == "20240305_0708"
    assert log_timestamp(WHEN) == "2024/03/05 07:08:09"


def test_streamlink_cmd_without_token():
    cmd = build_streamlink_cmd("foo")
    assert cmd == ["streamlink", "--stream-url", "https://www.twitch.tv/foo", "best"]
    assert "--twitch-api-header" not in cmd


def test_streamlink_cmd_with_token_and_extra_args():
    cmd = build_streamlink_cmd("foo", "abc123", ["--twitch-disable-ads"])
    assert cmd[:2] == ["streamlink", "--twitch-disable-ads"]
    header = cmd.index("--twitch-api-header")
    assert cmd[header + 1] == "Authorization=OAuth abc123"
    assert cmd[-2:] == [twitch_url("foo"), "best"]


def test_hide_token():
    rendered = hide_token(build_streamlink_cmd("foo", "abc123"))
    assert "abc123" not in rendered
    assert "Authorization=OAuth HIDDEN_TOKEN" in rendered


def test_ffmpeg_cmd_copies_without_reencode(tmp_path):
    out = tmp_path / "foo.mp4"
    assert build_ffmpeg_cmd("https://example/stream", out) == [
        "ffmpeg", "-i", "https://example/stream", "-c", "copy", str(out),
    ]


def test_classify_live():
    result = classify_probe_output(0, "https://video.example/index.m3u8\n", "")
    assert result.status is ProbeStatus.LIVE
    assert result.url == "https://video.example/index.m3u8"
    assert result.is_live


def test_classify_live_uses_last_output_line():
    result = classify_probe_output(0, "[cli][info] Found\n  https://x/y.m3u8  \n\n", "")
    assert result.url == "https://x/y.m3u8"


def test_classify_offline_on_nonzero_exit():
    result = classify_probe_output(1, "error: No playable streams found on this URL", "")
    assert result.status is ProbeStatus.OFFLINE
    assert result.url is None


def test_classify_offline_on_empty_output():
    assert classify_probe_output(0, "  \n", "").status is ProbeStatus.OFFLINE


def test_classify_unauthorized_wins_over_exit_code():
    for code in (0, 1):
        assert classify_probe_output(code, "", "error: Unauthorized").status is ProbeStatus.CREDENTIAL_INVALID
        assert classify_probe_output(code, "error: Unauthorized\n", "").status is ProbeStatus.CREDENTIAL_INVALID


def test_classify_marker_is_case_sensitive():
    result = classify_probe_output(1, "", "UNAUTHORIZED")
    assert result.status is ProbeStatus.OFFLINE
