from queueboard.app.settings import SettingsConfig, apply_overrides, load_settings


def test_defaults_match_sync_timings():
    cfg = SettingsConfig()

    assert cfg.poll_interval_ms == 5000
    assert cfg.debounce_ms == 500
    assert cfg.typing_hold_s == 1.0
    assert cfg.slot_lock_s == 2.0
    assert cfg.side_lock_s == 3.0
    assert cfg.request_timeout_s == 10
    assert cfg.offline


def test_load_settings_reads_prefixed_env():
    cfg = load_settings(
        {
            "QUEUEBOARD_API_URL": "http://board:8000/",
            "QUEUEBOARD_API_KEY": "k",
            "QUEUEBOARD_POLL_INTERVAL_MS": "2500",
            "QUEUEBOARD_REALTIME": "off",
            "UNRELATED": "x",
        }
    )

    assert cfg.api_base_url == "http://board:8000"
    assert cfg.api_key == "k"
    assert cfg.poll_interval_ms == 2500
    assert cfg.realtime is False
    assert not cfg.offline


def test_invalid_and_too_small_values_fall_back():
    cfg = apply_overrides(SettingsConfig(), {"poll_interval_ms": "fast", "io_workers": "0"})

    assert cfg.poll_interval_ms == 5000
    assert cfg.io_workers == 1


def test_empty_env_values_are_ignored():
    assert load_settings({"QUEUEBOARD_DEBOUNCE_MS": ""}) == SettingsConfig()
