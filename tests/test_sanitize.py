from gpudb.ingestion.sanitize import classify_platform, parse_coverage, sanitize_text


def test_parse_coverage_extracts_number_between_tags():
    assert parse_coverage("<span>73.5</span>") == 73.5
    assert parse_coverage('<span class="badge">100</span>') == 100


def test_parse_coverage_missing_or_malformed_is_zero():
    assert parse_coverage(None) == 0
    assert parse_coverage("") == 0
    assert parse_coverage("73.5%") == 0
    assert parse_coverage("<span>n/a</span>") == 0


def test_parse_coverage_keeps_leading_number_of_odd_values():
    # Only the leading number of "1.2.3" is meaningful
    assert parse_coverage("<b>1.2.3</b>") == 1.2


def test_classify_platform_known_codes():
    assert classify_platform(0) == "windows"
    assert classify_platform(1) == "linux"
    assert classify_platform(2) == "android"
    assert classify_platform(3) == "macos"
    assert classify_platform(4) == "ios"


def test_classify_platform_unknown_code_defaults_to_linux():
    assert classify_platform(99) == "linux"
    assert classify_platform(-1) == "linux"
    assert classify_platform(None) == "linux"


def test_sanitize_text_strips_control_chars_and_whitespace():
    assert sanitize_text("  NVIDIA\x00 GeForce\x1f RTX\x0b ") == "NVIDIA GeForce RTX"
    # Tab, newline and carriage return are not in the stripped ranges
    assert sanitize_text("a\tb\nc") == "a\tb\nc"


def test_sanitize_text_none_is_empty():
    assert sanitize_text(None) == ""
    assert sanitize_text("") == ""


def test_sanitize_text_clean_string_unchanged():
    assert sanitize_text("AMD Radeon RX 7900 XTX") == "AMD Radeon RX 7900 XTX"
