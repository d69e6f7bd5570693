from __future__ import annotations

import pytest

from logmonitor.crawler import LogClassifier, classify_log


def test_log_with_error_substring_is_erroring():
    assert classify_log(b"checking...\nerror: build of /nix/store/x failed\n") is True


def test_clean_log_is_not_erroring():
    assert classify_log(b"building\ninstalling\npost-installation fixup\n") is False


def test_match_is_case_sensitive():
    assert classify_log(b"Error: capitalised does not count") is False
    assert classify_log(b"ERROR") is False


def test_substring_inside_other_words_counts():
    assert classify_log(b"-Werror=format-security") is True


def test_undecodable_bytes_are_still_classifiable():
    assert classify_log(b"\xff\xfe\x00 error \x80") is True
    assert classify_log(b"\xff\xfe\x00\x80") is False


def test_classification_is_deterministic():
    body = b"some log with an error in it"

    assert {classify_log(body) for _ in range(10)} == {True}


def test_classifier_binds_custom_signature():
    classifier = LogClassifier("FAILED")

    assert classifier("tests FAILED") is True
    assert classifier("error") is False


def test_classifier_rejects_empty_signature():
    with pytest.raises(ValueError):
        LogClassifier("")
