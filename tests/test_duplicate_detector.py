from focused_crawler.storage.duplicate_detector import ContentFingerprints, fingerprint


def test_fingerprint_ignores_case_and_whitespace():
    assert fingerprint("The  Election\nresults") == fingerprint("the election results")
    assert fingerprint("election results") != fingerprint("election result")


def test_check_and_add_reports_first_sighting_only():
    fingerprints = ContentFingerprints()

    assert fingerprints.check_and_add("Election day is here.")
    assert not fingerprints.check_and_add("election  day is here.")
    assert fingerprints.check_and_add("Something else.")

    assert len(fingerprints) == 2
    assert "ELECTION DAY IS HERE." in fingerprints
    assert fingerprints.get_stats() == {'total_checks': 3, 'duplicates': 1, 'total_fingerprints': 2}


def test_empty_fingerprint_set_is_still_usable():
    fingerprints = ContentFingerprints()

    assert len(fingerprints) == 0
    assert "anything" not in fingerprints
