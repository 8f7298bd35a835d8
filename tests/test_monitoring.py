from focused_crawler.utils.monitoring import initialize_monitoring


def test_monitor_records_crawl_counters():
    monitor = initialize_monitoring()

    monitor.record_url_processed(0.25)
    monitor.record_url_processed(0.75)
    monitor.record_matches(3)
    monitor.record_duplicates(2)
    monitor.record_fetch_failure("transient")
    monitor.update_queue_size(7)

    metrics = monitor.metrics
    assert metrics.sample("crawler_urls_processed_total") == 2
    assert metrics.sample("crawler_matches_found_total") == 3
    assert metrics.sample("crawler_duplicates_skipped_total") == 2
    assert metrics.registry.get_sample_value("crawler_fetch_failures_total", {"kind": "transient"}) == 1
    assert metrics.sample("crawler_queue_size") == 7
    assert metrics.sample("crawler_fetch_time_seconds_count") == 2

    summary = monitor.get_summary()
    assert summary["urls_processed"] == 2
    assert summary["matches_found"] == 3


def test_separate_runs_do_not_share_metrics():
    first = initialize_monitoring()
    second = initialize_monitoring()

    first.record_matches(5)

    assert second.metrics.sample("crawler_matches_found_total") == 0
