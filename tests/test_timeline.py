from brs.signal.timeline import reporter_label


def test_reporter_labels_cycle_with_numeric_suffix():
    assert reporter_label(0) == "Reporter A"
    assert reporter_label(25) == "Reporter Z"
    assert reporter_label(26) == "Reporter A2"
    assert reporter_label(27) == "Reporter B2"
    assert reporter_label(52) == "Reporter A3"
