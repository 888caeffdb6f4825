from coachdesk.infrastructure.observability.logging import _tag_integrity_alerts


def test_critical_lines_are_tagged_as_integrity_alerts():
    event = _tag_integrity_alerts(None, "critical", {"event": "Attendance undo failed"})

    assert event["alert"] == "data_integrity"


def test_other_levels_are_left_alone():
    event = _tag_integrity_alerts(None, "error", {"event": "Calendar API list_events failed"})

    assert "alert" not in event
