from __future__ import annotations

from models.session_models import Role, TranscriptEvent
from services.realtime.summary_builder import build_summary


def _turn(role: Role, text: str) -> TranscriptEvent:
    return TranscriptEvent(role=role, text=text, source_event_type="test")


def test_no_severity_cues_omits_severity_group():
    summary = build_summary(
        [
            _turn(Role.ASSISTANT, "What brings you in today?"),
            _turn(Role.PATIENT, "My knee feels stiff."),
            _turn(Role.PATIENT, "It is hard to walk upstairs."),
        ]
    )

    labels = [group.label for group in summary.bullets]
    assert "Severity signals" not in labels
    assert "Peak severity" not in summary.overview
    assert summary.overview == "Turn count: 3 (Patient 2 / Assistant 1)"


def test_peak_and_average_severity():
    summary = build_summary(
        [
            {"role": "patient", "text": "It was a 4 this morning."},
            {"role": "assistant", "text": "And now?"},
            {"role": "patient", "text": "Now it's severe."},
            {"role": "patient", "text": "Honestly maybe a 7."},
        ]
    )

    severity = next(g for g in summary.bullets if g.label == "Severity signals")
    assert severity.items == ["Peak 8/10", "Average 6.33/10"]
    assert summary.overview.endswith("· Peak severity 8/10 · Avg severity 6.33/10")


def test_key_statements_are_recent_distinct_first_sentences():
    summary = build_summary(
        [
            _turn(Role.PATIENT, "I have a rash. It itches."),
            _turn(Role.PATIENT, "Ok"),
            _turn(Role.PATIENT, "It spread to my arm."),
            _turn(Role.PATIENT, "i have a rash. Still."),
            _turn(Role.PATIENT, "No fever though."),
            _turn(Role.PATIENT, "I have a rash."),
        ]
    )

    key = next(g for g in summary.bullets if g.label == "Key patient statements")
    assert key.items == ["It spread to my arm.", "No fever though.", "I have a rash."]


def test_statements_truncated_to_220_characters():
    summary = build_summary([_turn(Role.PATIENT, "a" * 500)])
    key = summary.bullets[0]
    assert len(key.items[0]) == 220


def test_notable_mentions_pick_matching_sentence():
    summary = build_summary(
        [
            _turn(Role.PATIENT, "My head hurts. It started yesterday after work."),
            _turn(Role.PATIENT, "Nothing new."),
            _turn(Role.PATIENT, "It gets worse because of screens."),
        ]
    )

    notable = next(g for g in summary.bullets if g.label == "Notable mentions")
    assert notable.items == ["It started yesterday after work.", "It gets worse because of screens."]


def test_unknown_roles_dropped_and_plain_text_layout():
    summary = build_summary(
        [
            {"role": "system", "text": "ignored 9/10"},
            {"role": "patient", "text": "Mild cramps since Monday."},
        ]
    )

    assert summary.overview.startswith("Turn count: 1 (Patient 1 / Assistant 0)")
    assert summary.plain_text.splitlines()[0] == "Session Summary"
    assert "\nKey patient statements:\n- Mild cramps since Monday." in summary.plain_text
    assert "\nSeverity signals:\n- Peak 2/10\n- Average 2/10" in summary.plain_text


def test_empty_transcript():
    summary = build_summary([])
    assert summary.bullets == []
    assert summary.plain_text == "Session Summary\nTurn count: 0 (Patient 0 / Assistant 0)"
    assert summary.as_dict()["plainText"] == summary.plain_text
