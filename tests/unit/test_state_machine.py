from smart_content.domain.enums import TERMINAL_STATUSES, JobStatus
from smart_content.domain.state_machine import allowed_sources, can_transition


def test_queued_goes_processing():
    assert can_transition(JobStatus.queued, JobStatus.processing) is True


def test_processing_redelivery_is_allowed():
    assert can_transition(JobStatus.processing, JobStatus.processing) is True


def test_queued_cannot_skip_to_completed():
    assert can_transition(JobStatus.queued, JobStatus.completed) is False
    assert can_transition(JobStatus.queued, JobStatus.error) is False


def test_terminal_statuses_never_leave():
    for terminal in TERMINAL_STATUSES:
        for target in JobStatus:
            assert can_transition(terminal, target) is False


def test_allowed_sources_drive_conditional_updates():
    assert set(allowed_sources(JobStatus.processing)) == {JobStatus.queued, JobStatus.processing}
    assert allowed_sources(JobStatus.completed) == [JobStatus.processing]
    assert allowed_sources(JobStatus.error) == [JobStatus.processing]
    assert allowed_sources(JobStatus.failed) == []
    assert allowed_sources(JobStatus.queued) == []
    assert can_transition(JobStatus.processing, JobStatus.queued) is False
