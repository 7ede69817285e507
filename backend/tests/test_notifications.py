from __future__ import annotations

from timetagger.entities import CurrentTaskSnapshot
from timetagger.notifications import BackgroundDispatcher, NotificationService, NotificationSignal


SNAPSHOT = CurrentTaskSnapshot(1, "focus", 0)


def test_history_is_bounded_and_filterable():
    service = NotificationService(history_size=3)
    for _ in range(3):
        service.notify(NotificationSignal.TASK_CHANGED, SNAPSHOT)
    service.notify(NotificationSignal.REST_FINISHED, SNAPSHOT, "Rest is over")

    history = service.get_history()
    assert len(history) == 3
    assert history[-1].signal is NotificationSignal.REST_FINISHED
    assert len(service.get_history(NotificationSignal.TASK_CHANGED)) == 2

    service.clear_history()
    assert service.get_history() == []


def test_handlers_receive_notifications():
    service = NotificationService()
    received = []
    service.add_handler(received.append)
    service.notify(NotificationSignal.REST_FINISHED, SNAPSHOT, "Rest is over")
    assert [n.message for n in received] == ["Rest is over"]


def test_dispatcher_logs_failures(caplog):
    def boom():
        raise OSError("disk full")

    dispatcher = BackgroundDispatcher(synchronous=True)
    with caplog.at_level("ERROR"):
        assert dispatcher.submit(boom) is None
    assert "boom" in caplog.text
    assert "disk full" in caplog.text


def test_threaded_dispatcher_runs_jobs():
    dispatcher = BackgroundDispatcher()
    results = []
    future = dispatcher.submit(results.append, "done")
    future.result(timeout=5)
    dispatcher.close()
    assert results == ["done"]


def test_task_changes_are_announced(tagger, clock):
    tagger.notifier.clear_history()
    tagger.add_task(1, "focus")
    clock.advance(minutes=5)
    tagger.add_task(3, "later")
    tagger.complete_task()
    changes = tagger.notifier.get_history(NotificationSignal.TASK_CHANGED)
    assert [n.snapshot.tag for n in changes] == ["focus", ""]
