from datetime import date

from scheduler import SchedulerManager


def _row(income_id: int) -> dict[str, object]:
    return {"income_id": income_id, "user_id": 1, "source": "Bank", "status": "urgent", "days": 2, "amount_paise": 100}


def test_reminders_are_sent_once_per_day_and_old_keys_pruned() -> None:
    manager = SchedulerManager()
    monday, tuesday = date(2025, 3, 10), date(2025, 3, 11)

    assert len(manager._fresh_reminders([_row(1), _row(2)], monday)) == 2
    assert manager._fresh_reminders([_row(1)], monday) == []

    assert len(manager._fresh_reminders([_row(1)], tuesday)) == 1
    assert manager._reminded == {(1, "2025-03-11")}
