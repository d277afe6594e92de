"""Tests for the reconciliation adapter and the HTTP service client."""

import asyncio
from datetime import date
from unittest.mock import MagicMock

import pytest
import requests

from daygrid.client.persistence import TimetableClient
from daygrid.client.reconciliation import ReconciliationAdapter
from daygrid.errors import NotFound, ReconciliationFailed

DAY = date(2024, 1, 1)
SLOT = "9:00 AM - 10:00 AM"


class TestReconciliationAdapter:
    """Test error reporting around service calls."""

    def test_create_failure_is_reported_and_raised(self, adapter, fake_service, notifier):
        """Test a failed create is reported and raised."""
        fake_service.fail.add("create_task")
        with pytest.raises(ReconciliationFailed):
            asyncio.run(adapter.create(DAY, SLOT, "Standup"))
        assert notifier.errors == ["Failed to add task"]

    def test_delete_of_missing_record_succeeds(self, notifier):
        """Test deleting a missing record counts as done."""
        service = MagicMock()
        service.delete_task.side_effect = NotFound("gone")
        adapter = ReconciliationAdapter(service, notifier)
        assert asyncio.run(adapter.delete("missing")) == 0
        assert notifier.errors == []

    def test_update_not_found_is_silent(self, notifier):
        """Test NotFound on update is raised without a notification."""
        service = MagicMock()
        service.update_task.side_effect = NotFound("gone")
        adapter = ReconciliationAdapter(service, notifier)
        with pytest.raises(NotFound):
            asyncio.run(adapter.update("missing", {"completed": True}))
        assert notifier.errors == []

    def test_quiet_update_only_logs(self, adapter, fake_service, notifier):
        """Test quiet updates do not notify."""
        fake_service.fail.add("update_task")
        with pytest.raises(ReconciliationFailed):
            asyncio.run(adapter.update("any", {"slot": "New"}, quiet=True))
        assert notifier.errors == []

    def test_bulk_save_notifies_success(self, adapter, fake_service, notifier):
        """Test a bulk save is announced."""
        asyncio.run(adapter.bulk_save([], DAY, DAY))
        assert notifier.successes == ["Timetable saved"]

    def test_unexpected_error_becomes_reconciliation_failure(self, adapter, fake_service, notifier):
        """Test any exception from the service surfaces as a reported ReconciliationFailed."""
        fake_service.errors["create_task"] = ValueError("bad slot")
        with pytest.raises(ReconciliationFailed) as excinfo:
            asyncio.run(adapter.create(DAY, SLOT, "Standup"))
        assert isinstance(excinfo.value.__cause__, ValueError)
        assert notifier.errors == ["Failed to add task"]

    def test_create_and_delete_notify_success(self, adapter, fake_service, notifier):
        """Test confirmed creates and deletes are announced."""
        record = asyncio.run(adapter.create(DAY, SLOT, "Standup"))
        assert asyncio.run(adapter.delete(record.id)) == 1
        assert notifier.successes == ["Task added", "Task deleted"]


class TestTimetableClient:
    """Test the blocking client against the real app."""

    def test_crud_round_trip(self, test_client):
        """Test create, update, list and delete through the client."""
        client = TimetableClient(base_url="", session=test_client)

        created = client.create_task(DAY, SLOT, "Standup")
        assert created.slot == SLOT
        assert client.create_task(DAY, SLOT, "Duplicate").id == created.id

        updated = client.update_task(created.id, {"completed": True})
        assert updated.completed is True

        assert [r.id for r in client.list_tasks(DAY, DAY)] == [created.id]
        assert client.delete_task(created.id) == 1
        assert client.delete_task(created.id) == 0
        assert client.list_tasks() == []

    def test_update_missing_raises_not_found(self, test_client):
        """Test a 404 becomes NotFound."""
        client = TimetableClient(base_url="", session=test_client)
        with pytest.raises(NotFound):
            client.update_task("missing", {"completed": True})

    def test_bulk_upsert(self, test_client):
        """Test bulk upsert through the client."""
        client = TimetableClient(base_url="", session=test_client)
        assert client.bulk_upsert(
            [{"id": None, "day": DAY, "slot": SLOT, "description": "Plan", "completed": False}],
            DAY,
            DAY,
        ) is True
        assert [r.description for r in client.list_tasks()] == ["Plan"]

    def test_connection_error_becomes_reconciliation_failure(self):
        """Test network errors become ReconciliationFailed."""
        session = MagicMock()
        session.request.side_effect = requests.ConnectionError("refused")
        client = TimetableClient(base_url="http://localhost:1", session=session)
        with pytest.raises(ReconciliationFailed):
            client.list_tasks()

    def test_server_error_becomes_reconciliation_failure(self):
        """Test 5xx responses become ReconciliationFailed with the detail."""
        response = MagicMock(status_code=500)
        response.json.return_value = {"detail": "boom"}
        session = MagicMock()
        session.request.return_value = response
        client = TimetableClient(access_token="token", base_url="http://api", session=session)
        with pytest.raises(ReconciliationFailed) as excinfo:
            client.delete_task("t1")
        assert "boom" in str(excinfo.value)
        _, kwargs = session.request.call_args
        assert kwargs["headers"]["Authorization"] == "Bearer token"

    def test_non_json_body_becomes_reconciliation_failure(self):
        """Test a 200 response that is not JSON fails the call."""
        response = MagicMock(status_code=200, text="<html>maintenance</html>")
        response.json.side_effect = ValueError("Expecting value")
        session = MagicMock()
        session.request.return_value = response
        client = TimetableClient(base_url="http://api", session=session)
        with pytest.raises(ReconciliationFailed):
            client.create_task(DAY, SLOT, "Standup")

    def test_malformed_record_becomes_reconciliation_failure(self):
        """Test a record missing required fields fails the call."""
        response = MagicMock(status_code=200)
        response.json.return_value = {"id": "t1", "slot": SLOT}
        session = MagicMock()
        session.request.return_value = response
        client = TimetableClient(base_url="http://api", session=session)
        with pytest.raises(ReconciliationFailed):
            client.update_task("t1", {"completed": True})
        response.json.return_value = [{"id": "t1"}]
        with pytest.raises(ReconciliationFailed):
            client.list_tasks()
