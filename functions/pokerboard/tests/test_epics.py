import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1 import SERVER_TIMESTAMP

from pokerboard.epics import (
    FirestoreEpicRepository,
    InMemoryEpicRepository,
    determine_epic_status,
    epic_from_doc,
)
from pokerboard.errors import CreationFailure, FetchFailure, UpdateFailure
from shared.types import EpicFields, EpicStatus

CREATED = datetime(2025, 1, 2, tzinfo=timezone.utc)


def _epic_snapshot(epic_id, minutes=0, name="Epic"):
    data = {
        "projectId": "proj_1",
        "ownerId": "owner-1",
        "createdAt": CREATED + timedelta(minutes=minutes),
        "updatedAt": CREATED,
    }
    if name is not None:
        data["name"] = name
    snapshot = MagicMock()
    snapshot.id = epic_id
    snapshot.to_dict.return_value = data
    return snapshot


class DetermineEpicStatusTests(unittest.TestCase):
    def test_status_from_story_mix(self):
        self.assertEqual(determine_epic_status(0, 0, 0, 0), EpicStatus.PLANNING)
        self.assertEqual(determine_epic_status(3, 3, 0, 0), EpicStatus.PLANNING)
        self.assertEqual(determine_epic_status(3, 2, 1, 0), EpicStatus.ACTIVE)
        self.assertEqual(determine_epic_status(3, 0, 0, 3), EpicStatus.ACTIVE)


class InMemoryEpicRepositoryTests(unittest.TestCase):
    def setUp(self):
        self.repo = InMemoryEpicRepository()

    def _create(self, name, project_id="proj_1", **kwargs):
        return self.repo.create_epic(
            EpicFields(name=name, project_id=project_id, owner_id="owner-1", **kwargs)
        )

    def test_create_and_get(self):
        epic_id = self._create("Payments", acceptance_criteria=["Cards work"])
        epic = self.repo.get_epic(epic_id)
        self.assertTrue(epic_id.startswith("epic_"))
        self.assertEqual(epic.name, "Payments")
        self.assertEqual(epic.acceptance_criteria, ["Cards work"])
        self.assertEqual(epic.status, EpicStatus.PLANNING)
        self.assertEqual((epic.story_count, epic.completed_story_count), (0, 0))

    def test_list_by_project_newest_first(self):
        first = self._create("first")
        second = self._create("second")
        self._create("other", project_id="proj_2")
        self.assertEqual(
            [e.id for e in self.repo.get_epics_by_project("proj_1")], [second, first]
        )

    def test_explicit_order_wins(self):
        first = self._create("first", order=1)
        second = self._create("second", order=2)
        self.assertEqual(
            [e.id for e in self.repo.get_epics_by_project("proj_1")], [first, second]
        )

    def test_update_and_delete(self):
        epic_id = self._create("Payments")
        before = self.repo.get_epic(epic_id)
        self.repo.update_epic(
            epic_id, {"status": EpicStatus.ACTIVE, "projectId": "proj_9"}
        )
        after = self.repo.get_epic(epic_id)
        self.assertEqual(after.status, EpicStatus.ACTIVE)
        self.assertEqual(after.project_id, "proj_1")
        self.assertGreater(after.updated_at, before.updated_at)

        self.repo.delete_epic(epic_id)
        self.assertIsNone(self.repo.get_epic(epic_id))

    def test_update_missing_epic(self):
        with self.assertRaises(UpdateFailure):
            self.repo.update_epic("epic_missing", {"name": "x"})

    def test_story_counts_move_status(self):
        epic_id = self._create("Payments")
        status = self.repo.update_epic_story_counts(epic_id, 5, 3, 1, 1)
        epic = self.repo.get_epic(epic_id)
        self.assertEqual(status, EpicStatus.ACTIVE)
        self.assertEqual(epic.status, EpicStatus.ACTIVE)
        self.assertEqual((epic.story_count, epic.completed_story_count), (5, 1))

        status = self.repo.update_epic_story_counts(epic_id, 2, 2, 0, 0)
        self.assertEqual(status, EpicStatus.PLANNING)
        self.assertEqual(self.repo.get_epic(epic_id).status, EpicStatus.PLANNING)

    def test_story_counts_for_missing_epic(self):
        with self.assertRaises(UpdateFailure):
            self.repo.update_epic_story_counts("epic_missing", 1, 1, 0, 0)

    def test_subscription_follows_project_changes(self):
        received = []
        unsubscribe = self.repo.subscribe_to_project_epics("proj_1", received.append)
        epic_id = self._create("Payments")
        self._create("elsewhere", project_id="proj_2")
        self.repo.update_epic_story_counts(epic_id, 1, 0, 1, 0)
        self.repo.delete_epic(epic_id)
        unsubscribe()
        unsubscribe()
        self._create("after unsubscribe")

        self.assertEqual(
            [[e.id for e in batch] for batch in received],
            [[], [epic_id], [epic_id], []],
        )
        self.assertEqual(received[2][0].status, EpicStatus.ACTIVE)

    def test_subscription_errors_go_to_on_error(self):
        callback = MagicMock(side_effect=[None, RuntimeError("boom"), None])
        on_error = MagicMock()
        self.repo.subscribe_to_project_epics("proj_1", callback, on_error)
        self._create("first")
        self._create("second")

        on_error.assert_called_once()
        self.assertEqual(callback.call_count, 3)


class FirestoreEpicRepositoryTests(unittest.TestCase):
    def setUp(self):
        self.client = MagicMock()
        self.epics = self.client.collection.return_value
        self.doc_ref = self.epics.document.return_value
        self.repo = FirestoreEpicRepository(self.client)

    def test_create_epic(self):
        epic_id = self.repo.create_epic(
            EpicFields(name="Payments", project_id="proj_1", owner_id="owner-1")
        )
        self.client.collection.assert_called_with("epics")
        data = self.doc_ref.set.call_args.args[0]
        self.assertEqual(data["id"], epic_id)
        self.assertEqual(data["projectId"], "proj_1")
        self.assertEqual(data["acceptanceCriteria"], [])
        self.assertEqual(data["storyCount"], 0)
        self.assertEqual(data["completedStoryCount"], 0)
        self.assertIs(data["createdAt"], SERVER_TIMESTAMP)

    def test_create_epic_failure(self):
        self.doc_ref.set.side_effect = google_exceptions.ServiceUnavailable("down")
        with self.assertRaises(CreationFailure):
            self.repo.create_epic(
                EpicFields(name="x", project_id="proj_1", owner_id="owner-1")
            )

    def test_list_failure(self):
        query = self.epics.where.return_value.order_by.return_value
        query.stream.side_effect = google_exceptions.ServiceUnavailable("down")
        with self.assertRaises(FetchFailure):
            self.repo.get_epics_by_project("proj_1")

    def test_update_strips_protected_fields(self):
        self.repo.update_epic("epic_1", {"ownerId": "x", "color": "#10B981"})
        self.doc_ref.update.assert_called_once_with(
            {"color": "#10B981", "updatedAt": SERVER_TIMESTAMP}
        )

    def test_story_counts_written_with_status(self):
        status = self.repo.update_epic_story_counts("epic_1", 3, 0, 0, 3)
        self.assertEqual(status, EpicStatus.ACTIVE)
        self.epics.document.assert_called_with("epic_1")
        self.doc_ref.update.assert_called_once_with(
            {
                "storyCount": 3,
                "completedStoryCount": 3,
                "status": EpicStatus.ACTIVE,
                "updatedAt": SERVER_TIMESTAMP,
            }
        )

    def test_story_counts_failure(self):
        self.doc_ref.update.side_effect = google_exceptions.NotFound("gone")
        with self.assertRaises(UpdateFailure):
            self.repo.update_epic_story_counts("epic_1", 1, 1, 0, 0)

    def test_subscription_skips_unreadable_epics(self):
        query = self.epics.where.return_value.order_by.return_value
        received = []
        on_error = MagicMock()
        unsubscribe = self.repo.subscribe_to_project_epics(
            "proj_1", received.append, on_error
        )
        handler = query.on_snapshot.call_args.args[0]

        handler(
            [
                _epic_snapshot("epic_old", minutes=1),
                _epic_snapshot("epic_broken", name=None),
                _epic_snapshot("epic_new", minutes=5),
            ],
            [],
            CREATED,
        )

        self.assertEqual(
            [[e.id for e in batch] for batch in received], [["epic_new", "epic_old"]]
        )
        on_error.assert_not_called()
        filter_ = self.epics.where.call_args.kwargs["filter"]
        self.assertEqual(
            (filter_.field_path, filter_.op_string, filter_.value),
            ("projectId", "==", "proj_1"),
        )

        unsubscribe()
        unsubscribe()
        query.on_snapshot.return_value.unsubscribe.assert_called_once_with()

    def test_subscription_callback_errors_reported(self):
        query = self.epics.where.return_value.order_by.return_value
        on_error = MagicMock()
        self.repo.subscribe_to_project_epics(
            "proj_1", MagicMock(side_effect=RuntimeError("boom")), on_error
        )
        handler = query.on_snapshot.call_args.args[0]
        handler([_epic_snapshot("epic_1")], [], CREATED)
        on_error.assert_called_once()
        query.on_snapshot.return_value.unsubscribe.assert_not_called()


class EpicFromDocTests(unittest.TestCase):
    def test_legacy_document_defaults(self):
        created = datetime(2025, 1, 2, tzinfo=timezone.utc)
        epic = epic_from_doc(
            {
                "id": "epic_1",
                "name": "Legacy",
                "projectId": "proj_1",
                "ownerId": "owner-1",
                "createdAt": created,
                "targetDate": None,
            }
        )
        self.assertEqual(epic.acceptance_criteria, [])
        self.assertEqual(epic.created_at, created)
        self.assertIsNone(epic.target_date)


if __name__ == "__main__":
    unittest.main()
