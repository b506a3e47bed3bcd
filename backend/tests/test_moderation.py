"""Tests de la modération : transition atomique, effets en cascade, événements."""

import asyncio

import pytest
from bson import ObjectId

from conftest import mission_doc, submission_doc
from gardiens.core.errors import Conflict, NotFound, UpdateFailed
from gardiens.models.mission import KeyType
from gardiens.services.events import SubmissionStatusChanged
from gardiens.services.moderation import ModerationService


class TestModerationService:
    @pytest.fixture
    def user_id(self):
        return ObjectId()

    @pytest.fixture
    def pending(self, mock_db, user_id):
        mock_db.mission_configs.docs.append(mission_doc())
        doc = submission_doc(user_id)
        mock_db.submissions.docs.append(doc)
        return doc

    @pytest.fixture
    def received(self, event_bus):
        events = []
        event_bus.subscribe(SubmissionStatusChanged, events.append)
        return events

    @pytest.mark.asyncio
    async def test_approve_records_progress_and_key(self, mock_db, event_bus, pending, user_id, received):
        reviewer = ObjectId()
        out = await ModerationService(mock_db, event_bus).decide(pending["_id"], True, reviewer, notes="Bravo")

        assert out.submission.status == "approved"
        assert out.submission.reviewed_by == reviewer
        assert out.submission.notes == "Bravo"
        assert out.previous_status == "pending"
        assert out.progress_recorded is True
        assert out.key_granted == KeyType.AIR

        progress = await mock_db.missions_progress.find_one({"user_id": user_id})
        assert progress["mission_id"] == "tour-eiffel"
        assert progress["completed"] is True
        assert progress["proof_url"] == pending["photo_url"]
        assert progress["day"] == 2
        key = await mock_db.keys_collected.find_one({"user_id": user_id})
        assert key["key_type"] == "air"
        assert key["source_submission_id"] == pending["_id"]

        assert len(received) == 1
        assert received[0].new_status == "approved"
        assert received[0].key_granted == "air"

    @pytest.mark.asyncio
    async def test_double_approve_is_idempotent(self, mock_db, event_bus, pending, user_id):
        service = ModerationService(mock_db, event_bus)
        await service.decide(pending["_id"], True, ObjectId())

        with pytest.raises(Conflict):
            await service.decide(pending["_id"], True, ObjectId())

        assert await mock_db.keys_collected.count_documents({"user_id": user_id}) == 1
        assert await mock_db.missions_progress.count_documents({"user_id": user_id}) == 1

    @pytest.mark.asyncio
    async def test_concurrent_decisions_only_one_wins(self, mock_db, event_bus, pending, user_id, received):
        service = ModerationService(mock_db, event_bus)
        results = await asyncio.gather(
            service.decide(pending["_id"], True, ObjectId()),
            service.decide(pending["_id"], True, ObjectId()),
            return_exceptions=True,
        )

        assert sum(isinstance(r, Conflict) for r in results) == 1
        assert await mock_db.keys_collected.count_documents({"user_id": user_id}) == 1
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_second_mission_with_same_key_grants_nothing_new(self, mock_db, event_bus, pending, user_id):
        mock_db.mission_configs.docs.append(mission_doc("tour-eiffel-bis", key_reward="air"))
        other = submission_doc(user_id, mission_id="tour-eiffel-bis")
        mock_db.submissions.docs.append(other)
        service = ModerationService(mock_db, event_bus)

        first = await service.decide(pending["_id"], True, ObjectId())
        second = await service.decide(other["_id"], True, ObjectId())

        assert first.key_granted == KeyType.AIR
        assert second.key_granted is None
        assert second.progress_recorded is True
        assert await mock_db.keys_collected.count_documents({"user_id": user_id}) == 1
        assert await mock_db.missions_progress.count_documents({"user_id": user_id}) == 2

    @pytest.mark.asyncio
    async def test_reject_has_no_cascade(self, mock_db, event_bus, pending, user_id, received):
        out = await ModerationService(mock_db, event_bus).decide(pending["_id"], False, ObjectId())

        assert out.submission.status == "rejected"
        assert out.progress_recorded is False
        assert await mock_db.missions_progress.count_documents({}) == 0
        assert await mock_db.keys_collected.count_documents({}) == 0
        assert received[0].new_status == "rejected"

    @pytest.mark.asyncio
    async def test_mission_without_key(self, mock_db, event_bus, user_id):
        mock_db.mission_configs.docs.append(mission_doc("musee-orsay", key_reward=None))
        doc = submission_doc(user_id, mission_id="musee-orsay")
        mock_db.submissions.docs.append(doc)

        out = await ModerationService(mock_db, event_bus).decide(doc["_id"], True, ObjectId())

        assert out.progress_recorded is True
        assert out.key_granted is None
        assert await mock_db.keys_collected.count_documents({}) == 0

    @pytest.mark.asyncio
    async def test_override_terminal_state(self, mock_db, event_bus, pending, user_id):
        service = ModerationService(mock_db, event_bus)
        await service.decide(pending["_id"], False, ObjectId())

        with pytest.raises(Conflict):
            await service.decide(pending["_id"], True, ObjectId())
        out = await service.decide(pending["_id"], True, ObjectId(), override=True)

        assert out.previous_status == "rejected"
        assert out.submission.status == "approved"
        assert out.key_granted == KeyType.AIR

    @pytest.mark.asyncio
    async def test_override_same_status_conflicts(self, mock_db, event_bus, pending):
        service = ModerationService(mock_db, event_bus)
        await service.decide(pending["_id"], True, ObjectId())
        with pytest.raises(Conflict):
            await service.decide(pending["_id"], True, ObjectId(), override=True)

    @pytest.mark.asyncio
    async def test_override_reject_revokes_progress_and_key(self, mock_db, event_bus, pending, user_id):
        service = ModerationService(mock_db, event_bus)
        await service.decide(pending["_id"], True, ObjectId())

        out = await service.decide(pending["_id"], False, ObjectId(), override=True)

        assert out.previous_status == "approved"
        assert out.submission.status == "rejected"
        assert out.progress_revoked is True
        assert out.key_revoked == KeyType.AIR
        progress = await mock_db.missions_progress.find_one({"user_id": user_id})
        assert progress["completed"] is False
        assert progress["proof_url"] is None
        assert await mock_db.keys_collected.count_documents({"user_id": user_id}) == 0

    @pytest.mark.asyncio
    async def test_override_reject_keeps_key_earned_elsewhere(self, mock_db, event_bus, pending, user_id):
        mock_db.mission_configs.docs.append(mission_doc("tour-eiffel-bis", key_reward="air"))
        other = submission_doc(user_id, mission_id="tour-eiffel-bis")
        mock_db.submissions.docs.append(other)
        service = ModerationService(mock_db, event_bus)
        await service.decide(pending["_id"], True, ObjectId())
        await service.decide(other["_id"], True, ObjectId())

        out = await service.decide(pending["_id"], False, ObjectId(), override=True)

        assert out.key_revoked is None
        key = await mock_db.keys_collected.find_one({"user_id": user_id})
        assert key["source_submission_id"] == other["_id"]
        kept = await mock_db.missions_progress.find_one({"user_id": user_id, "mission_id": "tour-eiffel-bis"})
        assert kept["completed"] is True

    @pytest.mark.asyncio
    async def test_override_reject_then_approve_grants_key_again(self, mock_db, event_bus, pending, user_id):
        service = ModerationService(mock_db, event_bus)
        await service.decide(pending["_id"], True, ObjectId())
        await service.decide(pending["_id"], False, ObjectId(), override=True)

        out = await service.decide(pending["_id"], True, ObjectId(), override=True)

        assert out.key_granted == KeyType.AIR
        progress = await mock_db.missions_progress.find_one({"user_id": user_id})
        assert progress["completed"] is True

    @pytest.mark.asyncio
    async def test_unknown_submission(self, mock_db, event_bus):
        with pytest.raises(NotFound):
            await ModerationService(mock_db, event_bus).decide(ObjectId(), True, ObjectId())

    @pytest.mark.asyncio
    async def test_status_write_failure(self, mock_db, event_bus, pending):
        mock_db.submissions.fail_writes = True
        with pytest.raises(UpdateFailed):
            await ModerationService(mock_db, event_bus).decide(pending["_id"], True, ObjectId())

    @pytest.mark.asyncio
    async def test_cascade_failure_keeps_status(self, mock_db, event_bus, pending):
        mock_db.missions_progress.fail_writes = True
        with pytest.raises(UpdateFailed):
            await ModerationService(mock_db, event_bus).decide(pending["_id"], True, ObjectId())

        stored = await mock_db.submissions.find_one({"_id": pending["_id"]})
        assert stored["status"] == "approved"

    @pytest.mark.asyncio
    async def test_list_by_status_joins_profiles(self, mock_db, event_bus, pending, user_id):
        mock_db.profiles.docs.append({"_id": user_id, "email": "gardien@example.com", "team_name": "Salamandre"})
        orphan = submission_doc(ObjectId())
        mock_db.submissions.docs.append(orphan)
        mock_db.submissions.docs.append(submission_doc(user_id, status="approved"))

        listed = await ModerationService(mock_db, event_bus).list_by_status("pending")

        assert {s.id for s in listed} == {pending["_id"], orphan["_id"]}
        by_id = {s.id: s for s in listed}
        assert by_id[pending["_id"]].profile.email == "gardien@example.com"
        assert by_id[orphan["_id"]].profile is None


class TestEventBus:
    @pytest.mark.asyncio
    async def test_async_handler_and_unsubscribe(self, event_bus):
        seen = []

        async def handler(event):
            seen.append(event.submission_id)

        unsubscribe = event_bus.subscribe(SubmissionStatusChanged, handler)
        event = SubmissionStatusChanged(
            submission_id=ObjectId(), mission_id="pantheon", user_id=ObjectId(),
            previous_status="pending", new_status="approved",
        )
        await event_bus.publish(event)
        unsubscribe()
        await event_bus.publish(event)

        assert seen == [event.submission_id]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_break_publish(self, event_bus):
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        event_bus.subscribe(SubmissionStatusChanged, broken)
        event_bus.subscribe(SubmissionStatusChanged, seen.append)
        await event_bus.publish(
            SubmissionStatusChanged(
                submission_id=ObjectId(), mission_id="pantheon", user_id=ObjectId(),
                previous_status="pending", new_status="rejected",
            )
        )
        assert len(seen) == 1
