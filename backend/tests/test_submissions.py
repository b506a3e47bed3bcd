"""Tests de l'envoi des preuves photo."""

import pytest
from bson import ObjectId

from conftest import mission_doc
from gardiens.core.errors import (
    InvalidImage,
    NotFound,
    OutOfGeofence,
    PersistenceFailed,
    StorageUploadFailed,
)
from gardiens.db.mongodb import PROOFS_BUCKET
from gardiens.services.moderation import ModerationService
from gardiens.services.submissions import ProofSubmissionService, validate_image_payload

JPEG = b"\xff\xd8\xff\xe0fake-jpeg"
NEAR_EIFFEL = {"latitude": 48.8586, "longitude": 2.2947}


class TestProofSubmission:
    @pytest.fixture
    def service(self, mock_db, storage, settings):
        mock_db.mission_configs.docs.append(mission_doc())
        return ProofSubmissionService(mock_db, storage, settings)

    @pytest.mark.asyncio
    async def test_creates_pending_submission(self, service, mock_db, storage):
        user_id = ObjectId()
        submission = await service.submit_proof("tour-eiffel", user_id, JPEG, "image/jpeg", **NEAR_EIFFEL)

        assert submission.id is not None
        assert submission.status == "pending"
        assert submission.type == "photo"
        assert submission.location_valid is True
        assert len(storage.objects) == 1
        (bucket, key), (data, _) = next(iter(storage.objects.items()))
        assert bucket == PROOFS_BUCKET
        assert key.startswith(f"{user_id}/tour-eiffel-") and key.endswith(".jpg")
        assert data == JPEG
        assert submission.photo_url == storage.public_url(bucket, key)
        assert await mock_db.submissions.count_documents({}) == 1

    @pytest.mark.asyncio
    async def test_submission_listed_as_pending(self, service, mock_db, event_bus):
        user_id = ObjectId()
        mock_db.profiles.docs.append({"_id": user_id, "email": "lumiere@example.com", "team_name": "Phénix"})
        created = await service.submit_proof("tour-eiffel", user_id, JPEG, "image/jpeg", **NEAR_EIFFEL)

        pending = await ModerationService(mock_db, event_bus).list_by_status("pending")
        match = [s for s in pending if s.id == created.id]
        assert len(match) == 1
        assert match[0].mission_id == "tour-eiffel"
        assert match[0].user_id == user_id
        assert match[0].photo_url.startswith("http://testserver/media/mission-proofs/")
        assert match[0].profile.team_name == "Phénix"

    @pytest.mark.asyncio
    async def test_out_of_geofence(self, service, mock_db, storage):
        with pytest.raises(OutOfGeofence) as exc:
            await service.submit_proof(
                "tour-eiffel", ObjectId(), JPEG, "image/jpeg", latitude=48.8566, longitude=2.3522
            )
        assert exc.value.status_code == 403
        assert exc.value.distance_meters > 4000
        assert storage.objects == {}
        assert await mock_db.submissions.count_documents({}) == 0

    @pytest.mark.asyncio
    async def test_position_required_when_enforced(self, service, storage):
        with pytest.raises(OutOfGeofence):
            await service.submit_proof("tour-eiffel", ObjectId(), JPEG, "image/jpeg")
        assert storage.objects == {}

    @pytest.mark.asyncio
    async def test_geofence_not_enforced(self, mock_db, storage, settings):
        settings.geofence_enforced = False
        mock_db.mission_configs.docs.append(mission_doc())
        service = ProofSubmissionService(mock_db, storage, settings)

        submission = await service.submit_proof("tour-eiffel", ObjectId(), JPEG, "image/jpeg")
        assert submission.status == "pending"
        assert submission.location_valid is None

    @pytest.mark.asyncio
    async def test_unknown_mission(self, service):
        with pytest.raises(NotFound):
            await service.submit_proof("atlantide", ObjectId(), JPEG, "image/jpeg", **NEAR_EIFFEL)

    @pytest.mark.asyncio
    async def test_upload_failure(self, service, mock_db, storage):
        storage.fail_uploads = True
        with pytest.raises(StorageUploadFailed):
            await service.submit_proof("tour-eiffel", ObjectId(), JPEG, "image/jpeg", **NEAR_EIFFEL)
        assert await mock_db.submissions.count_documents({}) == 0

    @pytest.mark.asyncio
    async def test_insert_failure_leaves_orphaned_blob(self, service, mock_db, storage):
        mock_db.submissions.fail_writes = True
        with pytest.raises(PersistenceFailed):
            await service.submit_proof("tour-eiffel", ObjectId(), JPEG, "image/jpeg", **NEAR_EIFFEL)
        assert len(storage.objects) == 1
        assert mock_db.submissions.docs == []

    @pytest.mark.asyncio
    async def test_list_for_user(self, service):
        user_id = ObjectId()
        await service.submit_proof("tour-eiffel", user_id, JPEG, "image/jpeg", **NEAR_EIFFEL)
        await service.submit_proof("tour-eiffel", ObjectId(), JPEG, "image/png", **NEAR_EIFFEL)

        mine = await service.list_for_user(user_id)
        assert [s.user_id for s in mine] == [user_id]


class TestValidateImagePayload:
    ALLOWED = ["image/jpeg", "image/png"]

    def test_accepts_image(self):
        validate_image_payload(JPEG, "image/jpeg", 1024, self.ALLOWED)

    def test_rejects_empty(self):
        with pytest.raises(InvalidImage):
            validate_image_payload(b"", "image/jpeg", 1024, self.ALLOWED)

    def test_rejects_non_image(self):
        with pytest.raises(InvalidImage):
            validate_image_payload(b"%PDF", "application/pdf", 1024, self.ALLOWED)

    def test_rejects_unlisted_image_type(self):
        with pytest.raises(InvalidImage):
            validate_image_payload(b"GIF89a", "image/gif", 1024, self.ALLOWED)

    def test_rejects_too_large(self):
        with pytest.raises(InvalidImage):
            validate_image_payload(b"x" * 2048, "image/jpeg", 1024, self.ALLOWED)
