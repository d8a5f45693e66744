"""Tests for the recording store.

These tests verify the persistence guarantees the transcription pipeline
relies on:
- Claiming is an atomic compare-and-set (never two owners)
- Terminal writes touch only the addressed recording
- Index resolution follows display order and ownership
"""

import asyncio
from uuid import uuid4

import pytest
from sqlalchemy import select, update

from logbook.core.exceptions import EntryNotFoundError, RecordingNotFoundError
from logbook.models import AudioRecording, ChatMessage, ChatRole, TranscriptionStatus
from tests.conftest import OTHER_OWNER_ID, OWNER_ID


# ============================================================================
# Claim (compare-and-set)
# ============================================================================

@pytest.mark.asyncio
async def test_claim_moves_recording_to_processing(store, entry, add_stored_recording):
    recording = await add_stored_recording(entry)
    assert recording.transcription_status == TranscriptionStatus.NOT_REQUESTED

    assert await store.claim_for_transcription(recording.id) is True

    claimed = await store.get_recording(entry.id, recording.id)
    assert claimed.transcription_status == TranscriptionStatus.PROCESSING
    assert claimed.transcription_attempts == 1
    assert claimed.transcription_started_at is not None


@pytest.mark.asyncio
async def test_claim_refused_while_processing(store, entry, add_stored_recording):
    recording = await add_stored_recording(entry)

    assert await store.claim_for_transcription(recording.id) is True
    assert await store.claim_for_transcription(recording.id) is False

    claimed = await store.get_recording(entry.id, recording.id)
    assert claimed.transcription_attempts == 1


@pytest.mark.asyncio
async def test_concurrent_claims_have_single_winner(store, entry, add_stored_recording):
    recording = await add_stored_recording(entry)

    results = await asyncio.gather(*(store.claim_for_transcription(recording.id) for _ in range(5)))

    assert results.count(True) == 1


@pytest.mark.asyncio
async def test_claim_allowed_again_after_terminal_state(store, entry, add_stored_recording):
    recording = await add_stored_recording(entry)
    await store.claim_for_transcription(recording.id)
    await store.fail_transcription(recording.id, "quota exceeded")

    assert await store.claim_for_transcription(recording.id) is True

    reclaimed = await store.get_recording(entry.id, recording.id)
    assert reclaimed.transcription_attempts == 2
    # Entering processing clears nothing
    assert reclaimed.transcription_error == "quota exceeded"


@pytest.mark.asyncio
async def test_claim_unknown_recording(store):
    assert await store.claim_for_transcription(uuid4()) is False


# ============================================================================
# Terminal Writes
# ============================================================================

@pytest.mark.asyncio
async def test_complete_clears_previous_error(store, entry, add_stored_recording):
    recording = await add_stored_recording(entry)
    await store.fail_transcription(recording.id, "network unreachable")

    assert await store.complete_transcription(recording.id, "Wound reviewed, healing well.", 0.88) is True

    done = await store.get_recording(entry.id, recording.id)
    assert done.transcription_status == TranscriptionStatus.COMPLETED
    assert done.transcript == "Wound reviewed, healing well."
    assert done.transcription_confidence == pytest.approx(0.88)
    assert done.transcription_error is None
    assert done.transcription_timestamp is not None


@pytest.mark.asyncio
async def test_failure_keeps_previous_transcript(store, entry, add_stored_recording):
    recording = await add_stored_recording(entry)
    await store.complete_transcription(recording.id, "First pass transcript.")

    await store.fail_transcription(recording.id, "Transcription timed out after 900s")

    failed = await store.get_recording(entry.id, recording.id)
    assert failed.transcription_status == TranscriptionStatus.FAILED
    assert failed.transcription_error == "Transcription timed out after 900s"
    assert failed.transcript == "First pass transcript."


@pytest.mark.asyncio
async def test_failure_message_is_truncated(store, entry, add_stored_recording):
    recording = await add_stored_recording(entry)

    await store.fail_transcription(recording.id, "x" * 5000)

    failed = await store.get_recording(entry.id, recording.id)
    assert len(failed.transcription_error) == 1000


@pytest.mark.asyncio
async def test_terminal_write_on_vanished_recording(store):
    assert await store.complete_transcription(uuid4(), "orphan") is False
    assert await store.fail_transcription(uuid4(), "orphan") is False


@pytest.mark.asyncio
async def test_sibling_recordings_untouched_by_update(store, entry, add_stored_recording):
    """Updating recording 1 leaves recordings 0 and 2 exactly as they were."""
    first = await add_stored_recording(entry, filename="first.webm")
    second = await add_stored_recording(entry, filename="second.webm")
    third = await add_stored_recording(entry, filename="third.webm")
    await store.complete_transcription(first.id, "Handover to night team.")

    before = {r.id: _columns(r) for r in await store.list_recordings(entry.id)}

    await store.claim_for_transcription(second.id)
    await asyncio.gather(
        store.complete_transcription(second.id, "Consent obtained for procedure."),
        store.list_recordings(entry.id),
    )

    after = {r.id: _columns(r) for r in await store.list_recordings(entry.id)}
    assert after[first.id] == before[first.id]
    assert after[third.id] == before[third.id]
    assert after[second.id]["transcript"] == "Consent obtained for procedure."


def _columns(recording) -> dict:
    return {column.key: getattr(recording, column.key) for column in recording.__table__.columns}


# ============================================================================
# Index Resolution
# ============================================================================

@pytest.mark.asyncio
async def test_index_follows_upload_order(store, entry, add_stored_recording):
    first = await add_stored_recording(entry)
    second = await add_stored_recording(entry)

    assert (await store.get_recording_at(entry.id, 0)).id == first.id
    assert (await store.get_recording_at(entry.id, 1)).id == second.id
    assert await store.index_of(second) == 1


@pytest.mark.asyncio
async def test_index_of_agrees_with_resolution_on_position_tie(store, session_maker, entry, add_stored_recording):
    """Two uploads racing for the same position still get distinct, consistent indices."""
    first = await add_stored_recording(entry)
    second = await add_stored_recording(entry)
    async with session_maker() as session:
        await session.execute(
            update(AudioRecording).where(AudioRecording.id == second.id).values(position=first.position)
        )
        await session.commit()

    resolved = [await store.get_recording_at(entry.id, index) for index in (0, 1)]

    assert {r.id for r in resolved} == {first.id, second.id}
    assert [await store.index_of(r) for r in resolved] == [0, 1]


@pytest.mark.asyncio
async def test_out_of_range_index(store, entry, add_stored_recording):
    await add_stored_recording(entry)

    with pytest.raises(RecordingNotFoundError):
        await store.get_recording_at(entry.id, 1)

    with pytest.raises(RecordingNotFoundError):
        await store.get_recording_at(entry.id, -1)


@pytest.mark.asyncio
async def test_entry_of_other_owner_is_not_found(store, entry, add_stored_recording):
    await add_stored_recording(entry)

    assert (await store.get_recording_at(entry.id, 0, OWNER_ID)) is not None
    with pytest.raises(EntryNotFoundError):
        await store.get_recording_at(entry.id, 0, OTHER_OWNER_ID)


@pytest.mark.asyncio
async def test_remove_shifts_later_indices_but_not_ids(store, entry, add_stored_recording):
    first = await add_stored_recording(entry)
    second = await add_stored_recording(entry)
    third = await add_stored_recording(entry)

    removed = await store.remove_recording(entry.id, 1, OWNER_ID)

    assert removed.id == second.id
    assert (await store.get_recording_at(entry.id, 1)).id == third.id
    assert (await store.get_recording(entry.id, first.id)).id == first.id
    with pytest.raises(RecordingNotFoundError):
        await store.get_recording(entry.id, second.id)


@pytest.mark.asyncio
async def test_new_recording_appended_after_removal(store, entry, add_stored_recording):
    await add_stored_recording(entry)
    await add_stored_recording(entry)
    await store.remove_recording(entry.id, 0)

    latest = await add_stored_recording(entry)

    assert await store.index_of(latest) == 1


@pytest.mark.asyncio
async def test_add_recording_to_missing_entry(store):
    with pytest.raises(EntryNotFoundError):
        await store.add_recording(
            entry_id=uuid4(),
            recording_id=uuid4(),
            storage_key="missing/entry.webm",
            storage_bucket="test-audio",
            original_filename="entry.webm",
            byte_size=2048,
        )


# ============================================================================
# Post-processing Writes
# ============================================================================

@pytest.mark.asyncio
async def test_ai_response_appends_chat_history(store, session_maker, entry, add_stored_recording):
    recording = await add_stored_recording(entry)
    await store.complete_transcription(recording.id, "Post-op review.")

    saved = await store.save_ai_response(
        entry.id, recording.id, "Consider DVT prophylaxis.", "[Audio Recording 1]: Post-op review."
    )

    assert saved is True
    async with session_maker() as session:
        result = await session.execute(
            select(ChatMessage).where(ChatMessage.entry_id == entry.id).order_by(ChatMessage.created_at)
        )
        messages = list(result.scalars().all())

    assert {(m.role, m.content) for m in messages} == {
        (ChatRole.USER, "[Audio Recording 1]: Post-op review."),
        (ChatRole.MODEL, "Consider DVT prophylaxis."),
    }

    updated = await store.get_recording(entry.id, recording.id)
    assert updated.ai_response == "Consider DVT prophylaxis."
    assert updated.transcript == "Post-op review."
