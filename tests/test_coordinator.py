"""Tests for the decryption request state machine and comparison contract."""

from __future__ import annotations

import asyncio

import pytest

from confidential_records import (
    ComparisonUnavailableError,
    CryptoError,
    Decrypted,
    DecryptionCoordinator,
    EncryptionGateway,
    EventRecorder,
    RecordFields,
    RecordNotFoundError,
    RecordStore,
    RequestState,
    UnauthorizedError,
)

ALICE = "0xA11CE"
BOB = "0xB0B"
CAROL = "0xC4R0L"

ACME = RecordFields(name="Acme", category="Tools", contact="a@x")


@pytest.mark.parametrize("rating", range(1, 11))
async def test_owner_decryption_yields_rating(
    store: RecordStore,
    coordinator: DecryptionCoordinator,
    gateway: EncryptionGateway,
    recorder: EventRecorder,
    rating: int,
):
    record_id = await store.create(ACME, rating, False, ALICE)

    request = await coordinator.request_decryption(record_id, ALICE)
    assert request.state is RequestState.REQUESTED
    assert recorder.of_kind(Decrypted) == []

    await gateway.join()

    assert recorder.of_kind(Decrypted) == [Decrypted(owner=ALICE, plaintext=rating)]
    assert request.state is RequestState.RESOLVED
    assert coordinator.pending() == []


async def test_wait_returns_plaintext(
    store: RecordStore, coordinator: DecryptionCoordinator
):
    record_id = await store.create(ACME, 4, False, ALICE)
    request = await coordinator.request_decryption(record_id, ALICE)
    assert await request.wait(timeout=1) == 4


async def test_non_owner_is_rejected_without_request(
    store: RecordStore,
    coordinator: DecryptionCoordinator,
    gateway: EncryptionGateway,
    recorder: EventRecorder,
):
    record_id = await store.create(ACME, 7, False, ALICE)

    with pytest.raises(UnauthorizedError):
        await coordinator.request_decryption(record_id, BOB)

    assert coordinator.pending() == []
    await gateway.join()
    assert recorder.of_kind(Decrypted) == []


async def test_decrypt_missing_record(coordinator: DecryptionCoordinator):
    with pytest.raises(RecordNotFoundError):
        await coordinator.request_decryption(1, ALICE)


async def test_repeated_requests_are_independent(
    store: RecordStore,
    coordinator: DecryptionCoordinator,
    gateway: EncryptionGateway,
    recorder: EventRecorder,
):
    record_id = await store.create(ACME, 5, False, ALICE)

    first = await coordinator.request_decryption(record_id, ALICE)
    second = await coordinator.request_decryption(record_id, ALICE)
    assert first.request_id != second.request_id
    assert len(coordinator.pending()) == 2

    await gateway.join()
    assert len(recorder.of_kind(Decrypted)) == 2
    assert coordinator.pending() == []


async def test_decryption_after_update_sees_new_value(
    store: RecordStore,
    coordinator: DecryptionCoordinator,
    gateway: EncryptionGateway,
    recorder: EventRecorder,
):
    record_id = await store.create(ACME, 7, False, ALICE)
    await store.update_rating(record_id, 2, ALICE)

    await coordinator.request_decryption(record_id, ALICE)
    await gateway.join()

    assert [e.plaintext for e in recorder.of_kind(Decrypted)] == [2]


async def test_old_handle_grant_does_not_reach_new_value(
    store: RecordStore, gateway: EncryptionGateway
):
    record_id = await store.create(ACME, 7, False, ALICE)
    old_handle = (await store.load(record_id)).rating
    await store.update_rating(record_id, 2, ALICE)
    new_handle = (await store.load(record_id)).rating

    results = []
    await gateway.request_unseal(old_handle, ALICE, lambda rid, value: results.append(value))
    await gateway.join()

    # The old handle still unseals to the old value only.
    assert results == [7]
    assert new_handle != old_handle


async def test_compare_requires_one_owner(
    store: RecordStore, coordinator: DecryptionCoordinator
):
    first = await store.create(ACME, 7, False, ALICE)
    second = await store.create(RecordFields("Globex", "Parts", "g@x"), 3, False, BOB)

    with pytest.raises(UnauthorizedError):
        await coordinator.compare(first, second, CAROL)


@pytest.mark.parametrize("caller", [ALICE, BOB])
async def test_compare_has_no_result_yet(
    store: RecordStore, coordinator: DecryptionCoordinator, caller: str
):
    first = await store.create(ACME, 7, False, ALICE)
    second = await store.create(RecordFields("Globex", "Parts", "g@x"), 3, False, BOB)

    with pytest.raises(ComparisonUnavailableError):
        await coordinator.compare(first, second, caller)


async def test_compare_missing_record(store: RecordStore, coordinator: DecryptionCoordinator):
    first = await store.create(ACME, 7, False, ALICE)
    with pytest.raises(RecordNotFoundError):
        await coordinator.compare(first, 2, ALICE)


async def test_dropped_unseal_stays_pending_until_abandoned(
    store: RecordStore,
    coordinator: DecryptionCoordinator,
    gateway: EncryptionGateway,
    recorder: EventRecorder,
    monkeypatch,
):
    record_id = await store.create(ACME, 7, False, ALICE)

    async def corrupt(handle):
        raise CryptoError("Decryption failed")

    monkeypatch.setattr(gateway, "_unseal", corrupt)
    request = await coordinator.request_decryption(record_id, ALICE)
    await gateway.join()

    assert coordinator.pending() == [request]
    assert recorder.of_kind(Decrypted) == []

    assert coordinator.abandon_pending() == [request]
    assert coordinator.pending() == []
    assert request.state is RequestState.REQUESTED
    with pytest.raises(asyncio.CancelledError):
        await request.wait(timeout=1)


async def test_decrypted_waits_for_running_notification(
    store: RecordStore,
    coordinator: DecryptionCoordinator,
    gateway: EncryptionGateway,
    bus,
):
    first = await store.create(ACME, 4, False, ALICE)
    trace = []

    async def on_event(event):
        trace.append(event.kind)
        if event.kind == "RecordCreated":
            await asyncio.sleep(0.01)
            trace.append("RecordCreated done")

    bus.subscribe(on_event)
    await coordinator.request_decryption(first, ALICE)
    await store.create(RecordFields("Globex", "Parts", "g@x"), 3, False, BOB)
    await gateway.join()

    assert trace == ["RecordCreated", "RecordCreated done", "Decrypted"]
