"""Tests for the resumable upload transport against the in-process broker."""

import asyncio
from datetime import datetime, timedelta

import httpx
import pytest

from client.broker_client import BrokerClient
from client.upload_transport import ResumableUploader
from common.exceptions import (
    AuthorizationError,
    BrokerUnavailableError,
    ResumeMismatchError,
    UploadCancelledError,
    VerificationError,
)
from common.protocol import ContentRange, FileEntry
from common.types import FileRecord, StorageContract, UploadState
from tests.fakes import BROKER_API

DATA = b'hello world!!'


def _contract(broker, cid, size, signature='sig_test'):
    now = datetime.now()
    return StorageContract(
        contract_id='alice_1700000000000_abc123xyz',
        account='alice',
        broker=broker,
        total_size=size,
        credit_cost=100,
        duration_days=30,
        created_at=now,
        expires_at=now + timedelta(days=30),
        transaction_id='tx1',
        cids=(cid,),
        sizes=(size,),
        signature=signature,
        signed_at=1,
    )


@pytest.fixture
def cid(hasher):
    return hasher.hash(DATA)


@pytest.fixture
def contract(local_broker, cid):
    return _contract(local_broker, cid, len(DATA))


def _uploader(config, transport):
    client = BrokerClient(BROKER_API, config, transport=transport)
    return client, ResumableUploader(client, chunk_size=config.chunk_size)


@pytest.mark.asyncio
async def test_upload_completes_and_verifies(temp_config, broker_transport, broker_service, contract, cid):
    client, uploader = _uploader(temp_config, broker_transport)
    progress = []

    async with client:
        ticket = await uploader.authorize(contract, '1,hello,txt,,')
        session = await uploader.upload(
            contract,
            FileRecord(cid=cid, name='hello', ext='txt', size=len(DATA)),
            DATA,
            ticket=ticket,
            on_progress=lambda file_cid, value: progress.append(value),
        )

    assert session.state == UploadState.COMPLETED
    assert session.acknowledged_bytes == len(DATA)
    assert broker_service.get_object(cid) == DATA
    assert broker_service.get_metadata(contract.contract_id) == '1,hello,txt,,'
    assert len(progress) == 4
    assert progress == sorted(progress)
    assert progress[-1] == 100.0


@pytest.mark.asyncio
async def test_resume_from_broker_reported_offset(temp_config, broker_transport, broker_service, contract, cid):
    client, uploader = _uploader(temp_config, broker_transport)

    async with client:
        await uploader.authorize(contract, '')
        await client.send_chunk(contract, cid, ContentRange.for_chunk(0, 4, len(DATA)), DATA[:4])

        ticket = await uploader.authorize(contract, '')
        assert ticket.received_for(cid) == 4

        session = uploader.open_session(contract, cid, len(DATA), ticket)
        await uploader.transfer(session, DATA, contract)

    assert session.state == UploadState.COMPLETED
    assert broker_service.get_object(cid) == DATA


@pytest.mark.asyncio
async def test_wrong_offset_rejected_without_mutating_broker(temp_config, broker_transport, contract, cid):
    client, uploader = _uploader(temp_config, broker_transport)

    async with client:
        await uploader.authorize(contract, '')
        await client.send_chunk(contract, cid, ContentRange.for_chunk(0, 4, len(DATA)), DATA[:4])

        with pytest.raises(ResumeMismatchError) as exc_info:
            await client.send_chunk(contract, cid, ContentRange.for_chunk(8, 4, len(DATA)), DATA[8:12])

        status = await client.get_status(contract, cid)

    assert exc_info.value.expected_offset == 4
    assert status.received == 4


@pytest.mark.asyncio
async def test_resume_past_zero_with_nothing_held_is_unauthorized(temp_config, broker_transport, contract, cid):
    client, uploader = _uploader(temp_config, broker_transport)

    async with client:
        await uploader.authorize(contract, '')
        with pytest.raises(ResumeMismatchError) as exc_info:
            await client.send_chunk(contract, cid, ContentRange.for_chunk(4, 4, len(DATA)), DATA[4:8])

    assert exc_info.value.expected_offset == 0


@pytest.mark.asyncio
async def test_realign_after_offset_mismatch(temp_config, broker_transport, broker_service, contract, cid):
    client, uploader = _uploader(temp_config, broker_transport)

    async with client:
        await uploader.authorize(contract, '')
        await client.send_chunk(contract, cid, ContentRange.for_chunk(0, 4, len(DATA)), DATA[:4])

        session = uploader.open_session(contract, cid, len(DATA))
        with pytest.raises(ResumeMismatchError) as exc_info:
            await uploader.transfer(session, DATA, contract)

        assert session.acknowledged_bytes == 0
        assert session.state == UploadState.TRANSFERRING

        uploader.realign(session, exc_info.value.expected_offset)
        await uploader.transfer(session, DATA, contract)

    assert session.state == UploadState.COMPLETED
    assert broker_service.get_object(cid) == DATA


@pytest.mark.asyncio
async def test_hash_mismatch_fails_verification(temp_config, broker_transport, broker_service, local_broker):
    contract = _contract(local_broker, 'bogus-cid', len(DATA))
    client, uploader = _uploader(temp_config, broker_transport)

    async with client:
        await uploader.authorize(contract, '')
        session = uploader.open_session(contract, 'bogus-cid', len(DATA))
        with pytest.raises(VerificationError):
            await uploader.transfer(session, DATA, contract)

        status = await client.get_status(contract, 'bogus-cid')

    assert session.state == UploadState.FAILED
    assert broker_service.get_object('bogus-cid') is None
    assert status.received == 0


@pytest.mark.asyncio
async def test_cancel_stops_before_next_chunk_and_resume_continues(
    temp_config, broker_transport, broker_service, contract, cid
):
    client, uploader = _uploader(temp_config, broker_transport)

    async with client:
        await uploader.authorize(contract, '')
        session = uploader.open_session(contract, cid, len(DATA))

        def cancel_after_first_chunk(file_cid, value):
            session.cancel()

        with pytest.raises(UploadCancelledError):
            await uploader.transfer(session, DATA, contract, on_progress=cancel_after_first_chunk)

        assert session.state == UploadState.CANCELLED
        assert session.acknowledged_bytes == 4
        assert (await client.get_status(contract, cid)).received == 4

        await uploader.resume(session, DATA, contract)

    assert session.state == UploadState.COMPLETED
    assert broker_service.get_object(cid) == DATA


@pytest.mark.asyncio
async def test_task_cancellation_marks_session_cancelled(temp_config, contract, cid):
    async def handler(request):
        if request.url.path == '/upload':
            await asyncio.sleep(10)
        return httpx.Response(200, json={'cid': cid, 'received': 4})

    client, uploader = _uploader(temp_config, httpx.MockTransport(handler))
    session = uploader.open_session(contract, cid, len(DATA))

    async with client:
        task = asyncio.create_task(uploader.transfer(session, DATA, contract))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    assert session.state == UploadState.CANCELLED
    assert session.cancelled


@pytest.mark.asyncio
async def test_zero_byte_file_sends_one_empty_chunk(temp_config, broker_transport, broker_service, local_broker, hasher):
    empty_cid = hasher.hash(b'')
    contract = _contract(local_broker, empty_cid, 0)
    client, uploader = _uploader(temp_config, broker_transport)
    progress = []

    async with client:
        ticket = await uploader.authorize(contract, '1,empty,txt.0,,')
        session = await uploader.upload(
            contract,
            FileRecord(cid=empty_cid, name='empty', ext='txt', size=0),
            b'',
            ticket=ticket,
            on_progress=lambda file_cid, value: progress.append(value),
        )

    assert session.state == UploadState.COMPLETED
    assert session.progress == 100.0
    assert progress == [100.0]
    assert broker_service.get_object(empty_cid) == b''


@pytest.mark.asyncio
async def test_payload_size_mismatch_rejected(temp_config, broker_transport, contract, cid):
    client, uploader = _uploader(temp_config, broker_transport)
    session = uploader.open_session(contract, cid, len(DATA))

    async with client:
        with pytest.raises(ValueError):
            await uploader.transfer(session, DATA[:-1], contract)


@pytest.mark.asyncio
async def test_unsigned_contract_cannot_authorize(temp_config, broker_transport, local_broker, cid):
    contract = _contract(local_broker, cid, len(DATA), signature='')
    client, uploader = _uploader(temp_config, broker_transport)

    async with client:
        with pytest.raises(AuthorizationError):
            await uploader.authorize(contract, '')


@pytest.mark.asyncio
async def test_authorization_rejected_by_broker(temp_config, contract):
    def handler(request):
        return httpx.Response(401, json={'detail': 'bad signature', 'code': 'INVALID_SIGNATURE'})

    client, uploader = _uploader(temp_config, httpx.MockTransport(handler))

    async with client:
        with pytest.raises(AuthorizationError):
            await uploader.authorize(contract, '')


@pytest.mark.asyncio
async def test_authorization_missing_cid(temp_config, contract):
    def handler(request):
        return httpx.Response(200, json={'authorized': [], 'received': {}})

    client, uploader = _uploader(temp_config, httpx.MockTransport(handler))

    async with client:
        with pytest.raises(AuthorizationError):
            await uploader.authorize(contract, '')


@pytest.mark.asyncio
async def test_authorize_sends_batch_headers(temp_config, contract, cid):
    seen = {}

    def handler(request):
        seen.update(request.headers)
        return httpx.Response(200, json={'authorized': [cid], 'received': {}})

    client, uploader = _uploader(temp_config, httpx.MockTransport(handler))

    async with client:
        await uploader.authorize(contract, '1,a,txt,,', [FileEntry(cid=cid, size=len(DATA))])

    assert seen['x-account'] == 'alice'
    assert seen['x-sig'] == 'sig_test'
    assert seen['x-contract'] == contract.contract_id
    assert seen['x-cids'] == cid
    assert seen['x-sizes'] == str(len(DATA))
    assert seen['x-chain'] == 'HIVE'


@pytest.mark.asyncio
async def test_network_failure_maps_to_broker_unavailable(temp_config, contract, cid):
    def handler(request):
        raise httpx.ConnectError('connection refused')

    client, uploader = _uploader(temp_config, httpx.MockTransport(handler))
    session = uploader.open_session(contract, cid, len(DATA))

    async with client:
        with pytest.raises(BrokerUnavailableError):
            await uploader.transfer(session, DATA, contract)

    assert session.acknowledged_bytes == 0
    assert not session.is_finished


@pytest.mark.asyncio
async def test_precondition_failed_maps_to_verification_error(temp_config, contract, cid):
    def handler(request):
        return httpx.Response(412, json={'detail': 'hash mismatch', 'code': 'VERIFICATION_FAILED'})

    client, uploader = _uploader(temp_config, httpx.MockTransport(handler))
    session = uploader.open_session(contract, cid, len(DATA))

    async with client:
        with pytest.raises(VerificationError):
            await uploader.transfer(session, DATA, contract)

    assert session.state == UploadState.FAILED


def test_empty_content_range_header():
    content_range = ContentRange.for_chunk(0, 0, 0)

    assert content_range.to_header() == 'bytes */0'
    assert content_range.length == 0
    assert ContentRange.parse('bytes */0') == content_range
