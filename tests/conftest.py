"""Shared pytest fixtures for all tests."""

from types import MappingProxyType

import httpx
import pytest

from broker.main import app
from broker.service_locator import set_upload_service
from broker.services.upload_service import UploadService
from client.broker_client import BrokerClient
from client.config import Config
from client.contract_negotiator import ContractNegotiator, NetworkParameters
from common.hashing import Sha256Hasher
from common.types import BrokerInfo
from tests.fakes import BROKER_API, FakeSigner, StaticBrokerDirectory

GIB = 1024 * 1024 * 1024


@pytest.fixture
def temp_config_dir(tmp_path):
    """
    Create temporary config directory.

    Returns:
        Path to temporary .ledgerdrop directory
    """
    config_dir = tmp_path / '.ledgerdrop'
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def temp_config(temp_config_dir):
    """
    Config instance backed by a temporary file, with small chunks.
    """
    config = Config(temp_config_dir / 'config.json')
    config.data['chunk_size'] = 4
    config.data['network_api'] = 'http://network.test'
    return config


@pytest.fixture
def hasher():
    return Sha256Hasher()


@pytest.fixture
def signer():
    return FakeSigner()


@pytest.fixture
def local_broker():
    return BrokerInfo(node_id='local-broker', api=BROKER_API, total_space=10 * GIB, used_space=0)


@pytest.fixture
def broker_service():
    """
    Fresh in-memory broker state installed behind the FastAPI app.
    """
    service = UploadService(node_id='local-broker', storage_max=10 * GIB, hasher=Sha256Hasher())
    set_upload_service(service)
    yield service
    set_upload_service(None)


@pytest.fixture
def broker_transport(broker_service):
    """httpx transport routing requests into the in-process broker app."""
    return httpx.ASGITransport(app=app)


@pytest.fixture
def broker_client_factory(temp_config, broker_transport):
    def factory(api):
        return BrokerClient(api, temp_config, transport=broker_transport)
    return factory


@pytest.fixture
def credits():
    """Mutable balance used by the negotiator's balance function."""
    return {'available': 1_000_000}


@pytest.fixture
def negotiator(signer, local_broker, credits, temp_config):
    async def balance():
        return credits['available']

    return ContractNegotiator(
        signer=signer,
        directory=StaticBrokerDirectory([local_broker]),
        balance=balance,
        config=temp_config,
        params=NetworkParameters(),
    )


@pytest.fixture
def alternate_presets():
    return MappingProxyType({'Inbox': '2', 'Photos': '3'})
