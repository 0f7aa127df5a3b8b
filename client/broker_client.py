"""HTTP client for a storage broker's upload endpoints."""

import uuid
from typing import List, Optional

import httpx

from client.config import Config
from common.constants import (
    HEADER_ACCOUNT,
    HEADER_CHAIN,
    HEADER_CID,
    HEADER_CIDS,
    HEADER_CONTRACT,
    HEADER_SIGNATURE,
    HEADER_SIZES,
)
from common.exceptions import (
    AuthorizationError,
    BrokerUnavailableError,
    LedgerDropError,
    ResumeMismatchError,
    VerificationError,
)
from common.logging_config import get_logger
from common.protocol import (
    AuthorizationTicket,
    AuthorizeRequest,
    ChunkAck,
    ContentRange,
    FileEntry,
    join_list,
)
from common.types import StorageContract

logger = get_logger(__name__)


class BrokerClient:
    """
    Async HTTP client for one broker.

    Every call is made once; broker errors are translated into the domain
    exception taxonomy and left to the caller.
    """

    def __init__(
        self,
        api: str,
        config: Config,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize broker client.

        Args:
            api: Broker base URL
            config: Client configuration
            transport: Optional httpx transport (tests inject ASGI or mock transports)
        """
        self.api = api.rstrip('/')
        self.config = config
        self.session = httpx.AsyncClient(
            base_url=self.api,
            timeout=config.timeout,
            transport=transport,
        )
        self.request_id = None
        logger.debug(f"Initialized BrokerClient [base_url={self.api}]")

    async def close(self) -> None:
        await self.session.aclose()

    async def __aenter__(self) -> 'BrokerClient':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _request(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        """
        Make one HTTP request, tagging it with a fresh request id.

        Raises:
            BrokerUnavailableError: On connection failures and timeouts
        """
        self.request_id = str(uuid.uuid4())
        kwargs.setdefault('headers', {})['X-Request-ID'] = self.request_id

        logger.debug(f"Making request: {method} {endpoint} [request_id={self.request_id}]")
        try:
            response = await self.session.request(method, endpoint, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"Request timed out: {method} {endpoint} [request_id={self.request_id}]")
            raise BrokerUnavailableError(f"Broker {self.api} timed out") from e
        except httpx.TransportError as e:
            logger.error(
                f"Network error: {method} {endpoint} error={type(e).__name__} [request_id={self.request_id}]"
            )
            raise BrokerUnavailableError(f"Cannot connect to broker {self.api}") from e

        logger.debug(
            f"Response received: {method} {endpoint} status={response.status_code} [request_id={self.request_id}]"
        )
        return response

    def _contract_headers(self, contract: StorageContract) -> dict:
        return {
            HEADER_ACCOUNT: contract.account,
            HEADER_SIGNATURE: contract.signature,
            HEADER_CONTRACT: contract.contract_id,
        }

    async def authorize(
        self,
        contract: StorageContract,
        files: List[FileEntry],
        meta: str,
    ) -> AuthorizationTicket:
        """
        Perform the upload authorization handshake for a batch.

        Args:
            contract: Signed contract covering every file
            files: CID and size of each file to authorize
            meta: Encoded batch metadata string

        Returns:
            Ticket with authorized CIDs and already-received byte counts

        Raises:
            AuthorizationError: If the broker answers anything but 200
            BrokerUnavailableError: If the broker cannot be reached
        """
        headers = self._contract_headers(contract)
        headers[HEADER_CIDS] = join_list(entry.cid for entry in files)
        headers[HEADER_SIZES] = join_list(entry.size for entry in files)
        headers[HEADER_CHAIN] = self.config.chain
        if len(files) == 1:
            headers[HEADER_CID] = files[0].cid
        headers['Content-Type'] = 'application/json'

        body = AuthorizeRequest(files=files, meta=meta).to_json()
        response = await self._request('POST', '/upload-authorize', headers=headers, content=body)

        if response.status_code != 200:
            message = self._format_error(response)
            logger.warning(
                f"Authorization rejected: contract={contract.contract_id} status={response.status_code} "
                f"[request_id={self.request_id}]"
            )
            raise AuthorizationError(f"Broker rejected authorization: {message}")

        return AuthorizationTicket.from_dict(response.json())

    async def send_chunk(
        self,
        contract: StorageContract,
        cid: str,
        content_range: ContentRange,
        chunk: bytes,
    ) -> ChunkAck:
        """
        Send one chunk of a file.

        Raises:
            ResumeMismatchError: If the chunk does not start at the broker's offset
            VerificationError: If the completed payload failed hash verification
            AuthorizationError: If the broker does not recognize the session
            BrokerUnavailableError: If the broker cannot be reached or fails
        """
        headers = self._contract_headers(contract)
        headers[HEADER_CID] = cid
        headers['Content-Range'] = content_range.to_header()

        response = await self._request(
            'POST',
            '/upload',
            headers=headers,
            files={'chunk': (cid, chunk, 'application/octet-stream')},
        )
        self._raise_for_response(response)
        return ChunkAck.from_dict(response.json())

    async def get_status(self, contract: StorageContract, cid: str) -> ChunkAck:
        """
        Ask the broker how many bytes of ``cid`` it already holds.
        """
        headers = self._contract_headers(contract)
        headers[HEADER_CID] = cid
        response = await self._request('GET', '/upload-status', headers=headers)
        self._raise_for_response(response)
        return ChunkAck.from_dict(response.json())

    def _raise_for_response(self, response: httpx.Response) -> None:
        """
        Translate a broker error response into a domain exception.
        """
        if response.status_code < 400:
            return

        data = self._error_body(response)
        detail = data.get('detail', 'Unknown error')
        code = data.get('code', 'UNKNOWN')

        if response.status_code == 401:
            if code == 'UNAUTHORIZED_RESUME':
                raise ResumeMismatchError(f"Unauthorized resume: {detail}", expected_offset=0)
            raise AuthorizationError(f"Not authorized: {detail}")

        if response.status_code == 403:
            if code == 'BAD_CHUNK':
                raise ResumeMismatchError(
                    f"Bad chunk: {detail}",
                    expected_offset=int(data.get('received', 0)),
                )
            raise AuthorizationError(f"Access forbidden: {detail}")

        if response.status_code == 412:
            raise VerificationError(f"Verification failed: {detail}")

        if response.status_code >= 500:
            raise BrokerUnavailableError(f"Broker error {response.status_code}: {detail}")

        raise LedgerDropError(f"{self._format_error(response)}: {detail}")

    def _error_body(self, response: httpx.Response) -> dict:
        try:
            data = response.json()
        except ValueError:
            return {'detail': response.text or 'Unknown error'}
        return data if isinstance(data, dict) else {'detail': str(data)}

    def _format_error(self, response: httpx.Response) -> str:
        """
        Map HTTP errors to readable messages.
        """
        data = self._error_body(response)
        code = data.get('code', 'UNKNOWN')

        error_messages = {
            'NOT_AUTHORIZED': 'Upload not authorized for this contract.',
            'INVALID_SIGNATURE': 'Batch signature missing or does not match the contract.',
            'INVALID_RANGE': 'Malformed Content-Range header.',
            'STORAGE_FULL': 'Broker storage capacity exceeded.',
            'INVALID_REQUEST': 'Malformed upload request.',
        }

        if code in error_messages:
            return error_messages[code]

        status_messages = {
            400: 'Bad request',
            401: 'Not authorized',
            403: 'Access forbidden',
            404: 'Not found',
            412: 'Verification failed',
            500: 'Server error',
            503: 'Service unavailable',
            507: 'Insufficient storage',
        }

        message = status_messages.get(response.status_code, data.get('detail', 'Unknown error'))
        return f"{message} (Code: {code})" if code != 'UNKNOWN' else message
