"""Diagnostic gateway backed by the vehicle simulation REST API

Raw messages come back as hex and are decoded here, one at a time; a
malformed message is logged and dropped while the rest of the response
is kept.
"""

import logging
from typing import Optional

import requests

from .codec import parse_packet
from .errors import GatewayUnavailableError, PacketFormatError
from .packets import AcknowledgmentPacket, MessageType, ParsedPacket
from .results import BusResult, RequestResult

logger = logging.getLogger(__name__)


class HttpDiagnosticGateway:
    """
    Gateway that sends requests to a vehicle server over HTTP.

    The gateway keeps a requests Session for connection pooling.
    """

    def __init__(self, base_url: str = "http://localhost:8000", timeout: float = 2.0, verify: bool = True):
        """
        Arguments:
            base_url: Base URL of the vehicle server
            timeout: Request timeout in seconds
            verify: SSL certificate verification
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.verify = verify
        self.session = requests.Session()
        logger.info(f"Initialized HttpDiagnosticGateway with base_url={self.base_url}")

    # =============================================================================
    # Helper Methods
    # =============================================================================

    def _url(self, path: str) -> str:
        """Construct full URL from path"""
        return f"{self.base_url}{path}"

    def _handle_response(self, response: requests.Response, error_message: str) -> dict:
        """
        Raises:
            GatewayUnavailableError: if the server reports the bus unavailable
            requests.HTTPError: for any other error status
        """
        if response.status_code == 503:
            raise GatewayUnavailableError(f"{error_message}: {response.text[:200]}")
        response.raise_for_status()
        return response.json()

    def _post(self, path: str, error_message: str, data: Optional[dict] = None) -> dict:
        """Perform POST request"""
        url = self._url(path)
        logger.debug(f"POST {url} data={data}")
        try:
            response = self.session.post(url, json=data, timeout=self.timeout, verify=self.verify)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise GatewayUnavailableError(f"{error_message}: {e}") from e
        return self._handle_response(response, error_message)

    def _payload(self, data: bytes) -> Optional[dict]:
        """Request body carrying a command payload, none for a plain request"""
        return {"data": data.hex()} if data else None

    def _decode(self, message: dict) -> Optional[ParsedPacket]:
        try:
            message_type = MessageType[message["message_type"]]
            return parse_packet(message_type, message["source_address"], bytes.fromhex(message["data"]))
        except (KeyError, ValueError, PacketFormatError) as e:
            logger.error(f"Dropped malformed message {message}: {e}")
            return None

    # =============================================================================
    # Gateway
    # =============================================================================

    def request_global(self, message_type: MessageType, data: bytes = b"") -> RequestResult:
        body = self._post(
            f"/bus/global/{message_type.name}",
            f"Global {message_type.label} request failed",
            self._payload(data),
        )
        result = RequestResult()
        for message in body.get("messages", []):
            packet = self._decode(message)
            if isinstance(packet, AcknowledgmentPacket):
                result.acks.append(packet)
            elif packet is not None:
                result.packets.append(packet)
        return result

    def request_directed(self, message_type: MessageType, address: int, data: bytes = b"") -> BusResult:
        body = self._post(
            f"/bus/directed/{message_type.name}/{address}",
            f"DS {message_type.label} request to {address} failed",
            self._payload(data),
        )
        message = body.get("message")
        packet = self._decode(message) if message else None
        if packet is None:
            return BusResult.absent()
        if isinstance(packet, AcknowledgmentPacket):
            return BusResult.of_ack(packet)
        return BusResult.of_packet(packet)

    def close(self):
        self.session.close()
