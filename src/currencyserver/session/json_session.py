"""
JSON protocol session.

Each exchange:

    1. arm the idle deadline (idle_timeout, 45s by default)
    2. decode one request value
         malformed   → write {"Error": ...}, back to 1
         closed      → end, nothing written
         deadline    → end, nothing written
    3. find()
    4. write the result array (possibly [])

The deadline is re-armed at the start of every exchange, so it bounds the
gap between requests, not the length of the session.
"""

import logging

from ..core.errors import FrameTooLargeError, ProtocolError
from ..protocol.json_codec import JSONStreamDecoder, encode_error, encode_results
from .base import Session, SessionError, SessionState


logger = logging.getLogger(__name__)


class JSONSession(Session):
    """{"Get": ...} requests, JSON array responses."""

    protocol = "json"

    def serve(self):
        decoder = JSONStreamDecoder(self.conn, max_value_size=self.config.max_frame_size)

        while True:
            self.state = SessionState.AWAITING_REQUEST
            self.conn.set_deadline(self.config.idle_timeout)

            try:
                request = decoder.decode_request()
            except FrameTooLargeError:
                raise
            except ProtocolError as e:
                logger.debug(f"[{self.id}] Bad request: {e}")
                self.state = SessionState.RESPONDING
                self.conn.send(self._encode_error(str(e)))
                continue

            results = self.lookup(request.get)

            try:
                payload = encode_results(results)
            except (TypeError, ValueError) as e:
                logger.error(f"[{self.id}] Failed to encode response: {e}")
                payload = self._encode_error(str(e))

            self.respond(payload)

    def _encode_error(self, message: str) -> bytes:
        try:
            return encode_error(message)
        except (TypeError, ValueError) as e:
            raise SessionError(f"Failed error encoding: {e}") from e
