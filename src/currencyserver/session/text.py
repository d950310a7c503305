"""
Text protocol session: banner, then one GET line in, result lines out,
until the client hangs up. There is no idle timeout on this variant.
"""

import logging

from ..protocol.framing import FrameReader
from ..protocol.text import BANNER, respond_to_line
from .base import Session, SessionState


logger = logging.getLogger(__name__)


class TextSession(Session):
    """Newline-delimited GET requests over a FrameReader."""

    protocol = "text"

    def serve(self):
        self.conn.clear_deadline()
        self.conn.send(BANNER)

        reader = FrameReader(self.conn, max_frame_size=self.config.max_frame_size)

        while True:
            self.state = SessionState.AWAITING_REQUEST
            frame = reader.read_frame()

            if frame.eof:
                if frame.data:
                    logger.debug(
                        f"[{self.id}] Discarding {len(frame.data)} bytes of unterminated input"
                    )
                return

            # An empty line is still a frame; it answers "Invalid command".
            reply = respond_to_line(frame.text, self.lookup)
            self.respond(reply)
