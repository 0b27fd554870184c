"""Streaming of fields to a GLVis server.

One TCP connection per field, opened once and refreshed at every output
step. A field whose connection cannot be opened (no server listening) or
breaks while sending is logged and skipped; the run continues.
"""

from __future__ import annotations

import io
import logging
import socket
from dataclasses import dataclass

from joule.core.bases import Communicator, OutputSink
from joule.diagnostics.field_dump import write_field
from joule.layout import FieldLayout, StateVector
from joule.mesh.io import print_mesh

logger = logging.getLogger(__name__)

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 19916

WINDOW_SIZE = (350, 350)
WINDOW_OFFSET = (WINDOW_SIZE[0] + 10, WINDOW_SIZE[1] + 45)


@dataclass(frozen=True)
class Window:
    field: str
    title: str
    x: int
    y: int


def default_windows() -> tuple[Window, ...]:
    """Two rows: potential, E and B on top; Joule heating and T below."""
    dx, dy = WINDOW_OFFSET
    return (
        Window("P", "Electric Potential (Phi)", 0, 0),
        Window("E", "Electric Field (E)", dx, 0),
        Window("B", "Magnetic Field (B)", 2 * dx, 0),
        Window("w", "Joule Heating", 0, dy),
        Window("T", "Temperature", dx, dy),
    )


class GLVisSession(OutputSink):
    """Per-field GLVis socket connections.

    Args:
        layout: State layout (mesh and spaces).
        state: State whose fields are streamed.
        comm: Communicator; every rank streams its own partition.
        host: GLVis server host.
        port: GLVis server port.
        timeout: Connect/send timeout in seconds.
    """

    def __init__(
        self,
        layout: FieldLayout,
        state: StateVector,
        comm: Communicator,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        timeout: float = 2.0,
        windows: tuple[Window, ...] | None = None,
    ) -> None:
        self.layout = layout
        self.state = state
        self.comm = comm
        self.host = host
        self.port = port
        self.timeout = timeout
        self.windows = windows if windows is not None else default_windows()
        self._sockets: dict[str, socket.socket] = {}

    @property
    def connected(self) -> list[str]:
        return list(self._sockets)

    def open(self) -> None:
        """Connect every window; unreachable servers are logged and skipped."""
        self.comm.barrier()
        for win in self.windows:
            try:
                sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
            except OSError as exc:
                logger.warning(
                    "Cannot connect to GLVis at %s:%d for '%s': %s",
                    self.host, self.port, win.title, exc,
                )
                continue
            self._sockets[win.field] = sock
        if self._sockets:
            self._send_all(first=True)

    def payload(self, win: Window, first: bool) -> bytes:
        buf = io.StringIO()
        buf.write(f"parallel {self.comm.size} {self.comm.rank}\n")
        buf.write("solution\n")
        print_mesh(self.layout.l2.mesh, buf)
        write_field(buf, self.layout.space(win.field).fec.name, self.state.view(win.field).data)
        if first:
            buf.write(f"window_title '{win.title}'\n")
            buf.write(f"window_geometry {win.x} {win.y} {WINDOW_SIZE[0]} {WINDOW_SIZE[1]}\n")
            buf.write("keys maaAc\n")
        buf.write("\n")
        return buf.getvalue().encode()

    def _send_all(self, first: bool = False) -> None:
        for win in self.windows:
            sock = self._sockets.get(win.field)
            if sock is None:
                continue
            try:
                sock.sendall(self.payload(win, first))
            except OSError as exc:
                logger.warning("GLVis connection for '%s' lost: %s", win.title, exc)
                sock.close()
                del self._sockets[win.field]

    def save(self, cycle: int, time: float) -> None:
        self.comm.barrier()
        self._send_all()

    def close(self) -> None:
        for sock in self._sockets.values():
            sock.close()
        self._sockets.clear()
