"""Hamlib rotctld network client.

Commands used (newline terminated ASCII):
  - Set position:   P <az> <el>   -> RPRT <code>
  - Get position:   p             -> <az>\\n<el>\\n
  - Stop motion:    S             -> RPRT <code>
  - Close session:  q

The client owns one TCP connection and runs its command loop in a background
thread. The tracking loop talks to it only through `SharedDeviceRecord`.
"""
from __future__ import annotations

import logging
import socket
import threading
import time
from dataclasses import dataclass, field
from typing import NamedTuple, Optional, Tuple

logger = logging.getLogger(__name__)

RECV_SIZE = 128


class RotctldError(RuntimeError):
    """The rotctld server could not be reached."""


class DeviceReading(NamedTuple):
    az: float
    el: float
    error: bool


@dataclass
class SharedDeviceRecord:
    """State shared between the tracking loop and the client thread.

    Every field is read and written with `lock` held.
    """

    azi_out: float = 0.0
    ele_out: float = 0.0
    new_trg: bool = False
    azi_in: float = 0.0
    ele_in: float = 0.0
    io_error: bool = False
    running: bool = False
    monitor: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


def open_socket(host: str, port: int) -> socket.socket:
    try:
        sock = socket.create_connection((host, int(port)))
    except socket.gaierror as e:
        raise RotctldError(f"Name resolution of rotctld server {host} failed: {e}") from e
    except OSError as e:
        raise RotctldError(f"Connection to rotctld server at {host}:{port} failed: {e}") from e
    logger.debug("Connection opened to %s:%s", host, port)
    return sock


def close_socket(sock: socket.socket) -> None:
    """Send `q` to shut down the rotctld session, then close the socket."""
    try:
        sock.sendall(b"q\n")
    except OSError as e:
        logger.error("Failed to send quit command to rotctld: %s", e)
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError as e:
        logger.debug("rotctld socket shutdown: %s", e)
    finally:
        sock.close()


def socket_rw(sock: socket.socket, cmd: str) -> Optional[str]:
    """Send a command and read one response chunk. Returns None when the socket is down or the peer closed it."""
    try:
        sock.sendall(cmd.encode("ascii"))
        data = sock.recv(RECV_SIZE)
    except OSError as e:
        logger.error("rotctld socket down: %s", e)
        return None
    if not data:
        logger.error("Got 0 bytes from rotctld, connection closed")
        return None
    return data.decode("ascii", errors="ignore")


def parse_status(reply: str) -> int:
    """Return the RPRT code of a reply; replies without one count as success."""
    reply = reply.strip()
    if not reply.startswith("RPRT"):
        return 0
    try:
        return int(float(reply[4:].split()[0]))
    except (IndexError, ValueError):
        return -1


def parse_position(reply: str) -> Tuple[float, float]:
    """Parse the `p` reply into (az, el). Raises ValueError on errors or junk."""
    if reply.startswith("RPRT"):
        raise ValueError(f"rotctld returned error ({reply.strip()})")
    lines = reply.split("\n")
    if len(lines) < 2:
        raise ValueError(f"rotctld returned bad response ({reply.strip()})")
    try:
        return float(lines[0]), float(lines[1])
    except ValueError as e:
        raise ValueError(f"rotctld returned bad response ({reply.strip()})") from e


class RotctldClient:
    """Background rotctld client.

    `start()` connects synchronously and raises RotctldError when the server
    cannot be reached; afterwards I/O problems only set the error flag and the
    loop keeps retrying every cycle.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 4533,
        poll_delay: float = 0.1,
        min_cycle: float = 0.7,
    ):
        self.addr = (host, int(port))
        self.poll_delay = float(poll_delay)
        self.min_cycle = float(min_cycle)
        self.record = SharedDeviceRecord()

        self._sock: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._wake = threading.Event()
        self._halt = True

    # ---------------- lifecycle ----------------

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("rotctld client already running")

        self._sock = open_socket(*self.addr)
        with self.record.lock:
            self.record.new_trg = False
            self.record.io_error = False
            self.record.running = True
        self._wake.clear()
        self._halt = True

        self._thread = threading.Thread(target=self._run, name="rotctld-client", daemon=True)
        self._thread.start()
        logger.info("RotctldClient: connected to %s:%s", self.addr[0], self.addr[1])

    def stop(self, halt: bool = True) -> None:
        """Stop the loop and join the thread; no I/O is outstanding on return."""
        thread = self._thread
        if thread is None:
            return
        self._halt = halt
        with self.record.lock:
            self.record.running = False
        self._wake.set()
        thread.join()
        self._thread = None
        logger.info("RotctldClient: disconnected from %s:%s", self.addr[0], self.addr[1])

    @property
    def running(self) -> bool:
        with self.record.lock:
            return self.record.running

    def set_monitor(self, monitor: bool) -> None:
        """Monitor-only mode: keep reading the position but never send P commands."""
        with self.record.lock:
            self.record.monitor = bool(monitor)

    # ---------------- tracking loop side ----------------

    def exchange(self, az: float, el: float) -> Optional[DeviceReading]:
        """Queue a new target and read back the last position, without blocking.

        Returns None when the client thread holds the lock right now.
        """
        rec = self.record
        if not rec.lock.acquire(blocking=False):
            return None
        try:
            reading = DeviceReading(rec.azi_in, rec.ele_in, rec.io_error)
            rec.azi_out = float(az)
            rec.ele_out = float(el)
            rec.new_trg = True
        finally:
            rec.lock.release()
        return reading

    def poll(self) -> Optional[DeviceReading]:
        """Like exchange() but only reads back; no new target is queued."""
        rec = self.record
        if not rec.lock.acquire(blocking=False):
            return None
        try:
            return DeviceReading(rec.azi_in, rec.ele_in, rec.io_error)
        finally:
            rec.lock.release()

    # ---------------- protocol ----------------

    def set_pos(self, az: float, el: float) -> bool:
        reply = socket_rw(self._sock, f"P {az:.2f} {el:.2f}\n")
        if reply is None:
            return False
        code = parse_status(reply)
        if code != 0:
            logger.error("rotctld returned error %d with az %f el %f (%s)", code, az, el, reply.strip())
            return False
        logger.debug("RotctldClient: P %.2f %.2f", az, el)
        return True

    def get_pos(self) -> Optional[Tuple[float, float]]:
        reply = socket_rw(self._sock, "p\n")
        if reply is None:
            return None
        try:
            return parse_position(reply)
        except ValueError as e:
            logger.error("%s", e)
            return None

    def stop_motion(self) -> bool:
        reply = socket_rw(self._sock, "S\n")
        if reply is None:
            return False
        code = parse_status(reply)
        if code != 0:
            logger.error("rotctld returned error %d with stop-cmd (%s)", code, reply.strip())
            return False
        return True

    # ---------------- thread ----------------

    def _run(self) -> None:
        logger.debug("Starting rotctld client thread")
        rec = self.record
        azi = ele = 0.0
        new_trg = False
        try:
            while True:
                start = time.monotonic()
                io_error = False

                with rec.lock:
                    if not rec.running:
                        break
                    if rec.new_trg:
                        azi, ele = rec.azi_out, rec.ele_out
                        new_trg = True
                    monitor = rec.monitor

                sent = False
                if new_trg and not monitor:
                    if self.set_pos(azi, ele):
                        sent = True
                        new_trg = False
                    else:
                        io_error = True

                # give the rotator a moment before polling
                self._wake.wait(self.poll_delay)
                pos = self.get_pos()
                if pos is None:
                    io_error = True

                with rec.lock:
                    if pos is not None:
                        rec.azi_in, rec.ele_in = pos
                    # a newer target may have arrived while we were talking to rotctld
                    if sent and (rec.azi_out, rec.ele_out) == (azi, ele):
                        rec.new_trg = False
                    rec.io_error = io_error

                # duty cycle stays below 50%, but at least min_cycle between commands
                elapsed = time.monotonic() - start
                self._wake.wait(max(elapsed, self.min_cycle))
        finally:
            if self._halt:
                self.stop_motion()
            close_socket(self._sock)
            self._sock = None
            logger.debug("Stopping rotctld client thread")
