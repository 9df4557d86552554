"""Majordomo Protocol broker: routes client requests to service workers."""

from __future__ import annotations

import logging
import sys
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Sequence

import zmq

from zguide.mdp import MDPC_CLIENT, MDPW_WORKER, MDPError, WorkerCommand, command_name
from zguide.zhelpers import unwrap

__all__ = [
    "HEARTBEAT_LIVENESS",
    "HEARTBEAT_INTERVAL",
    "HEARTBEAT_EXPIRY",
    "Broker",
    "Service",
    "Worker",
    "main",
]

log = logging.getLogger(__name__)

HEARTBEAT_LIVENESS = 3
HEARTBEAT_INTERVAL = 2.5  # seconds
HEARTBEAT_EXPIRY = HEARTBEAT_INTERVAL * HEARTBEAT_LIVENESS

_MMI_PREFIX = b"mmi."


def _remove(workers: list[Worker], worker: Worker) -> None:
    workers[:] = [item for item in workers if item is not worker]


@dataclass(eq=False)
class Service:
    """A named service with its queued requests and idle workers."""

    broker: Broker
    name: bytes
    requests: deque[list[bytes]] = field(default_factory=deque)
    waiting: list[Worker] = field(default_factory=list)

    def dispatch(self, msg: Sequence[bytes] | None = None) -> None:
        """Queue a request, if given, and hand queued requests to idle workers."""
        if msg:
            self.requests.append(list(msg))
        self.broker.purge()
        while self.waiting and self.requests:
            worker = self.waiting.pop(0)
            _remove(self.broker.waiting, worker)
            worker.send(WorkerCommand.REQUEST, None, self.requests.popleft())


@dataclass(eq=False)
class Worker:
    """One worker known to the broker, idle or busy."""

    broker: Broker
    identity: bytes
    service: Service | None = None
    expiry: float = 0.0

    @property
    def id_string(self) -> str:
        return repr(self.identity)

    def delete(self, disconnect: bool) -> None:
        """Forget this worker, telling it to disconnect if asked."""
        if disconnect:
            self.send(WorkerCommand.DISCONNECT)
        if self.service is not None:
            _remove(self.service.waiting, self)
        _remove(self.broker.waiting, self)
        self.broker.workers.pop(self.identity, None)

    def send(
        self,
        command: bytes,
        option: bytes | None = None,
        msg: Sequence[bytes] = (),
    ) -> None:
        """Send a command, an optional option frame and a payload to the worker."""
        frames = [self.identity, b"", MDPW_WORKER, bytes(command)]
        if option:
            frames.append(bytes(option))
        frames.extend(bytes(part) for part in msg)
        if self.broker.verbose:
            log.info("I: sending %s to worker %r", command_name(command), frames)
        self.broker.socket.send_multipart(frames)

    def waiting(self) -> None:
        """Mark this worker idle and let its service dispatch to it."""
        if self.service is None:
            raise MDPError(f"worker {self.id_string} has no service")
        self.broker.waiting.append(self)
        self.service.waiting.append(self)
        self.expiry = time.monotonic() + HEARTBEAT_EXPIRY
        self.service.dispatch()


class Broker:
    """A Majordomo broker using one ROUTER socket for clients and workers."""

    def __init__(self, verbose: bool = False, context: zmq.Context | None = None) -> None:
        self.verbose = verbose
        self._context = context if context is not None else zmq.Context.instance()
        self.services: dict[bytes, Service] = {}
        self.workers: dict[bytes, Worker] = {}
        self.waiting: list[Worker] = []
        self.heartbeat_at = time.monotonic() + HEARTBEAT_INTERVAL
        self.socket: zmq.Socket = self._context.socket(zmq.ROUTER)
        self.socket.rcvhwm = 500000

    def close(self) -> None:
        """Close the broker socket; safe to call more than once."""
        if not self.socket.closed:
            self.socket.close(linger=0)

    def bind(self, endpoint: str) -> None:
        """Bind the broker socket to an endpoint; may be called several times."""
        try:
            self.socket.bind(endpoint)
        except zmq.ZMQError:
            log.error("E: MDP broker/0.2.0 failed to bind at %s", endpoint)
            raise
        log.info("I: MDP broker/0.2.0 is active at %s", endpoint)

    def worker_msg(self, sender: bytes, msg: Sequence[bytes]) -> None:
        """Process one READY, REPLY, HEARTBEAT or DISCONNECT from a worker."""
        if not msg:
            raise MDPError("worker message without command")
        command, body = bytes(msg[0]), list(msg[1:])
        worker_ready = sender in self.workers
        worker = self.require_worker(sender)

        if command == WorkerCommand.READY:
            if worker_ready or sender.startswith(_MMI_PREFIX):
                worker.delete(True)
            else:
                if not body:
                    raise MDPError("READY without service name")
                worker.service = self.require_service(body[0])
                worker.waiting()
        elif command == WorkerCommand.REPLY:
            if worker_ready:
                if worker.service is None:
                    raise MDPError(f"worker {worker.id_string} has no service")
                client, reply = unwrap(body)
                self.socket.send_multipart(
                    [client, b"", MDPC_CLIENT, worker.service.name, *reply]
                )
                worker.waiting()
            else:
                worker.delete(True)
        elif command == WorkerCommand.HEARTBEAT:
            if worker_ready:
                worker.expiry = time.monotonic() + HEARTBEAT_EXPIRY
            else:
                worker.delete(True)
        elif command == WorkerCommand.DISCONNECT:
            worker.delete(False)
        else:
            log.error("E: invalid input message %r", body)

    def client_msg(self, sender: bytes, msg: Sequence[bytes]) -> None:
        """Process a client request; mmi.* requests are answered here."""
        if len(msg) < 2:
            raise MDPError("client message needs service name and body")
        service_frame = bytes(msg[0])
        service = self.require_service(service_frame)
        request = [sender, b"", *msg[1:]]

        if service_frame.startswith(_MMI_PREFIX):
            if service_frame == b"mmi.service":
                known = self.services.get(request[-1])
                return_code = b"200" if known is not None and known.waiting else b"404"
            else:
                return_code = b"501"
            request[-1] = return_code
            client, reply = unwrap(request)
            self.socket.send_multipart([client, b"", MDPC_CLIENT, service_frame, *reply])
        else:
            service.dispatch(request)

    def purge(self) -> None:
        """Delete idle workers whose heartbeat has expired, oldest first."""
        now = time.monotonic()
        while self.waiting:
            worker = self.waiting[0]
            if worker.expiry > now:
                break
            if self.verbose:
                log.info("I: deleting expired worker: %s", worker.id_string)
            worker.delete(False)

    def require_service(self, name: bytes) -> Service:
        """Return the service with this name, creating it if needed."""
        service = self.services.get(name)
        if service is None:
            service = Service(self, bytes(name))
            self.services[service.name] = service
            if self.verbose:
                log.info("I: added service: %r", name)
        return service

    def require_worker(self, identity: bytes) -> Worker:
        """Return the worker with this identity, creating it if needed."""
        worker = self.workers.get(identity)
        if worker is None:
            worker = Worker(self, bytes(identity))
            self.workers[worker.identity] = worker
            if self.verbose:
                log.info("I: registering new worker: %s", worker.id_string)
        return worker

    def handle_message(self, msg: Sequence[bytes]) -> None:
        """Route one message received on the broker socket."""
        if len(msg) < 3:
            raise MDPError(f"message too short: {len(msg)} frames")
        sender, header, body = bytes(msg[0]), bytes(msg[2]), list(msg[3:])
        if header == MDPC_CLIENT:
            self.client_msg(sender, body)
        elif header == MDPW_WORKER:
            self.worker_msg(sender, body)
        else:
            log.error("E: invalid message: %r", body)

    def send_heartbeats(self) -> None:
        """Purge expired workers, heartbeat the idle ones and reset the timer."""
        self.purge()
        for worker in list(self.waiting):
            worker.send(WorkerCommand.HEARTBEAT)
        self.heartbeat_at = time.monotonic() + HEARTBEAT_INTERVAL

    def run(self) -> None:
        """Process messages until interrupted or the context is terminated."""
        poller = zmq.Poller()
        poller.register(self.socket, zmq.POLLIN)
        try:
            while True:
                events = dict(poller.poll(int(HEARTBEAT_INTERVAL * 1000)))
                if self.socket in events:
                    msg = self.socket.recv_multipart()
                    if self.verbose:
                        log.info("I: received message: %r", msg)
                    self.handle_message(msg)
                if time.monotonic() > self.heartbeat_at:
                    self.send_heartbeats()
        except (zmq.ZMQError, KeyboardInterrupt):
            pass
        log.warning("W: interrupt received, shutting down...")


def main(argv: Sequence[str] | None = None) -> int:
    """Run a broker on tcp://*:5555; '-v' turns on verbose tracing."""
    args = list(sys.argv[1:] if argv is None else argv)
    verbose = bool(args) and args[0] == "-v"
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")
    broker = Broker(verbose)
    try:
        broker.bind("tcp://*:5555")
        broker.run()
    finally:
        broker.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())