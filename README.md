# zguide

Reliable request-reply messaging patterns built on ZeroMQ (through `pyzmq`).
The package provides client, worker and broker classes for the Majordomo
Protocol, a disk-backed Titanic service, Freelance clients and servers, the
Lazy, Simple and Paranoid Pirate patterns, a load-balancing broker, and
key-value message classes.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Library overview

| Module | What it provides |
| --- | --- |
| `zguide.zhelpers` | `unwrap` (split off an envelope frame and its empty delimiter), `format_frame` (text, or hex when a frame holds control bytes), `dump` (receive one message and print its frames) |
| `zguide.kvsimple` | `KVMsg`: key, sequence and body frames; `send`, `recv`, `store`, `dump` |
| `zguide.kvmsg` | `KVMsg` with a 16-byte UUID and `name=value` properties; `set_uuid`, `get_prop`, `set_prop`, `dup`; `store` removes the key when the body is empty |
| `zguide.mdp` | Protocol headers `MDPC_CLIENT` and `MDPW_WORKER`, `WorkerCommand`, `command_name`, `MDPError` |
| `zguide.mdcliapi` | `MajordomoClient`: synchronous REQ client with a `timeout` (seconds) and `retries`, raising `MDPError` after the last attempt |
| `zguide.mdcliapi2` | `AsyncMajordomoClient`: DEALER client that sends many requests and collects replies with `recv` |
| `zguide.mdwrkapi` | `MajordomoWorker`: heartbeating worker that reconnects on silence or on DISCONNECT |
| `zguide.mdbroker` | `Broker`, `Service`, `Worker`: the Majordomo broker, answering `mmi.service` itself |
| `zguide.mdexamples` | Echo client, asynchronous echo client, echo worker and `lookup_service` |
| `zguide.titanic` | File helpers (`store_request`, `lookup_reply`, `close_request`, `pending_requests`) and the three Titanic services plus a dispatcher |
| `zguide.ticlient` | `service_call` and `ServiceCallError` for talking to Titanic |
| `zguide.flcliapi` | `FreelanceClient`: background agent thread that pings servers and fails over; `request` raises `TimeoutError` |
| `zguide.flclient` | `try_request` (one REQ attempt) and `FlClient` (DEALER that sends each request to every server) |
| `zguide.flserver` | `ok_reply`, `router_reply` and the `serve_echo`, `serve_ok`, `serve_router` loops |
| `zguide.lazypirate` | `LazyPirateClient` and a flaky echo server |
| `zguide.simplepirate` | `run_queue`, `random_identity`, and a worker that sometimes fails |
| `zguide.paranoidpirate` | `WorkerQueue`, `worker_socket`, and a heartbeating queue and worker |
| `zguide.loadbalance` | `LBBroker` with `client_task` and `worker_task` |

### A Majordomo session

```python
from zguide.mdcliapi import MajordomoClient
from zguide.mdwrkapi import MajordomoWorker

# in the worker process
with MajordomoWorker("tcp://localhost:5555", "echo", False, None) as worker:
    reply = None
    while True:
        request = worker.recv(reply)
        reply = request

# in the client process
with MajordomoClient("tcp://localhost:5555", False, None) as client:
    print(client.send("echo", "Hello world"))
```

### Key-value messages

```python
from zguide.kvmsg import KVMsg

msg = KVMsg(1)
msg.key = "key"
msg.body = b"body"
msg.set_prop("ttl", "30")
msg.set_uuid()
kvmap = {}
msg.store(kvmap)
assert msg.get_prop("ttl") == "30"
```

## Commands

Majordomo (each accepts `-v` for tracing):

```
zguide-mdbroker -v
zguide-mdworker
zguide-mdclient
zguide-mdclient2
zguide-mmiecho
```

The broker binds `tcp://*:5555`; the others connect to `tcp://localhost:5555`.

Titanic (start the broker and an echo worker first; both accept `-v`).
Requests and replies are kept as files in `.titanic` in the current directory:

```
zguide-titanic
zguide-ticlient
```

Freelance. Models 1 and 2 take endpoints on the command line; the model 3
server binds `tcp://*:5555` (with `-v` it prints traffic) and the model 3
client connects to ports 5555, 5556 and 5557 on localhost:

```
zguide-flserver1 tcp://*:5555
zguide-flclient1 tcp://localhost:5555
zguide-flserver2 tcp://*:5555
zguide-flclient2 tcp://localhost:5555
zguide-flserver3 -v
zguide-flclient3
```

Pirates. The servers and queues listen for clients on port 5555 and the
Simple and Paranoid Pirate queues for workers on port 5556:

```
zguide-lpserver
zguide-lpclient
zguide-spqueue
zguide-spworker
zguide-ppqueue
zguide-ppworker
```

Load balancing, with clients and workers as threads in the same process.
It uses `ipc://` endpoints in the current directory, so it needs a platform
that supports them:

```
zguide-lbbroker
```

## What this package does not do

The key-value message classes only build, send, receive and store messages;
there is no server or client here that shares state with them. The Titanic
service keeps its queue in plain files without locking, and the brokers keep
everything in memory, so nothing survives a broker restart.