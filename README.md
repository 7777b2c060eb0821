# uwspubsub

Building blocks for a message-oriented server. The package has no third-party
dependencies. It has three modules.

## `uwspubsub.topictree`

This module holds a publish/subscribe tree:

- Topics are `/`-separated paths.
- In a subscription, `+` matches exactly one segment and `#` matches the rest of a topic.
- Wildcards are not allowed when publishing. A publish stops matching at the first
  `+` or `#` segment it meets.

### Batching and delivery

Published messages are queued on the matching topics until `TopicTree.drain()`
runs. That happens in these cases:

- you call it;
- 64 topics are waiting and a further one is triggered;
- someone subscribes to, or unsubscribes from, a topic that still has queued
  messages. Passing `non_strict=True` to `subscribe` or `unsubscribe` skips this.

On drain, the callback given to `TopicTree(callback)` is called once per
subscriber with an `Intersection`. Its `data_channels` pair holds, concatenated,
every message the subscriber should see. The messages are in publish order and
without duplicates. `holes` gives each message's lengths and id.

If the subscriber also published some of the messages (`publish(..., sender=subscriber)`),
it can skip them: pass `tree.get_sender_for(subscriber)` to
`Intersection.for_subscriber(ids, callback)`. The callback then gets the remaining
slices and a flag that marks the last one.

### Example

```python
from uwspubsub.topictree import Subscriber, TopicTree

def deliver(subscriber, intersection):
    inflated, deflated = intersection.data_channels
    print(subscriber.user, inflated)

tree = TopicTree(deliver)
alice = Subscriber("alice")
tree.subscribe("sensors/+/temperature", alice)
tree.subscribe("sensors/#", alice)

tree.publish("sensors/kitchen/temperature", ("21C", "21C"))
tree.drain()   # alice receives "21C" once
```

Each message is a pair `(inflated, deflated)`. The tree does not compress
anything. The second element is carried along exactly as given.

### Return values and other calls

- `publish` returns whether at least one topic matched.
- `subscribe` returns a pair: the number of subscribers on the topic, and whether
  the subscriber was newly added.
- `unsubscribe` returns a pair: the number of subscribers left on the topic, and
  whether the subscriber had been subscribed.
- `unsubscribe_all(subscriber)` removes every subscription of a subscriber.
- `lookup_topic(topic)` returns the exact `Topic` node, or `None`.
- Nodes that are no longer used are removed from the tree.

## `uwspubsub.asyncsocket`

`AsyncSocket` writes to a `Transport`. Data that is already waiting in the
socket's backpressure buffer goes out first. New data then goes to one of three
places:

1. the per-loop cork buffer of `LoopData`, if this socket is corked and the data
   fits in the buffer (16 KiB);
2. otherwise, straight to the transport;
3. into the per-socket backpressure buffer, for whatever the transport would not
   take.

### Writing and corking

`write(data, optionally=False, next_length=0)` returns a pair: bytes accounted
for, and whether there was backpressure. With `optionally=True`, data the
transport refused is not buffered.

`cork()` marks the socket as the loop's corked socket. `uncork(data)` flushes the
cork buffer and then writes `data`. Only one socket per `LoopData` can be corked
at a time; see `can_cork()` and `is_corked()`.

### Other calls

- `buffered_amount()` reports the size of the backpressure buffer.
- `remote_address_as_text()` gives the transport's remote address as text.
  `address_as_text(binary)` does the same for any 4-byte IPv4 or 16-byte IPv6
  address.

### Transports

`Transport` is an in-memory implementation. It records what was sent in `sent`
and `writes`. It can be given a `capacity` to simulate short writes. Subclass it
and override `write`, `is_closed`, `remote_address`, `set_timeout`, `shutdown`
and `close` to drive a real connection.

## `uwspubsub.httpresponse`

`HttpResponse` frames an HTTP/1.1 response on top of an `AsyncSocket`.

### Status line and headers

- `write_status` writes the status line. Only its first call has an effect.
  Without it, `200 OK` is written automatically.
- `write_header(key, value)` accepts a string or a non-negative integer value.
- `write_continue()` writes a `100 Continue` interim response.
- When the body starts, the header `uWebSockets: 19` is added, unless
  `socket.loop_data.no_mark` is set.

### Body

There are two ways to send the body:

- **Content-Length.** `end(data, close_connection=False)` sends the body and
  finishes the response. `try_end(data, total_size)` sends part of a body of known
  total size without buffering what the transport refuses. It returns
  `(ok, has_responded)`.
- **Chunked.** `write(data)` sends chunks and returns `False` on backpressure.
  `end()` writes the terminating chunk.

### State and handlers

- `has_responded()` tells whether the response is complete.
- `write_offset()` gives the body bytes written so far.
- `cork(handler)` runs `handler` with the socket corked. Many small writes then
  leave as one transport write.
- `on_writable`, `on_aborted` and `on_data` store handlers on the response. The
  package itself never calls them.

### Example

```python
from uwspubsub.asyncsocket import AsyncSocket, LoopData, Transport
from uwspubsub.httpresponse import HttpResponse

transport = Transport()
socket = AsyncSocket(transport, LoopData())
response = HttpResponse(socket)
response.write_status("200 OK").write_header("Content-Type", "text/plain")
response.end("hello")
print(bytes(transport.sent))
```

## What this package does not do

This package is not a server by itself. It has:

- no event loop and no listening sockets;
- no HTTP request parser and no router;
- no WebSocket handshake, framing or upgrade;
- no compression.

Timeouts are only passed on to the transport through `set_timeout`. The stored
`on_writable`, `on_aborted` and `on_data` handlers must be called by whatever
drives the connection.

## Install and test

```
pip install ".[test]"
pytest
```