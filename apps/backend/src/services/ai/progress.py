"""Transport-agnostic channel of progress events.

One producer (an orchestration run) emits events; one consumer iterates
them in emission order. Either side can end the stream: the producer with
`finish()` once its terminal event is out, the consumer with `close()` when
its transport goes away. Emitting after either raises ProgressStreamClosed,
which is how a run learns that nobody is listening any more.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Final

from schemas.progress import ProgressEvent
from services.ai.exceptions import ProgressStreamClosed


_END: Final = object()


class ProgressStream:
    def __init__(self) -> None:
        # Unbounded so that finish/close can always enqueue the end marker
        self._queue: asyncio.Queue[ProgressEvent | object] = asyncio.Queue()
        self._finished = False
        self._closed = False

    @property
    def writable(self) -> bool:
        return not (self._finished or self._closed)

    @property
    def closed(self) -> bool:
        return self._closed

    async def emit(self, event: ProgressEvent) -> None:
        if not self.writable:
            raise ProgressStreamClosed()
        await self._queue.put(event)

    def finish(self) -> None:
        """Producer is done; the consumer drains what is queued, then stops."""
        if not self.writable:
            return
        self._finished = True
        self._queue.put_nowait(_END)

    def close(self) -> None:
        """Consumer is gone; further emits fail and queued events are dropped."""
        if self._closed:
            return
        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_END)

    async def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        while True:
            item = await self._queue.get()
            if item is _END:
                return
            yield item  # type: ignore[misc]
