"""Per-room ordered execution of read-modify-write cycles.

Each room gets a FIFO queue drained by a single worker task, so persistence
round trips for one room never interleave.  Rooms are independent of each
other and proceed in parallel.
"""
import asyncio
from typing import Callable, Dict, Optional

from backend import RoomStore
from logging_config import get_logger
from schemas.state import RoomState

logger = get_logger(__name__)

# A mutation edits the snapshot in place (or returns a replacement).
Mutation = Callable[[RoomState], Optional[RoomState]]


class RoomCoordinator:
    def __init__(self, store: RoomStore):
        self.store = store
        self.queues: Dict[str, asyncio.Queue] = {}
        self.workers: Dict[str, asyncio.Task] = {}

    def submit(self, room_id: str, mutate: Mutation) -> asyncio.Future:
        """Queue *mutate* for *room_id*; the future resolves to the persisted state
        (or ``None`` when the room does not exist)."""
        future = asyncio.get_running_loop().create_future()
        queue = self.queues.get(room_id)
        if queue is None:
            queue = self.queues[room_id] = asyncio.Queue()
        queue.put_nowait((mutate, future))

        worker = self.workers.get(room_id)
        if worker is None or worker.done():
            worker = self.workers[room_id] = asyncio.create_task(self._drain(room_id, queue))
            # a worker cancelled before its first step never reaches its finally block
            worker.add_done_callback(lambda task: self._release(room_id, queue, task))
            logger.debug(f"Started mutation worker for room {room_id}")
        return future

    def fire(self, room_id: str, mutate: Mutation):
        """Queue *mutate* without waiting; failures are only logged."""
        future = self.submit(room_id, mutate)
        future.add_done_callback(lambda f: f.cancelled() or f.exception())

    async def update(self, room_id: str, mutate: Mutation) -> Optional[RoomState]:
        return await self.submit(room_id, mutate)

    async def flush(self, room_id: str):
        """Wait until every mutation queued so far for *room_id* has been persisted."""
        queue = self.queues.get(room_id)
        if queue is not None:
            await queue.join()

    async def drain(self):
        """Wait for all rooms; used at shutdown so pending saves are not lost."""
        while self.queues:
            await asyncio.gather(*(queue.join() for queue in list(self.queues.values())))
            # workers clean up their queues after the last task_done()
            await asyncio.sleep(0)

    async def _drain(self, room_id: str, queue: asyncio.Queue):
        try:
            while not queue.empty():
                mutate, future = queue.get_nowait()
                try:
                    result = await self._apply(room_id, mutate)
                except asyncio.CancelledError:
                    future.cancel()
                    raise
                except Exception as e:
                    logger.error(f"Mutation failed for room {room_id}: {e}", exc_info=True)
                    if not future.done():
                        future.set_exception(e)
                else:
                    if not future.done():
                        future.set_result(result)
                finally:
                    queue.task_done()
        finally:
            self._release(room_id, queue, asyncio.current_task())

    def _release(self, room_id: str, queue: asyncio.Queue, task: asyncio.Task):
        """Detach a finished worker. Anything still queued behind it is cancelled."""
        abandoned = 0
        while not queue.empty():
            _, future = queue.get_nowait()
            future.cancel()
            queue.task_done()
            abandoned += 1
        if abandoned:
            logger.warning(f"Cancelled {abandoned} pending mutations for room {room_id}")
        if self.workers.get(room_id) is task:
            del self.workers[room_id]
        if self.queues.get(room_id) is queue:
            del self.queues[room_id]

    async def _apply(self, room_id: str, mutate: Mutation) -> Optional[RoomState]:
        state = await self.store.get(room_id)
        if state is None:
            logger.debug(f"Dropping mutation for missing room {room_id}")
            return None
        replacement = mutate(state)
        if replacement is not None:
            state = replacement
        await self.store.put(room_id, state)
        return state
