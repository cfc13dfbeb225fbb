"""
coordinator.py - Tick-driven simulation engine

The coordinator replays the stack tick by tick:
1. Take the messages of the tick, grouped by receiving broker
2. For each message kind (broker kinds first, then client kinds), run one
   task per broker on the worker pool; a broker processes its messages of
   that kind sequentially. Wait for all tasks before the next kind.
3. Drain the produced messages into the stack (they must lie in the future)
4. Fold the tick into the running statistics

Broker messages go first so that messages received from other brokers
never overwrite what a broker's own clients sent in the same tick.

The run stops once more than `idle_threshold` consecutive ticks held no
message. Empty ticks are skipped without visiting them.

Design philosophy:
- Fail fast: the first exception raised by any broker aborts the run
- Deterministic: results only depend on the stack, never on thread timing
"""

import logging
import queue
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

from brokersim.broker.directory import BrokerDirectory
from brokersim.model import BrokerId, Tick
from brokersim.stack.message import PROCESSING_ORDER, Message
from brokersim.stack.stack import Stack

logger = logging.getLogger(__name__)

IDLE_THRESHOLD = 100_000


class Coordinator:
    """
    Args:
        stack: Stack holding the workload; updated during the run
        directory: Broker directory of the topology
        idle_threshold: Number of consecutive empty ticks that ends the run
        max_workers: Size of the worker pool (None: ThreadPoolExecutor default)
        progress_interval: Log progress every this many virtual ms
    """

    def __init__(self, stack: Stack, directory: BrokerDirectory, idle_threshold: int = IDLE_THRESHOLD,
                 max_workers: Optional[int] = None, progress_interval: int = 60_000):
        if idle_threshold < 0:
            raise ValueError(f"idle_threshold must be non-negative, got {idle_threshold}")
        self.stack = stack
        self.directory = directory
        self.idle_threshold = idle_threshold
        self.max_workers = max_workers
        self.progress_interval = progress_interval

        self.last_processed_tick: Optional[Tick] = None
        self.processed_ticks = 0
        self.wall_time_sec = 0.0

    def run(self) -> Optional[Tick]:
        """
        Run until the stack is exhausted or idle for too long.

        Returns:
            The last processed tick, None if no tick held messages
        """
        initial_max_tick = self.stack.max_tick
        logger.info(f"Starting simulation, last scheduled client message at tick {initial_max_tick}")

        start_wall_time = time.time()
        next_progress = self.progress_interval
        last_processed = -1

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="broker") as executor:
            while True:
                tick = self.stack.next_tick(last_processed)
                if tick is None or tick - last_processed - 1 > self.idle_threshold:
                    break

                self._process_tick(tick, executor)
                last_processed = tick
                self.processed_ticks += 1

                if tick >= next_progress:
                    elapsed = time.time() - start_wall_time
                    logger.info(f"Tick {tick} of at least {self.stack.max_tick}, wall time: {elapsed:.2f}s")
                    next_progress = tick + self.progress_interval

        self.wall_time_sec = time.time() - start_wall_time
        self.last_processed_tick = last_processed if last_processed >= 0 else None

        if self.last_processed_tick is not None and self.last_processed_tick > initial_max_tick:
            logger.info(f"Last processed tick {self.last_processed_tick} lies after the last client message "
                        f"({initial_max_tick}), most likely an event delivery")
        logger.info(f"Finished simulation after {self.processed_ticks} ticks with messages "
                    f"in {self.wall_time_sec:.2f}s, {self.stack.message_counts.total()} messages")

        self.directory.validate_broker_states()
        return self.last_processed_tick

    def _process_tick(self, tick: Tick, executor: ThreadPoolExecutor):
        messages_per_broker = self.stack.get_messages(tick)
        logger.debug(f"{tick}: messages for {len(messages_per_broker)} brokers")

        results: queue.SimpleQueue = queue.SimpleQueue()
        for kind in PROCESSING_ORDER:
            self._process_messages_of_type(kind, messages_per_broker, results, executor)

        produced = 0
        while True:
            try:
                message = results.get_nowait()
            except queue.Empty:
                break
            self.stack.add_message(message, tick)
            produced += 1
        logger.debug(f"{tick}: {produced} new messages")

        self.stack.calculate_storeless_statistics(tick)

    def _process_messages_of_type(self, kind: type, messages_per_broker: Dict[BrokerId, List[Message]],
                                  results: queue.SimpleQueue, executor: ThreadPoolExecutor):
        futures = []
        for broker_id, messages in messages_per_broker.items():
            batch = [m for m in messages if type(m) is kind]
            if not batch:
                continue
            broker = self.directory.get_broker(broker_id)
            futures.append(executor.submit(broker.process_messages, batch, results))

        # Join barrier; result() re-raises the first failure
        for future in futures:
            future.result()
