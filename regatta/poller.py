"""
Background polling, one thread per boat
"""

import logging
import threading

from regatta.enrichment import BoatUpdater
from regatta.errors import RegattaError, SourceError

logger = logging.getLogger(__name__)


class BoatPoller(threading.Thread):
    """
    Polls the position source for one boat until stopped.

    The thread opens its own store through store_factory, so no connection
    is shared between boats. stop() only prevents new polls; a poll that is
    already running completes (or fails and rolls back) before done is set.
    """

    def __init__(self, boat, store_factory, source_factory, clock, config):
        super().__init__(name=f'poller-{boat}', daemon=True)
        self.boat = boat
        self.store_factory = store_factory
        self.source_factory = source_factory
        self.clock = clock
        self.config = config
        self.interval = config.get('poll_interval', 1.0)
        self.done = threading.Event()
        self.polls = 0
        self.failures = 0
        self._stop_event = threading.Event()

    def stop(self):
        self._stop_event.set()

    def run(self):
        store = None
        try:
            store = self.store_factory()
            updater = BoatUpdater(self.boat, store, self.source_factory(store), self.clock, self.config)
            logger.info(f"Tracking {self.boat} every {self.interval}s")

            while not self._stop_event.is_set():
                self.poll_once(updater)
                self._stop_event.wait(self.interval)
        except Exception as e:
            logger.error(f"Poller for {self.boat} stopped: {e}")
        finally:
            if store is not None:
                store.close()
            self.done.set()
            logger.info(f"Stopped tracking {self.boat}")

    def poll_once(self, updater):
        """Run one poll, logging failures instead of raising them"""
        self.polls += 1
        try:
            return updater.poll()
        except SourceError as e:
            self.failures += 1
            logger.warning(f"{e} (retrying next poll)")
        except RegattaError as e:
            self.failures += 1
            logger.error(f"Rejected batch for {self.boat}: {e}")
        except Exception as e:
            self.failures += 1
            logger.error(f"Error updating {self.boat}: {e}")
        return 0


class Tracker:
    """Starts, stops and waits for the pollers of all tracked boats"""

    def __init__(self, boats, store_factory, source_factory, clock, config):
        self.pollers = [BoatPoller(boat, store_factory, source_factory, clock, config) for boat in boats]

    def start(self):
        for poller in self.pollers:
            poller.start()

    def stop(self):
        for poller in self.pollers:
            poller.stop()

    def wait(self, timeout=None):
        """
        Block until every poller has finished

        Returns:
            bool: True if all pollers are done
        """
        return all([poller.done.wait(timeout) for poller in self.pollers])
