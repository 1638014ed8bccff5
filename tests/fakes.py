"""
In-memory stand-in for a browser tab, used by the async tests.
"""

import asyncio

from navigation import LOAD_COMPLETE_EVENT, TARGET_DESTROYED_EVENT


def always_succeed(message):
    return {"success": True}


class FakeTarget:
    """
    Records every message and answers through ``responder(message)``.

    ``load_delay`` controls navigation: None means the page never finishes
    loading, otherwise the load-complete signal fires after that many seconds.
    """

    def __init__(self, responder=always_succeed, target_id=123, load_delay=0.01):
        self.target_id = target_id
        self.responder = responder
        self.load_delay = load_delay
        self.status = "complete"
        self.messages = []
        self.locations = []
        self.navigation_error = None
        self.listeners = {LOAD_COMPLETE_EVENT: [], TARGET_DESTROYED_EVENT: []}

    async def send_message(self, message):
        self.messages.append(message)
        return self.responder(message)

    async def update_location(self, url):
        if self.navigation_error is not None:
            raise self.navigation_error
        self.locations.append(url)
        self.status = "loading"
        if self.load_delay is not None:
            asyncio.get_running_loop().call_later(self.load_delay, self.finish_load)

    async def get_status(self):
        return self.status

    def add_listener(self, event, callback):
        self.listeners[event].append(callback)

    def remove_listener(self, event, callback):
        if callback in self.listeners[event]:
            self.listeners[event].remove(callback)

    def fire(self, event):
        for callback in list(self.listeners[event]):
            callback()

    def finish_load(self):
        self.status = "complete"
        self.fire(LOAD_COMPLETE_EVENT)

    def close(self):
        self.fire(TARGET_DESTROYED_EVENT)

    def listener_count(self):
        return sum(len(callbacks) for callbacks in self.listeners.values())

    def payloads(self, message_type=None):
        return [
            m["payload"] for m in self.messages
            if message_type is None or m["type"] == message_type
        ]
