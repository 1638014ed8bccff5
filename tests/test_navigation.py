"""
Unit tests for the navigation wait helper.
"""

import asyncio
import unittest

from fakes import FakeTarget
from navigation import NavigationState, NavigationWaiter, wait_for_navigation
from workflow_errors import NavigationError


class TestNavigationWaiter(unittest.IsolatedAsyncioTestCase):

    async def test_already_complete(self):
        """A page that already reports complete resolves without a signal."""
        target = FakeTarget()
        waiter = NavigationWaiter(target, timeout_ms=100, settle_delay_ms=0)

        await waiter.wait()

        self.assertEqual(waiter.state, NavigationState.COMPLETE)
        self.assertEqual(target.listener_count(), 0)

    async def test_complete_signal(self):
        target = FakeTarget(load_delay=0.02)
        await target.update_location("https://example.com")
        waiter = NavigationWaiter(target, timeout_ms=1000, settle_delay_ms=0)

        await waiter.wait()

        self.assertEqual(waiter.state, NavigationState.COMPLETE)
        self.assertEqual(target.listener_count(), 0)

    async def test_settle_delay_applied(self):
        target = FakeTarget()
        waiter = NavigationWaiter(target, timeout_ms=100, settle_delay_ms=50)
        loop = asyncio.get_running_loop()

        start = loop.time()
        await waiter.wait()

        self.assertGreaterEqual(loop.time() - start, 0.045)

    async def test_timeout(self):
        target = FakeTarget(load_delay=None)
        await target.update_location("https://example.com")
        waiter = NavigationWaiter(target, timeout_ms=50, settle_delay_ms=0)

        with self.assertRaises(NavigationError) as cm:
            await waiter.wait()

        self.assertEqual(str(cm.exception), "Navigation timeout after 50ms")
        self.assertEqual(waiter.state, NavigationState.FAILED)
        self.assertEqual(target.listener_count(), 0)

    async def test_target_destroyed(self):
        target = FakeTarget(load_delay=None)
        await target.update_location("https://example.com")
        asyncio.get_running_loop().call_later(0.01, target.close)
        waiter = NavigationWaiter(target, timeout_ms=1000, settle_delay_ms=0)

        with self.assertRaises(NavigationError) as cm:
            await waiter.wait()

        self.assertIn("closed before load completed", str(cm.exception))
        self.assertEqual(waiter.state, NavigationState.FAILED)
        self.assertEqual(target.listener_count(), 0)

    async def test_first_signal_wins(self):
        """A close after the load completed doesn't change the outcome."""
        target = FakeTarget(load_delay=0.01)
        await target.update_location("https://example.com")
        loop = asyncio.get_running_loop()
        loop.call_later(0.03, target.close)
        waiter = NavigationWaiter(target, timeout_ms=1000, settle_delay_ms=50)

        await waiter.wait()

        self.assertEqual(waiter.state, NavigationState.COMPLETE)

    async def test_repeated_navigations_do_not_leak_listeners(self):
        target = FakeTarget(load_delay=0.005)
        for _ in range(3):
            await target.update_location("https://example.com")
            await NavigationWaiter(target, timeout_ms=500, settle_delay_ms=0).wait()

        self.assertEqual(target.listener_count(), 0)

    async def test_module_helper(self):
        target = FakeTarget(load_delay=0.005)
        await target.update_location("https://example.com")

        await wait_for_navigation(target, timeout_ms=500, settle_delay_ms=0)

        self.assertEqual(target.status, "complete")
        self.assertEqual(target.listener_count(), 0)


if __name__ == '__main__':
    unittest.main()
