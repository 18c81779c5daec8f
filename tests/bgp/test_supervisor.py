"""
Tests for the session supervisor (control plane)

Tests session ownership, message dispatch, validity polling and route
withdrawal.
"""

import unittest
from unittest.mock import Mock

from bgpsession.supervisor import SessionSupervisor
from bgpsession.session import BGPSessionParameters
from bgpsession.scheduler import VirtualScheduler
from bgpsession.transport import OutboundChannel, InboundQueue
from bgpsession.routing import RoutingTable
from bgpsession.messages import BGPKeepalive, BGPUpdate, BGPNotification
from bgpsession.errors import (
    ConfigurationError, InvalidParametersError, SessionError,
    UnacceptableHoldTimeError, UnknownInterfaceError,
)
from bgpsession.constants import *


def peer(interface):
    return f"10.0.{interface}.2"


class SupervisorTestCase(unittest.TestCase):
    """Control plane with 3 sessions, hold_down=30, keepalive_fraction=3"""

    session_count = 3

    def setUp(self):
        self.scheduler = VirtualScheduler()
        self.outbound = OutboundChannel()
        self.routing = RoutingTable()
        self.supervisor = SessionSupervisor(
            self.scheduler, self.outbound, self.routing,
            session_count=self.session_count,
            parameters=BGPSessionParameters(hold_down_time=30, keepalive_fraction=3),
        )
        for interface in range(self.session_count):
            self.supervisor.dedicate(interface, peer(interface))

    def run_ticks(self, start, end, answering=()):
        """Tick from start to end inclusive; answering peers send a KEEPALIVE every tick"""
        withdrawn = {}
        for t in range(start, end + 1):
            for interface in answering:
                self.supervisor.receive(BGPKeepalive(peer(interface)))
            result = self.supervisor.tick(t)
            if result:
                withdrawn[t] = result
        return withdrawn


class TestSupervisorConstruction(SupervisorTestCase):
    """Test elaboration and lookups"""

    def test_sessions_per_interface(self):
        """One stopped session per interface, indexed by interface"""
        self.assertEqual(self.supervisor.session_count, 3)
        for interface, session in enumerate(self.supervisor.sessions):
            self.assertEqual(session.peering_interface, interface)
            self.assertEqual(session.state, STATE_STOPPED)
            self.assertIs(self.supervisor.session_for(interface), session)

    def test_start_starts_every_session(self):
        """After start() every session is valid"""
        self.supervisor.start()

        self.assertTrue(self.supervisor.running)
        self.assertEqual(self.supervisor.get_valid_sessions(), [0, 1, 2])
        self.assertEqual(self.scheduler.pending(), 6)

    def test_bad_session_count(self):
        """At least one session is required"""
        with self.assertRaises(ConfigurationError):
            SessionSupervisor(self.scheduler, self.outbound, self.routing, session_count=0)

    def test_bad_parameters(self):
        """Parameters are validated at elaboration"""
        with self.assertRaises(InvalidParametersError):
            SessionSupervisor(self.scheduler, self.outbound, self.routing,
                              parameters=BGPSessionParameters(keepalive_fraction=0))

    def test_unknown_interface(self):
        """Out-of-range interfaces are rejected"""
        with self.assertRaises(UnknownInterfaceError):
            self.supervisor.session_for(3)
        with self.assertRaises(LookupError):
            self.supervisor.session_for(-1)

    def test_find_session(self):
        """Sessions are found by peer identifier"""
        self.assertIs(self.supervisor.find_session(peer(2)), self.supervisor.sessions[2])
        self.assertIsNone(self.supervisor.find_session("192.0.2.99"))
        self.assertIsNone(self.supervisor.find_session(None))

    def test_default_inbound_queue(self):
        """A receiving buffer is created when none is given"""
        self.assertIsInstance(self.supervisor.inbound, InboundQueue)


class TestSupervisorWithdrawal(SupervisorTestCase):
    """Test route withdrawal on session invalidation"""

    def test_withdraw_once_for_expired_session(self):
        """Session 1 expires: routes via interface 1 withdrawn exactly once"""
        self.routing.install_route("198.51.100.0/24", 0, peer(0))
        self.routing.install_route("203.0.113.0/24", 1, peer(1))
        self.supervisor.start()

        withdrawn = self.run_ticks(1, 120, answering=(0, 2))

        self.assertEqual(withdrawn, {30: [1]})
        self.assertEqual(self.routing.withdrawals, [1])
        self.assertEqual(self.supervisor.withdrawals, 1)
        self.assertTrue(self.supervisor.is_withdrawn(1))
        self.assertIsNone(self.routing.lookup("203.0.113.0/24"))
        self.assertIsNotNone(self.routing.lookup("198.51.100.0/24"))
        self.assertEqual(self.supervisor.get_valid_sessions(), [0, 2])

    def test_withdrawal_uses_routing_interface(self):
        """Any object with withdraw_interface() can be the routing table"""
        routing = Mock()
        supervisor = SessionSupervisor(self.scheduler, self.outbound, routing, session_count=1,
                                       parameters=BGPSessionParameters(hold_down_time=5))
        supervisor.start()

        for t in range(1, 20):
            supervisor.tick(t)

        routing.withdraw_interface.assert_called_once_with(0)

    def test_notification_sent_on_expiry(self):
        """The expired peer gets a Hold Timer Expired NOTIFICATION once"""
        self.supervisor.start()
        self.run_ticks(1, 60, answering=(0, 2))

        notifications = [m for m in self.outbound.drain() if m.msg_type == MSG_NOTIFICATION]

        self.assertEqual(len(notifications), 1)
        self.assertIsInstance(notifications[0], BGPNotification)
        self.assertEqual(notifications[0].error_code, ERR_HOLD_TIMER_EXPIRED)
        self.assertEqual(notifications[0].peering_interface, 1)
        self.assertEqual(notifications[0].peer_identifier, peer(1))

    def test_no_notification_when_disabled(self):
        """notify_on_expiry=False only withdraws"""
        supervisor = SessionSupervisor(self.scheduler, self.outbound, self.routing, session_count=1,
                                       parameters=BGPSessionParameters(hold_down_time=5),
                                       notify_on_expiry=False)
        supervisor.dedicate(0, peer(0))
        supervisor.start()
        for t in range(1, 10):
            supervisor.tick(t)

        self.assertEqual(self.routing.withdrawals, [0])
        self.assertFalse(any(m.msg_type == MSG_NOTIFICATION for m in self.outbound.drain()))

    def test_restart_clears_withdrawal_mark(self):
        """After a restart, a new expiry is withdrawn again"""
        self.supervisor.start()
        self.run_ticks(1, 40, answering=(0, 2))
        self.assertEqual(self.routing.withdrawals, [1])

        # Restarted at t=40, between ticks
        self.supervisor.session_for(1).start()
        self.supervisor.tick(41)
        self.assertFalse(self.supervisor.is_withdrawn(1))

        withdrawn = self.run_ticks(42, 100, answering=(0, 2))

        self.assertEqual(withdrawn, {70: [1]})
        self.assertEqual(self.routing.withdrawals, [1, 1])

    def test_stopped_session_not_withdrawn(self):
        """A stopped session keeps its validity and is not withdrawn"""
        self.supervisor.start()
        self.supervisor.tick(5)
        self.supervisor.session_for(2).stop()

        self.run_ticks(6, 100)

        self.assertEqual(self.routing.withdrawals, [0, 1])
        self.assertTrue(self.supervisor.session_for(2).is_session_valid())
        self.assertFalse(self.supervisor.is_withdrawn(2))

    def test_never_started_session_not_withdrawn(self):
        """Sessions that were never up are not withdrawn"""
        self.run_ticks(1, 100)
        self.assertEqual(self.routing.withdrawals, [])


class TestSupervisorMessages(SupervisorTestCase):
    """Test inbound dispatch and outbound resets"""

    def test_message_resets_hold_down(self):
        """A received message resets the originating session's HoldDown"""
        self.supervisor.start()
        self.supervisor.tick(10)
        self.supervisor.receive(BGPUpdate(peer(1), nlri=["203.0.113.0/24"]))
        self.supervisor.tick(12)

        self.assertEqual(self.supervisor.session_for(1).hold_down_deadline, 42)
        self.assertEqual(self.supervisor.session_for(0).hold_down_deadline, 30)
        self.assertEqual(self.supervisor.messages_received, 1)

    def test_message_on_expiry_tick_wins(self):
        """A message received on the tick the HoldDown would expire keeps the session"""
        self.supervisor.start()
        self.run_ticks(1, 29, answering=(0, 2))

        self.supervisor.receive(BGPKeepalive(peer(1)))
        withdrawn = self.supervisor.tick(30)

        self.assertEqual(withdrawn, [])
        self.assertTrue(self.supervisor.session_for(1).is_session_valid())
        self.assertEqual(self.supervisor.session_for(1).hold_down_deadline, 60)

    def test_message_after_expiry_does_not_revive(self):
        """Messages for an invalid session are no-ops"""
        self.supervisor.start()
        self.run_ticks(1, 30, answering=(0, 2))

        self.supervisor.receive(BGPKeepalive(peer(1)))
        self.supervisor.tick(31)

        session = self.supervisor.session_for(1)
        self.assertFalse(session.is_session_valid())
        self.assertEqual(session.state, STATE_INVALID)
        self.assertEqual(self.routing.withdrawals, [1])

    def test_unmatched_message_is_dropped(self):
        """Messages from unknown peers are ignored, not faults"""
        self.supervisor.start()
        self.supervisor.receive(BGPKeepalive("192.0.2.99"))
        self.supervisor.receive(BGPKeepalive())
        self.supervisor.tick(1)

        self.assertEqual(self.supervisor.messages_unmatched, 2)
        self.assertEqual(self.supervisor.messages_received, 0)
        self.assertEqual(self.supervisor.inbound.num_available(), 0)

    def test_undedicated_session_matches_no_peer(self):
        """A session with no bound peer ignores messages arriving on its interface"""
        supervisor = SessionSupervisor(
            VirtualScheduler(), OutboundChannel(), RoutingTable(), session_count=1,
            parameters=BGPSessionParameters(hold_down_time=30, keepalive_fraction=3),
        )
        supervisor.start()

        withdrawn = {}
        for t in range(1, 31):
            supervisor.receive(BGPKeepalive(peer(0), 0))
            result = supervisor.tick(t)
            if result:
                withdrawn[t] = result

        self.assertEqual(withdrawn, {30: [0]})
        self.assertEqual(supervisor.messages_unmatched, 30)
        self.assertEqual(supervisor.messages_received, 0)

    def test_on_message_callback(self):
        """The message interpreter sees every matched message"""
        handler = Mock()
        self.supervisor.on_message = handler
        self.supervisor.start()

        update = BGPUpdate(peer(0), nlri=["198.51.100.0/24"])
        self.supervisor.receive(update)
        self.supervisor.receive(BGPKeepalive("192.0.2.99"))
        self.supervisor.tick(1)

        handler.assert_called_once_with(self.supervisor.sessions[0], update)

    def test_send_resets_keepalive(self):
        """Sending to a peer resets that session's Keepalive timer"""
        self.supervisor.start()
        self.supervisor.tick(5)

        update = BGPUpdate(nlri=["198.51.100.0/24"])
        self.supervisor.send(0, update)

        self.assertEqual(update.peering_interface, 0)
        self.assertEqual(update.peer_identifier, peer(0))
        self.assertEqual(self.outbound.read(), update)
        self.assertEqual(self.supervisor.session_for(0).keepalive_deadline, 15)
        self.assertEqual(self.supervisor.session_for(1).keepalive_deadline, 10)

    def test_send_in_keepalive_tick(self):
        """A send in the same tick as the keepalive fire arms the timer once"""
        self.supervisor.start()
        self.supervisor.tick(10)
        self.outbound.drain()

        self.supervisor.send(0, BGPUpdate())

        self.assertEqual(self.supervisor.session_for(0).keepalive_deadline, 20)
        # 3 HoldDown + 3 Keepalive registrations
        self.assertEqual(self.scheduler.pending(), 6)

    def test_keepalives_reach_outbound_channel(self):
        """Sessions write their keepalives to the shared outbound channel"""
        self.supervisor.start()
        self.supervisor.tick(10)

        messages = self.outbound.drain()
        self.assertEqual(len(messages), 3)
        self.assertEqual(sorted(m.peering_interface for m in messages), [0, 1, 2])

    def test_negotiate_hold_time(self):
        """Negotiated hold time applies from the next re-arm"""
        self.supervisor.start()
        params = self.supervisor.negotiate_hold_time(0, 9)

        session = self.supervisor.session_for(0)
        self.assertEqual(params.hold_down_time, 9)
        self.assertEqual(session.hold_down_deadline, 30)

        session.reset_hold_down()
        self.assertEqual(session.hold_down_deadline, 9)

        with self.assertRaises(UnacceptableHoldTimeError):
            self.supervisor.negotiate_hold_time(1, 1)


class TestSupervisorTeardown(SupervisorTestCase):
    """Test close() and statistics"""

    def test_close_releases_timers(self):
        """Closing leaves no scheduled callbacks"""
        self.supervisor.start()
        self.supervisor.tick(5)
        self.supervisor.close()

        self.assertTrue(self.supervisor.closed)
        self.assertEqual(self.scheduler.pending(), 0)
        with self.assertRaises(SessionError):
            self.supervisor.tick(6)

        # Idempotent
        self.supervisor.close()

    def test_context_manager(self):
        """Leaving the with-block closes the control plane"""
        with self.supervisor as supervisor:
            supervisor.start()

        self.assertTrue(self.supervisor.closed)
        self.assertEqual(self.scheduler.pending(), 0)

    def test_stop(self):
        """stop() stops every session without invalidating it"""
        self.supervisor.start()
        self.supervisor.stop()

        self.assertFalse(self.supervisor.running)
        self.assertEqual(self.scheduler.pending(), 0)
        self.assertEqual(self.supervisor.get_valid_sessions(), [0, 1, 2])

    def test_statistics(self):
        """Statistics collection"""
        self.supervisor.start()
        self.run_ticks(1, 40, answering=(0,))

        stats = self.supervisor.get_statistics()

        self.assertEqual(stats['ticks'], 40)
        self.assertEqual(stats['time'], 40)
        self.assertEqual(stats['sessions'], 3)
        self.assertEqual(stats['valid_sessions'], 1)
        self.assertEqual(stats['withdrawals'], 2)
        self.assertEqual(stats['messages_received'], 40)
        self.assertEqual(len(stats['peers']), 3)
        self.assertEqual(stats['peers'][1]['state'], "Invalid")


if __name__ == '__main__':
    unittest.main()
