"""
Router Simulation Tests

End-to-end runs of the control plane with simulated peers, the asyncio
real-time clock and the command line runner.
"""

import asyncio
import pytest

from bgpsession import Simulation, BGPSessionParameters, run_clock
from bgpsession.__main__ import main
from bgpsession.errors import UnknownInterfaceError
from bgpsession.constants import *


def make_simulation(**kwargs):
    return Simulation(
        session_count=3,
        parameters=BGPSessionParameters(hold_down_time=30, keepalive_fraction=3),
        **kwargs
    )


class TestSimulation:
    """Test single-router runs in virtual time"""

    def test_all_peers_answering(self):
        """Answering peers keep every session valid"""
        sim = make_simulation()
        stats = sim.run(200)

        assert stats['time'] == 200
        assert stats['valid_sessions'] == 3
        assert stats['withdrawals'] == 0
        assert sim.routing_table.withdrawals == []

    def test_silent_peer(self):
        """A silent peer's session expires once and its routes are withdrawn"""
        sim = make_simulation(silent_interfaces=[1])
        sim.setup()
        sim.routing_table.install_route("203.0.113.0/24", 1)

        stats = sim.run(200)

        assert stats['valid_sessions'] == 2
        assert stats['withdrawals'] == 1
        assert stats['silent_interfaces'] == [1]
        assert sim.routing_table.withdrawals == [1]
        assert sim.routing_table.lookup("203.0.113.0/24") is None
        assert sim.supervisor.session_for(1).state == STATE_INVALID

        # Keepalives at t=10 and t=20 only, then a NOTIFICATION
        assert len(sim.keepalives_sent(1)) == 2
        notifications = [m for m in sim.sent_log if m.msg_type == MSG_NOTIFICATION]
        assert len(notifications) == 1
        assert notifications[0].peering_interface == 1

    def test_keepalive_cadence(self):
        """An answering peer receives a keepalive every keepalive interval"""
        sim = make_simulation()
        sim.run(200)

        assert len(sim.keepalives_sent(0)) == 20

    def test_dedicated_peers(self):
        """setup() dedicates each session to its simulated peer"""
        sim = make_simulation()
        sim.setup()

        for interface in range(3):
            assert sim.supervisor.session_for(interface).is_this_session(sim.peers[interface])

    def test_revive_silent_peer(self):
        """A peer that answers again does not bring back an invalid session"""
        sim = make_simulation(silent_interfaces=[2])
        sim.run(50)
        sim.revive(2)
        sim.run(100)

        assert sim.supervisor.session_for(2).state == STATE_INVALID
        assert sim.routing_table.withdrawals == [2]

    def test_silence_unknown_interface(self):
        """Only configured interfaces can be silenced"""
        sim = make_simulation()
        with pytest.raises(UnknownInterfaceError):
            sim.silence(7)

    def test_bad_tick_period(self):
        """The clock period must be positive"""
        with pytest.raises(ValueError):
            make_simulation(tick_period=0)
        with pytest.raises(ValueError):
            make_simulation(tick_period=float("nan"))

    def test_close(self):
        """Closing the simulation leaves no timers behind"""
        sim = make_simulation()
        sim.run(20)
        sim.close()

        assert sim.scheduler.pending() == 0


class TestRealTimeClock:
    """Test the asyncio clock driver"""

    def test_run_clock(self):
        """The asyncio clock pulses until the simulated duration"""
        sim = make_simulation(silent_interfaces=[0])
        stats = asyncio.run(run_clock(sim, period=0, duration=40))

        assert stats['time'] == 40
        assert stats['ticks'] == 40
        assert stats['withdrawals'] == 1
        assert sim.routing_table.withdrawals == [0]

    def test_run_clock_cancel(self):
        """Cancelling the clock task propagates CancelledError"""
        sim = make_simulation()

        async def cancel_soon():
            task = asyncio.create_task(run_clock(sim, period=0.01, duration=10_000))
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(cancel_soon())
        assert sim.time > 0


class TestCommandLine:
    """Test the simulation runner"""

    def test_main(self):
        """A valid run exits with 0"""
        assert main(["--sessions", "2", "--hold-down-time", "30",
                     "--silent-interface", "0", "--duration", "60",
                     "--log-level", "ERROR"]) == 0

    def test_main_realtime(self):
        """--realtime drives the run through asyncio"""
        assert main(["--sessions", "1", "--duration", "5", "--realtime", "0",
                     "--log-level", "ERROR"]) == 0

    def test_main_rejects_bad_parameters(self, capsys):
        """Non-positive parameters exit with 1"""
        assert main(["--hold-down-time", "-1", "--log-level", "ERROR"]) == 1
        assert "Error" in capsys.readouterr().out

        assert main(["--sessions", "0", "--log-level", "ERROR"]) == 1

    def test_main_rejects_nan_hold_down(self, capsys):
        """argparse accepts "nan" as a float; the run still refuses it"""
        assert main(["--hold-down-time", "nan", "--log-level", "ERROR"]) == 1
        assert "hold_down_time" in capsys.readouterr().out


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
