"""Tests for the connection state machine, driven through the simulated transport."""

from unittest.mock import Mock

import pytest

from vibecanvas.core import ConnectionStateMachine
from vibecanvas.devices import (
    DeviceAdded,
    DeviceRemoved,
    SessionDisconnected,
    SimulatedDevice,
    SimulatedTransport,
)
from vibecanvas.exceptions import NotConnectedError, ServerConnectionError, TransportError
from vibecanvas.models import ConnectionState
from vibecanvas.protocols import ConnectionObserver, DeviceObserver

ADDRESS = "ws://127.0.0.1:12345"


@pytest.fixture
def machine(transport):
    return ConnectionStateMachine(lambda: transport, sleep=lambda seconds: None)


@pytest.fixture
def state_observer(machine):
    observer = Mock(spec=ConnectionObserver)
    machine.register_connection_observer(observer)
    return observer


@pytest.fixture
def device_observer(machine):
    observer = Mock(spec=DeviceObserver)
    machine.register_device_observer(observer)
    return observer


def states(observer):
    return [c.args[0] for c in observer.on_connection_state_changed.call_args_list]


class CloseRecordingTransport(SimulatedTransport):
    """Notes in `calls` when disconnect() runs."""

    def __init__(self, devices, calls):
        super().__init__(list(devices))
        self.calls = calls

    def disconnect(self):
        self.calls.append("close")
        super().disconnect()


@pytest.mark.unit
class TestConnect:
    """Test connect() transitions."""

    def test_initial_state(self, machine):
        assert machine.state == ConnectionState.DISCONNECTED
        assert machine.devices == []
        assert not machine.is_connected

    def test_connect_success(self, machine, transport, state_observer):
        machine.connect(ADDRESS)

        assert machine.state == ConnectionState.CONNECTED
        assert transport.address == ADDRESS
        assert states(state_observer) == [ConnectionState.CONNECTING, ConnectionState.CONNECTED]

    def test_connect_when_connected_is_noop(self):
        factory = Mock(return_value=SimulatedTransport())
        machine = ConnectionStateMachine(factory, sleep=lambda s: None)
        machine.connect(ADDRESS)

        machine.connect(ADDRESS)

        assert factory.call_count == 1
        assert machine.state == ConnectionState.CONNECTED

    def test_connect_failure_reverts(self):
        machine = ConnectionStateMachine(lambda: SimulatedTransport(fail_connect=True))
        observer = Mock(spec=ConnectionObserver)
        machine.register_connection_observer(observer)

        with pytest.raises(ServerConnectionError) as exc_info:
            machine.connect(ADDRESS)

        assert machine.state == ConnectionState.DISCONNECTED
        assert states(observer) == [ConnectionState.CONNECTING, ConnectionState.DISCONNECTED]
        assert exc_info.value.address == ADDRESS
        assert exc_info.value.recoverable
        assert isinstance(exc_info.value.__cause__, ConnectionRefusedError)

    def test_connect_can_be_retried(self):
        transports = [SimulatedTransport(fail_connect=True), SimulatedTransport()]
        machine = ConnectionStateMachine(lambda: transports.pop(0))

        with pytest.raises(ServerConnectionError):
            machine.connect(ADDRESS)
        machine.connect(ADDRESS)

        assert machine.is_connected

    def test_connect_picks_up_known_devices(self):
        transport = SimulatedTransport()
        machine = ConnectionStateMachine(lambda: transport)
        # Device already known to the server before we connect
        transport._devices[3] = SimulatedDevice(3, "Early Bird")

        machine.connect(ADDRESS)

        assert [d.name for d in machine.devices] == ["Early Bird"]


@pytest.mark.unit
class TestScan:
    """Test scan() transitions."""

    def test_scan_requires_connection(self, machine):
        with pytest.raises(NotConnectedError):
            machine.scan()
        assert machine.state == ConnectionState.DISCONNECTED

    def test_scan_finds_devices(self, machine, transport, state_observer, device_observer):
        machine.connect(ADDRESS)
        state_observer.reset_mock()

        machine.scan()

        assert [d.name for d in machine.devices] == ["Sim A", "Sim B"]
        assert machine.state == ConnectionState.CONNECTED
        assert states(state_observer) == [ConnectionState.SCANNING, ConnectionState.CONNECTED]
        assert not transport.scanning
        last_devices = device_observer.on_devices_changed.call_args.args[0]
        assert [d.name for d in last_devices] == ["Sim A", "Sim B"]

    def test_scan_waits_the_window(self, transport):
        waits = []
        machine = ConnectionStateMachine(lambda: transport, scan_window_s=2.5, sleep=waits.append)
        machine.connect(ADDRESS)

        machine.scan()

        assert waits == [2.5]

    def test_state_is_scanning_during_window(self, transport):
        seen = []
        machine = ConnectionStateMachine(lambda: transport, sleep=lambda s: seen.append(machine.state))
        machine.connect(ADDRESS)

        machine.scan()

        assert seen == [ConnectionState.SCANNING]

    def test_scan_while_scanning_is_ignored(self, transport):
        nested = []

        def sleep(seconds):
            nested.append(machine.state)
            machine.scan()

        machine = ConnectionStateMachine(lambda: transport, sleep=sleep)
        machine.connect(ADDRESS)

        machine.scan()

        assert nested == [ConnectionState.SCANNING]
        assert machine.state == ConnectionState.CONNECTED

    def test_disconnect_during_scan_ends_it(self, transport):
        machine = ConnectionStateMachine(lambda: transport, sleep=lambda s: machine.disconnect())
        machine.connect(ADDRESS)

        machine.scan()

        assert machine.state == ConnectionState.DISCONNECTED
        assert machine.devices == []

    def test_start_scanning_failure_reverts(self):
        transport = SimulatedTransport()
        transport.start_scanning = Mock(side_effect=RuntimeError("adapter off"))
        machine = ConnectionStateMachine(lambda: transport, sleep=lambda s: None)
        machine.connect(ADDRESS)

        with pytest.raises(TransportError):
            machine.scan()

        assert machine.state == ConnectionState.CONNECTED


@pytest.mark.unit
class TestTransportEvents:
    """Test the event-driven transitions."""

    def test_device_added_updates_list_only(self, machine, transport, state_observer, device_observer):
        machine.connect(ADDRESS)
        state_observer.reset_mock()

        transport.add_device(SimulatedDevice(7, "Late"))

        assert [d.index for d in machine.devices] == [7]
        assert machine.state == ConnectionState.CONNECTED
        state_observer.on_connection_state_changed.assert_not_called()
        device_observer.on_devices_changed.assert_called()

    def test_duplicate_add_ignored(self, machine):
        machine.connect(ADDRESS)
        device = SimulatedDevice(1, "Once")

        machine.handle_event(DeviceAdded(device))
        machine.handle_event(DeviceAdded(device))

        assert machine.devices == [device]

    def test_device_removed(self, machine, transport, device_observer):
        machine.connect(ADDRESS)
        machine.scan()
        device_observer.reset_mock()

        transport.remove_device(0)

        assert [d.name for d in machine.devices] == ["Sim B"]
        device_observer.on_devices_changed.assert_called_once()

    def test_remove_unknown_device_is_quiet(self, machine, device_observer):
        machine.connect(ADDRESS)
        device_observer.reset_mock()

        machine.handle_event(DeviceRemoved(SimulatedDevice(9, "Ghost")))

        device_observer.on_devices_changed.assert_not_called()

    def test_events_ignored_when_disconnected(self, machine):
        machine.handle_event(DeviceAdded(SimulatedDevice(0, "Stray")))
        assert machine.devices == []

    def test_session_lost_clears_everything(self, machine, transport, state_observer, device_observer):
        machine.connect(ADDRESS)
        machine.scan()
        state_observer.reset_mock()
        device_observer.reset_mock()

        transport.drop_session("server closed")

        assert machine.state == ConnectionState.DISCONNECTED
        assert machine.devices == []
        state_observer.on_connection_state_changed.assert_called_once_with(ConnectionState.DISCONNECTED)
        device_observer.on_devices_changed.assert_called_once_with([])

    def test_session_lost_during_scan(self, transport):
        machine = ConnectionStateMachine(lambda: transport, sleep=lambda s: transport.drop_session())
        machine.connect(ADDRESS)

        machine.scan()

        assert machine.state == ConnectionState.DISCONNECTED

    def test_session_end_hook_runs_before_observers(self, transport):
        calls = []
        machine = ConnectionStateMachine(
            lambda: transport,
            sleep=lambda seconds: None,
            on_session_end=lambda: calls.append(("hook", machine.state)),
        )
        observer = Mock(spec=ConnectionObserver)
        observer.on_connection_state_changed.side_effect = lambda state: calls.append(("notify", state))
        machine.register_connection_observer(observer)
        machine.connect(ADDRESS)
        calls.clear()

        transport.drop_session("server closed")

        assert calls == [("hook", ConnectionState.DISCONNECTED), ("notify", ConnectionState.DISCONNECTED)]

    def test_session_lost_notifies_before_closing_transport(self, sim_devices):
        calls = []
        transport = CloseRecordingTransport(sim_devices, calls)
        machine = ConnectionStateMachine(lambda: transport, sleep=lambda seconds: None)
        observer = Mock(spec=ConnectionObserver)
        observer.on_connection_state_changed.side_effect = lambda state: calls.append(state)
        machine.register_connection_observer(observer)
        machine.connect(ADDRESS)
        calls.clear()

        transport.drop_session("server closed")

        assert calls == [ConnectionState.DISCONNECTED, "close"]

    def test_session_lost_twice_notifies_once(self, machine, state_observer):
        machine.connect(ADDRESS)
        state_observer.reset_mock()

        machine.handle_event(SessionDisconnected("gone"))
        machine.handle_event(SessionDisconnected("gone again"))

        assert state_observer.on_connection_state_changed.call_count == 1


@pytest.mark.unit
class TestDisconnect:
    """Test disconnect()."""

    def test_disconnect(self, machine, transport, state_observer):
        machine.connect(ADDRESS)
        machine.scan()

        machine.disconnect()

        assert machine.state == ConnectionState.DISCONNECTED
        assert machine.devices == []
        assert not transport.is_connected
        assert states(state_observer)[-1] == ConnectionState.DISCONNECTED

    def test_disconnect_runs_session_end_hook_once(self, transport):
        hook = Mock()
        machine = ConnectionStateMachine(lambda: transport, sleep=lambda seconds: None, on_session_end=hook)
        machine.disconnect()
        hook.assert_not_called()

        machine.connect(ADDRESS)
        machine.disconnect()
        machine.disconnect()

        hook.assert_called_once_with()

    def test_disconnect_is_idempotent(self, machine, state_observer):
        machine.disconnect()
        machine.connect(ADDRESS)
        machine.disconnect()
        state_observer.reset_mock()

        machine.disconnect()

        state_observer.on_connection_state_changed.assert_not_called()

    def test_events_after_disconnect_are_dropped(self, machine, transport):
        machine.connect(ADDRESS)
        machine.disconnect()

        transport.add_device(SimulatedDevice(4, "After"))

        assert machine.devices == []

    def test_device_list_is_a_copy(self, machine):
        machine.connect(ADDRESS)
        machine.scan()

        machine.devices.clear()

        assert len(machine.devices) == 2
