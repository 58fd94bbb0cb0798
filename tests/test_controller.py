"""Tests for VibeController, the facade used by front ends."""

from unittest.mock import Mock, patch

import pytest

from vibecanvas.core import VibeController
from vibecanvas.devices import ButtplugTransport, SimulatedDevice, SimulatedTransport
from vibecanvas.exceptions import (
    DeviceDispatchError,
    DeviceIndexError,
    NotConnectedError,
    PlaybackError,
    ServerConnectionError,
)
from vibecanvas.models import AppConfig, ConnectionState, PlaybackState
from vibecanvas.protocols import PlaybackEvent, PlaybackObserver


@pytest.mark.unit
class TestConnection:
    """Test connection operations through the controller."""

    def test_connect_uses_config_address(self, controller, transport):
        controller.connect()
        assert transport.address == AppConfig().server_address
        assert controller.state == ConnectionState.CONNECTED

    def test_connect_address_override(self, controller, transport):
        controller.connect("ws://10.0.0.2:12345")
        assert transport.address == "ws://10.0.0.2:12345"

    def test_connect_failure(self):
        controller = VibeController(transport_factory=lambda: SimulatedTransport(fail_connect=True))

        with pytest.raises(ServerConnectionError) as exc_info:
            controller.connect()

        assert controller.state == ConnectionState.DISCONNECTED
        assert exc_info.value.recovery_hint

    def test_scan_requires_connection(self, controller):
        with pytest.raises(NotConnectedError):
            controller.scan()

    def test_scan_populates_devices(self, connected_controller):
        assert [d.name for d in connected_controller.devices] == ["Sim A", "Sim B"]

    def test_default_transport_is_buttplug(self):
        config = AppConfig(client_name="Tester", request_timeout_s=1.5)
        controller = VibeController(config)

        transport = controller._create_buttplug_transport()

        assert isinstance(transport, ButtplugTransport)
        assert transport._client_name == "Tester"
        assert transport._request_timeout == 1.5

    def test_scan_window_from_config(self, transport):
        waits = []
        controller = VibeController(
            AppConfig(scan_window_s=0.5), transport_factory=lambda: transport, sleep=waits.append
        )
        controller.connect()
        controller.scan()
        assert waits == [0.5]


@pytest.mark.unit
class TestPlayback:
    """Test play/stop through the controller."""

    def test_play_requires_connection(self, controller, tickers, ramp_pattern):
        with pytest.raises(NotConnectedError):
            controller.play(ramp_pattern)
        assert tickers.tickers == []

    def test_play_without_devices(self, controller, tickers, ramp_pattern):
        controller.connect()

        with pytest.raises(PlaybackError.NoDevices):
            controller.play(ramp_pattern)

        assert tickers.tickers == []
        assert controller.playback_state == PlaybackState.IDLE

    def test_play_and_tick(self, connected_controller, tickers, clock, sim_devices, ramp_pattern):
        connected_controller.play(ramp_pattern)

        clock.advance(300)
        tickers.last.fire()

        assert connected_controller.is_playing
        assert sim_devices[0].last_level == pytest.approx(0.3)

    def test_tick_interval_from_config(self, transport, tickers, ramp_pattern):
        controller = VibeController(
            AppConfig(tick_interval_ms=50),
            transport_factory=lambda: transport,
            ticker_factory=tickers,
            sleep=lambda s: None,
        )
        controller.connect()
        controller.scan()

        controller.play(ramp_pattern)

        assert tickers.last.interval_s == pytest.approx(0.05)

    def test_stop(self, connected_controller, tickers, sim_devices, ramp_pattern):
        connected_controller.play(ramp_pattern)

        connected_controller.stop()

        assert not connected_controller.is_playing
        assert tickers.last.cancelled
        assert all(d.stop_count == 1 for d in sim_devices)

    def test_stop_when_idle_is_safe(self, controller):
        controller.stop()
        controller.stop()

    def test_playback_observer(self, connected_controller, ramp_pattern):
        observer = Mock(spec=PlaybackObserver)
        connected_controller.register_playback_observer(observer)

        connected_controller.play(ramp_pattern)

        observer.on_playback_event.assert_called_once_with(PlaybackEvent.STARTED, ramp_pattern)


@pytest.mark.unit
class TestDisconnectCoupling:
    """Test that losing or closing the session ends playback."""

    def test_session_lost_halts_playback(self, connected_controller, transport, tickers, clock, sim_devices, ramp_pattern):
        connected_controller.play(ramp_pattern)
        ticker = tickers.last

        transport.drop_session("server closed")

        assert connected_controller.state == ConnectionState.DISCONNECTED
        assert connected_controller.devices == []
        assert not connected_controller.is_playing
        assert ticker.cancelled

        # A tick that was already pending must not dispatch
        clock.advance(100)
        ticker.fire()
        assert all(d.levels == [] for d in sim_devices)

    def test_disconnect_stops_devices_first(self, connected_controller, tickers, sim_devices, ramp_pattern):
        connected_controller.play(ramp_pattern)

        connected_controller.disconnect()

        assert tickers.last.cancelled
        assert all(d.stop_count == 1 for d in sim_devices)
        assert connected_controller.state == ConnectionState.DISCONNECTED
        assert connected_controller.devices == []

    def test_disconnect_is_idempotent(self, connected_controller):
        connected_controller.disconnect()
        connected_controller.disconnect()
        assert connected_controller.state == ConnectionState.DISCONNECTED

    def test_context_manager_disconnects(self, transport):
        with VibeController(transport_factory=lambda: transport, sleep=lambda s: None) as controller:
            controller.connect()

        assert controller.state == ConnectionState.DISCONNECTED
        assert not transport.is_connected

    def test_reconnect_during_slow_teardown_keeps_new_session(self, clock, tickers, ramp_pattern):
        replacement = {}

        def reconnect_and_play():
            controller.connect()
            controller.scan()
            replacement["session"] = controller.play(ramp_pattern)

        first = ReconnectOnClose([SimulatedDevice(0, "Old")], during_close=reconnect_and_play)
        transports = iter([first, SimulatedTransport([SimulatedDevice(0, "New")])])
        controller = VibeController(
            transport_factory=lambda: next(transports),
            clock=clock,
            ticker_factory=tickers,
            sleep=lambda seconds: None,
        )
        states = []
        controller.on_state_changed(states.append)
        controller.connect()
        controller.scan()
        old_session = controller.play(ramp_pattern)
        states.clear()

        first.drop_session("server closed")

        session = replacement["session"]
        assert not old_session.is_active
        assert session.is_active
        assert controller.scheduler.session is session
        assert controller.state == ConnectionState.CONNECTED
        assert states[0] == ConnectionState.DISCONNECTED
        assert states[-1] == ConnectionState.CONNECTED
        controller.disconnect()


class ReconnectOnClose(SimulatedTransport):
    """Runs a callback from inside disconnect(), standing in for a slow teardown."""

    def __init__(self, devices, during_close):
        super().__init__(devices)
        self.during_close = during_close

    def disconnect(self):
        callback, self.during_close = self.during_close, None
        if callback is not None:
            callback()
        super().disconnect()


@pytest.mark.unit
class TestSetVibration:
    """Test the direct single-shot override."""

    def test_sets_level(self, connected_controller, sim_devices):
        connected_controller.set_vibration(40, device_index=1)

        assert sim_devices[1].levels == [pytest.approx(0.4)]
        assert sim_devices[0].levels == []

    def test_default_device_is_first(self, connected_controller, sim_devices):
        connected_controller.set_vibration(100)
        assert sim_devices[0].last_level == pytest.approx(1.0)

    @pytest.mark.parametrize("intensity,expected", [(-20, 0.0), (150, 1.0)])
    def test_clamps(self, connected_controller, sim_devices, intensity, expected):
        connected_controller.set_vibration(intensity)
        assert sim_devices[0].last_level == pytest.approx(expected)

    def test_requires_connection(self, controller):
        with pytest.raises(NotConnectedError):
            controller.set_vibration(50)

    def test_bad_index(self, connected_controller):
        with pytest.raises(DeviceIndexError) as exc_info:
            connected_controller.set_vibration(50, device_index=5)
        assert exc_info.value.device_count == 2

    def test_rejected_command(self, connected_controller, sim_devices):
        sim_devices[0].fail = True

        with pytest.raises(DeviceDispatchError) as exc_info:
            connected_controller.set_vibration(50)

        assert exc_info.value.device_name == "Sim A"
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_bypasses_scheduler(self, connected_controller, tickers):
        connected_controller.set_vibration(10)
        assert tickers.tickers == []


@pytest.mark.unit
class TestSubscriptions:
    """Test the two callback registrations."""

    def test_state_callback(self, controller):
        seen = []
        controller.on_state_changed(seen.append)

        controller.connect()
        controller.scan()
        controller.disconnect()

        assert seen == [
            ConnectionState.CONNECTING,
            ConnectionState.CONNECTED,
            ConnectionState.SCANNING,
            ConnectionState.CONNECTED,
            ConnectionState.DISCONNECTED,
        ]

    def test_devices_callback(self, controller, transport):
        seen = []
        controller.on_devices_changed(lambda devices: seen.append([d.name for d in devices]))

        controller.connect()
        controller.scan()
        transport.remove_device(0)

        assert seen[-2] == ["Sim A", "Sim B"]
        assert seen[-1] == ["Sim B"]

    def test_unsubscribe(self, controller):
        seen = []
        unsubscribe = controller.on_state_changed(seen.append)
        unsubscribe()

        controller.connect()

        assert seen == []

    def test_callback_may_query_controller(self, controller):
        seen = []
        controller.on_state_changed(lambda state: seen.append((state, controller.state)))

        controller.connect()

        assert seen[-1] == (ConnectionState.CONNECTED, ConnectionState.CONNECTED)

    def test_failing_callback_is_isolated(self, controller):
        seen = []
        controller.on_state_changed(Mock(side_effect=RuntimeError("boom")))
        controller.on_state_changed(seen.append)

        controller.connect()

        assert ConnectionState.CONNECTED in seen
        assert controller.state == ConnectionState.CONNECTED

    def test_default_transport_factory_used(self):
        with patch.object(VibeController, "_create_buttplug_transport") as create:
            create.return_value = SimulatedTransport()
            controller = VibeController()
            controller.connect()

        create.assert_called_once()
        assert controller.state == ConnectionState.CONNECTED
        controller.disconnect()
