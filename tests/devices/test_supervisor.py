from __future__ import annotations

from datetime import datetime

from attendance_relay.core.enums import ConnectionStatus
from attendance_relay.devices.listener import DeviceListener
from attendance_relay.devices.model import DeviceEndpoint, RawLog
from attendance_relay.devices.supervisor import DeviceSupervisor

from tests.fakes import DriverQueue, FakeDriver

ENDPOINT = DeviceEndpoint(name="Front Gate", address="192.168.1.201", port=4370)


class RecordingListener(DeviceListener):
    def __init__(self):
        self.events = []
        self.disconnects = 0
        self.verifies = []

    def on_attendance(self, device, event):
        self.events.append(event)

    def on_disconnected(self, device):
        self.disconnects += 1

    def on_verify(self, device, user_id):
        self.verifies.append(user_id)


def _supervisor(*drivers, listener=None):
    sleeps = []
    factory = DriverQueue(*drivers)
    sup = DeviceSupervisor(ENDPOINT, factory, listener, reconnect_pause=1.0, sleep=sleeps.append)
    return sup, factory, sleeps


def test_connect_success_marks_connected_and_records_serial():
    sup, factory, _ = _supervisor(FakeDriver(serial="ABC123"))

    assert sup.connect() is True

    conn = sup.connection
    assert conn.status is ConnectionStatus.CONNECTED
    assert conn.serial_number == "ABC123"
    assert conn.last_seen is not None
    assert conn.last_error is None
    assert factory.created[0].connected_to == ("192.168.1.201", 4370)


def test_connect_failure_returns_false_and_keeps_error():
    sup, _, _ = _supervisor(FakeDriver(connect_ok=False))

    assert sup.connect() is False
    assert sup.connection.status is ConnectionStatus.DISCONNECTED
    assert "Handshake" in sup.connection.last_error


def test_connect_without_driver_does_not_raise():
    sup, _, _ = _supervisor()

    assert sup.connect() is False
    assert "No terminal driver" in sup.connection.last_error


def test_connect_driver_exception_is_contained():
    sup, _, _ = _supervisor(FakeDriver(connect_error=OSError("no route to host")))

    assert sup.connect() is False
    assert "no route to host" in sup.connection.last_error


def test_connect_releases_previous_driver_first():
    first, second = FakeDriver(), FakeDriver()
    sup, _, _ = _supervisor(first, second)

    sup.connect()
    sup.connect()

    assert first.disconnect_calls == 1
    assert sup.is_connected


def test_disconnect_is_idempotent():
    driver = FakeDriver()
    sup, _, _ = _supervisor(driver)
    sup.connect()

    sup.disconnect()
    sup.disconnect()

    assert driver.disconnect_calls == 1
    assert sup.connection.status is ConnectionStatus.DISCONNECTED


def test_ping_never_changes_status():
    driver = FakeDriver()
    sup, _, _ = _supervisor(driver)
    sup.connect()

    driver.ping_ok = False
    assert sup.ping() is False
    assert sup.connection.status is ConnectionStatus.CONNECTED


def test_ping_refreshes_last_seen():
    stamps = iter([datetime(2026, 3, 2, 8, 0), datetime(2026, 3, 2, 8, 5)])
    sup = DeviceSupervisor(ENDPOINT, DriverQueue(FakeDriver()), clock=lambda: next(stamps), sleep=lambda s: None)
    sup.connect()

    assert sup.ping() is True
    assert sup.connection.last_seen == datetime(2026, 3, 2, 8, 5)


def test_ping_when_disconnected_is_false():
    sup, _, _ = _supervisor()
    assert sup.ping() is False


def test_reconnect_pauses_between_disconnect_and_connect():
    first, second = FakeDriver(), FakeDriver(serial="SN-2")
    sup, _, sleeps = _supervisor(first, second)
    sup.connect()

    assert sup.reconnect() is True
    assert sleeps == [1.0]
    assert first.disconnect_calls == 1
    assert sup.connection.serial_number == "SN-2"


def test_driver_disconnect_callback_marks_disconnected_and_notifies():
    listener = RecordingListener()
    driver = FakeDriver()
    sup, _, _ = _supervisor(driver, listener=listener)
    sup.connect()

    driver.emit_disconnected()

    assert sup.connection.status is ConnectionStatus.DISCONNECTED
    assert listener.disconnects == 1


def test_callbacks_from_released_driver_are_ignored():
    listener = RecordingListener()
    old, new = FakeDriver(), FakeDriver()
    sup, _, _ = _supervisor(old, new, listener=listener)
    sup.connect()
    sup.connect()

    old.emit_disconnected()
    old.emit_attendance("7", datetime(2026, 3, 2, 8, 0))

    assert sup.is_connected
    assert listener.disconnects == 0
    assert listener.events == []


def test_attendance_callback_is_tagged_with_device():
    listener = RecordingListener()
    driver = FakeDriver()
    sup, _, _ = _supervisor(driver, listener=listener)
    sup.connect()

    driver.emit_attendance("42", datetime(2026, 3, 2, 8, 3), valid=False, att_state=1, verify=15)

    [event] = listener.events
    assert event.employee_id == "42"
    assert event.device_name == "Front Gate"
    assert event.device_address == "192.168.1.201"
    assert event.valid is False
    assert event.attendance_state == 1
    assert event.att_state_description == "Check-Out"
    assert event.verify_method_description == "Unknown(15)"


def test_listener_errors_do_not_escape_driver_thread():
    class Broken(DeviceListener):
        def on_verify(self, device, user_id):
            raise RuntimeError("boom")

    driver = FakeDriver()
    sup, _, _ = _supervisor(driver, listener=Broken())
    sup.connect()

    driver.handlers.on_verify(5)


def test_read_backlog_tags_device_and_is_empty_when_disconnected():
    driver = FakeDriver(backlog=[RawLog(employee_id="1", event_time=datetime(2026, 3, 1, 8, 0))])
    sup, _, _ = _supervisor(driver)

    assert sup.read_backlog() == []

    sup.connect()
    [log] = sup.read_backlog()
    assert log.device_name == "Front Gate"
    assert log.device_address == "192.168.1.201"


def test_read_backlog_errors_return_empty():
    class BrokenBacklog(FakeDriver):
        def read_backlog(self):
            raise OSError("timed out")

    sup, _, _ = _supervisor(BrokenBacklog())
    sup.connect()

    assert sup.read_backlog() == []


def test_device_info_uses_endpoint_identity():
    sup, _, _ = _supervisor(FakeDriver(serial="X9"))
    assert sup.device_info() is None

    sup.connect()
    info = sup.device_info()
    assert info.name == "Front Gate"
    assert info.port == 4370
    assert info.serial_number == "X9"
