"""Tests for the request gateway."""

import os

import pytest
from conftest import FakeHelper, FakeSpawner

from pyrevive.errors import AuthenticationError, HelperError, HelperFailure, ValidationError
from pyrevive.gateway import SnapshotGateway, coerce_pid
from pyrevive.orchestrator import RestoreOrchestrator
from pyrevive.procfs import DescriptorExtractor
from pyrevive.registry import SnapshotRegistry
from pyrevive.service import SnapshotService

TOKEN = "s3cret"


def make_gateway(proc_root, helper=None, spawner=None, diagnostic_paths=()) -> SnapshotGateway:
    registry = SnapshotRegistry()
    helper = helper or FakeHelper()
    orchestrator = RestoreOrchestrator(
        registry, helper, spawner=spawner or FakeSpawner(), environment=lambda: {}
    )
    service = SnapshotService(
        registry,
        DescriptorExtractor(proc_root),
        helper,
        orchestrator,
        terminate=lambda pid, timeout: None,
    )
    return SnapshotGateway(service, TOKEN, diagnostic_paths)


class TestCoercePid:
    def test_accepts_ints_and_digit_strings(self):
        assert coerce_pid(12) == 12
        assert coerce_pid(" 12 ") == 12
        assert coerce_pid(None, allow_zero=True) == 0
        assert coerce_pid("0", allow_zero=True) == 0
        assert coerce_pid("", allow_zero=True) == 0
        assert coerce_pid("  ", allow_zero=True) == 0

    @pytest.mark.parametrize("value", [None, "", 0, -1, "abc", "1.5", 2.0, True, [1]])
    def test_rejects(self, value):
        with pytest.raises(ValidationError):
            coerce_pid(value)


def test_health_needs_no_token(make_proc):
    gateway = make_gateway(make_proc(1))

    assert gateway.health() == {"ok": True, "helper": "/opt/snapshot_user", "use_sudo": False}


@pytest.mark.parametrize("token", [None, "", "wrong"])
def test_requests_need_the_secret(make_proc, token):
    gateway = make_gateway(make_proc(1))

    with pytest.raises(AuthenticationError):
        gateway.saved(token)
    with pytest.raises(AuthenticationError):
        gateway.forget(token, 1)
    with pytest.raises(AuthenticationError):
        gateway.logs(token)


@pytest.mark.asyncio
async def test_unauthenticated_snapshot_has_no_side_effects(make_proc):
    helper = FakeHelper()
    gateway = make_gateway(make_proc(1, cmdline=b"x\0"), helper=helper)

    with pytest.raises(AuthenticationError):
        await gateway.snapshot("wrong", 1)

    assert helper.snapshot_calls == []


@pytest.mark.asyncio
async def test_snapshot_payload(make_proc):
    root = make_proc(
        1234, cmdline=b"/usr/bin/foo\0--bar\0", exe="/usr/bin/foo", fd0="/dev/pts/3"
    )
    gateway = make_gateway(root)

    payload = await gateway.snapshot(TOKEN, "1234")

    assert payload == {
        "ok": True,
        "out": "OK snapshot 1234",
        "kill_error": None,
        "saved": {
            "oldpid": 1234,
            "name": "/usr/bin/foo",
            "tty": "/dev/pts/3",
            "exe": "/usr/bin/foo",
        },
    }
    saved = gateway.saved(TOKEN)["saved"]
    assert [entry["oldpid"] for entry in saved] == [1234]


@pytest.mark.asyncio
async def test_restore_payload(make_proc):
    root = make_proc(1234, cmdline=b"/usr/bin/foo\0")
    gateway = make_gateway(root, spawner=FakeSpawner())
    await gateway.snapshot(TOKEN, 1234)

    payload = await gateway.restore(TOKEN, 1234, 0)

    assert payload["ok"]
    assert payload["spawned"]
    assert payload["strategy"] == "headless"
    assert payload["spawned_pid"] > 0
    assert gateway.saved(TOKEN) == {"saved": []}


@pytest.mark.asyncio
async def test_restore_with_empty_newpid_relaunches(make_proc):
    helper = FakeHelper()
    gateway = make_gateway(make_proc(1234, cmdline=b"/usr/bin/foo\0"), helper=helper)
    await gateway.snapshot(TOKEN, 1234)

    payload = await gateway.restore(TOKEN, "1234", "")

    assert payload["spawned"]
    assert helper.restore_calls == [(1234, payload["spawned_pid"])]


@pytest.mark.asyncio
async def test_restore_without_record_is_validation_error(make_proc):
    helper = FakeHelper()
    gateway = make_gateway(make_proc(1), helper=helper)

    with pytest.raises(ValidationError) as excinfo:
        await gateway.restore(TOKEN, 1234, None)

    status, body = SnapshotGateway.error_payload(excinfo.value)
    assert status == 400
    assert "1234" in body["error"]
    assert helper.restore_calls == []


def test_error_payload_for_helper_error():
    error = HelperError(
        HelperFailure.NONZERO_EXIT,
        ("/opt/snapshot_user", "snapshot", "12"),
        stdout="",
        stderr="open /dev/snapshotctl failed: Permission denied\n",
        exit_status=3,
    )

    status, body = SnapshotGateway.error_payload(error)

    assert status == 500
    assert body["error"] == "snapshot failed"
    assert body["reason"] == "nonzero-exit"
    assert body["detail"] == "open /dev/snapshotctl failed: Permission denied"


def test_error_payload_for_timeout_uses_message():
    error = HelperError(
        HelperFailure.TIMEOUT,
        ("sudo", "/opt/snapshot_user", "restore", "12", "0"),
        message="helper restore timed out after 20s",
    )

    status, body = SnapshotGateway.error_payload(error)

    assert status == 500
    assert body["error"] == "restore failed"
    assert body["detail"] == "helper restore timed out after 20s"


def test_error_payload_for_auth():
    assert SnapshotGateway.error_payload(AuthenticationError("nope")) == (
        401,
        {"error": "unauthorized"},
    )


@pytest.mark.asyncio
async def test_forget(make_proc):
    gateway = make_gateway(make_proc(7, cmdline=b"seven\0"))
    await gateway.snapshot(TOKEN, 7)

    assert gateway.forget(TOKEN, 7) == {"ok": True, "removed": True}
    assert gateway.forget(TOKEN, 7) == {"ok": True, "removed": False}


def test_logs_reads_each_path(make_proc, tmp_path):
    helper_log = tmp_path / "snapshot_user.log"
    helper_log.write_text("[2024-01-01 10:00:00] restore OK 1 -> 2\n")
    gateway = make_gateway(
        make_proc(1),
        diagnostic_paths=(("helper", str(helper_log)), ("restore_out", str(tmp_path / "missing"))),
    )

    logs = gateway.logs(TOKEN)

    assert logs == {"helper": "[2024-01-01 10:00:00] restore OK 1 -> 2\n", "restore_out": ""}


def test_processes_lists_this_process(make_proc):
    gateway = make_gateway(make_proc(1))

    procs = gateway.processes(TOKEN)["procs"]

    assert any(p["pid"] == os.getpid() for p in procs)
