"""Mount controller: live state queries gate every mount/unmount."""

from __future__ import annotations

import pytest

from lhex.modules import lhex_runner
from lhex.modules.lhex_errors import MountError, PermissionNormalizationError
from lhex.modules.lhex_mount import MountController
from fakes import FakeRunner


@pytest.fixture
def mp(tmp_path):
    p = tmp_path / "mnt" / "lhex"
    p.mkdir(parents=True)
    return p


def test_mount_issues_command_when_unmounted(fake_runner, mp, tmp_path):
    mounts = MountController(fake_runner)
    mounts.mount(tmp_path / "vendor.img", mp)

    assert fake_runner.calls[0] == ("mountpoint", ["-q", str(mp)])
    assert fake_runner.calls[1] == ("mount", ["-o", "loop", str(tmp_path / "vendor.img"), str(mp)])
    assert mounts.is_mounted(mp)


def test_second_mount_is_rejected_without_issuing_mount(fake_runner, mp, tmp_path):
    mounts = MountController(fake_runner)
    mounts.mount(tmp_path / "vendor.img", mp)

    with pytest.raises(MountError, match="already mounted"):
        mounts.mount(tmp_path / "vendor.img", mp)

    assert fake_runner.count("mount") == 1
    assert fake_runner.mounted == {str(mp)}


def test_mount_tool_failure_is_mount_error(fake_runner, mp, tmp_path):
    fake_runner.fail_mount = True
    mounts = MountController(fake_runner)

    with pytest.raises(MountError):
        mounts.mount(tmp_path / "vendor.img", mp)
    assert not mounts.is_mounted(mp)


def test_status_query_that_cannot_run_is_fatal(fake_runner, mp, tmp_path):
    fake_runner.missing_tools.add("mountpoint")
    mounts = MountController(fake_runner)

    with pytest.raises(MountError, match="cannot query"):
        mounts.mount(tmp_path / "vendor.img", mp)
    assert fake_runner.count("mount") == 0


def test_unmount_is_noop_when_not_mounted(fake_runner, mp):
    mounts = MountController(fake_runner)

    assert mounts.unmount(mp) is False
    assert fake_runner.count("umount") == 0


def test_unmount_after_mount_then_noop(fake_runner, mp, tmp_path):
    mounts = MountController(fake_runner)
    mounts.mount(tmp_path / "vendor.img", mp)

    assert mounts.unmount(mp) is True
    assert mounts.unmount(mp) is False
    assert fake_runner.count("umount") == 1


def test_unmount_rechecks_live_state(fake_runner, mp, tmp_path):
    mounts = MountController(fake_runner)
    mounts.mount(tmp_path / "vendor.img", mp)
    # something else unmounted it behind our back
    fake_runner.mounted.clear()

    assert mounts.unmount(mp) is False
    assert fake_runner.count("umount") == 0


def test_unmount_failure_is_mount_error(fake_runner, mp, tmp_path):
    mounts = MountController(fake_runner)
    mounts.mount(tmp_path / "vendor.img", mp)
    fake_runner.fail_umount = True

    with pytest.raises(MountError, match="unmount"):
        mounts.unmount(mp)


def test_mount_commands_only_follow_matching_state(fake_runner, mp, tmp_path):
    mounts = MountController(fake_runner)
    image = tmp_path / "vendor.img"
    for op in ["mount", "unmount", "unmount", "mount", "mount", "unmount", "mount"]:
        try:
            getattr(mounts, op)(*([image, mp] if op == "mount" else [mp]))
        except MountError:
            pass

    # each privileged command was issued right after a query that allowed it
    state = set()
    for i, (cmd, args) in enumerate(fake_runner.calls):
        if cmd == "mount":
            assert fake_runner.calls[i - 1][0] == "mountpoint"
            assert str(mp) not in state
            state.add(str(mp))
        elif cmd == "umount":
            assert fake_runner.calls[i - 1][0] == "mountpoint"
            assert str(mp) in state
            state.discard(str(mp))
    assert fake_runner.count("mount") == 3
    assert fake_runner.count("umount") == 2


def test_chmod_requires_mount(fake_runner, mp):
    mounts = MountController(fake_runner)

    with pytest.raises(MountError, match="not mounted"):
        mounts.chmod_recursive(mp, "777")
    assert fake_runner.count("chmod") == 0


def test_chmod_failure_keeps_mount(fake_runner, mp, tmp_path):
    mounts = MountController(fake_runner)
    mounts.mount(tmp_path / "vendor.img", mp)
    fake_runner.fail_chmod = True

    with pytest.raises(PermissionNormalizationError):
        mounts.chmod_recursive(mp, "777")
    assert mounts.is_mounted(mp)


def test_chmod_arguments(fake_runner, mp, tmp_path):
    mounts = MountController(fake_runner)
    mounts.mount(tmp_path / "vendor.img", mp)
    mounts.chmod_recursive(mp, 755)

    assert ("chmod", ["-R", "755", str(mp)]) in fake_runner.calls


def test_privileged_commands_use_escalation(mp, tmp_path, monkeypatch):
    monkeypatch.setattr(lhex_runner, "is_root", lambda: False)
    runner = FakeRunner()
    runner.escalate = "sudo"
    mounts = MountController(runner)

    mounts.mount(tmp_path / "vendor.img", mp)
    mounts.chmod_recursive(mp)
    mounts.unmount(mp)

    privileged = [c for c in runner.calls if c[0] != "mountpoint"]
    assert [c[0] for c in privileged] == ["sudo", "sudo", "sudo"]
    assert [c[1][0] for c in privileged] == ["mount", "chmod", "umount"]


def test_root_skips_escalation(mp, tmp_path, monkeypatch):
    monkeypatch.setattr(lhex_runner, "is_root", lambda: True)
    runner = FakeRunner()
    runner.escalate = "sudo"
    MountController(runner).mount(tmp_path / "vendor.img", mp)

    assert runner.count("sudo") == 0
    assert runner.count("mount") == 1
