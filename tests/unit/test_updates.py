"""Tests for the Windows Update driver and its result models."""

from unittest.mock import Mock

import pytest

from node_maintainer.exceptions import InstallError, PowerShellError, UpdateDiscoveryError, UpdateError
from node_maintainer.models.updates import InstallResult, UpdateDescriptor, UpdateSet
from node_maintainer.updates import DEFAULT_CRITERIA, WindowsUpdateDriver

SEARCH_ROWS = [
    {"Title": "2026-10 Cumulative Update for Azure Stack HCI (KB5044281)", "UpdateId": "a1", "RebootRequired": True},
    {"Title": "Security Intelligence Update for Microsoft Defender", "UpdateId": "b2", "RebootRequired": False},
]


def update_set(*ids):
    return UpdateSet(updates=[UpdateDescriptor(title=f"Update {i}", update_id=i) for i in ids])


def test_discover():
    runner = Mock()
    runner.run_json_list.return_value = SEARCH_ROWS

    found = WindowsUpdateDriver(runner).discover()

    assert found.count == 2
    assert found.ids() == ["a1", "b2"]
    assert found.reboot_required is True
    script = runner.run_json_list.call_args[0][0]
    assert "Microsoft.Update.Session" in script
    assert DEFAULT_CRITERIA.replace("'", "''") in script
    assert runner.run_json_list.call_args[1]["timeout"] is None


def test_discover_nothing():
    runner = Mock()
    runner.run_json_list.return_value = []

    found = WindowsUpdateDriver(runner).discover()

    assert found.is_empty
    assert found.reboot_required is False


def test_discover_failure():
    runner = Mock()
    runner.run_json_list.side_effect = PowerShellError("PowerShell command failed", "0x8024402C")

    with pytest.raises(UpdateDiscoveryError) as exc_info:
        WindowsUpdateDriver(runner).discover()

    assert isinstance(exc_info.value, UpdateError)
    assert "0x8024402C" in exc_info.value.details


def test_discover_malformed_output():
    runner = Mock()
    runner.run_json_list.return_value = [{"Title": "no id"}]

    with pytest.raises(UpdateDiscoveryError, match="Unexpected"):
        WindowsUpdateDriver(runner).discover()


def test_install_succeeded():
    runner = Mock()
    runner.run_json.return_value = {
        "ResultCode": 2,
        "RebootRequired": True,
        "Items": [{"UpdateId": "a1", "Title": "CU", "ResultCode": 2, "RebootRequired": True}],
    }

    result = WindowsUpdateDriver(runner).install(update_set("a1"))

    assert result.succeeded
    assert result.reboot_required is True
    assert result.failed_items() == []
    assert "$ids = @('a1')" in runner.run_json.call_args[0][0]


def test_install_succeeded_with_errors_is_success():
    runner = Mock()
    runner.run_json.return_value = {
        "ResultCode": 3,
        "RebootRequired": False,
        "Items": [
            {"UpdateId": "a1", "Title": "CU", "ResultCode": 2},
            {"UpdateId": "b2", "Title": "Defender", "ResultCode": 4},
        ],
    }

    result = WindowsUpdateDriver(runner).install(update_set("a1", "b2"))

    assert result.succeeded
    assert result.result_name == "SucceededWithErrors"
    assert [i.update_id for i in result.failed_items()] == ["b2"]


@pytest.mark.parametrize("code,name", [(4, "Failed"), (5, "Aborted")])
def test_install_failed(code, name):
    runner = Mock()
    runner.run_json.return_value = {
        "ResultCode": code,
        "Items": [{"UpdateId": "a1", "Title": "CU", "ResultCode": code}],
    }

    with pytest.raises(InstallError, match=name) as exc_info:
        WindowsUpdateDriver(runner).install(update_set("a1"))

    assert "CU" in exc_info.value.details


def test_install_runner_failure():
    runner = Mock()
    runner.run_json.side_effect = PowerShellError(
        "PowerShell command failed", "None of the requested updates are applicable any more"
    )

    with pytest.raises(InstallError, match="installation failed"):
        WindowsUpdateDriver(runner).install(update_set("a1"))


def test_install_empty_output():
    runner = Mock()
    runner.run_json.return_value = None

    with pytest.raises(InstallError, match="Unexpected"):
        WindowsUpdateDriver(runner).install(update_set("a1"))


def test_install_result_codes():
    assert InstallResult(result_code=2).succeeded
    assert InstallResult(result_code=3).succeeded
    assert not InstallResult(result_code=4).succeeded
    assert InstallResult(result_code=42).result_name == "42"
