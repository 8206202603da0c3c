import subprocess
from unittest.mock import MagicMock, call, patch

import pytest

from print_dispatch.errors import ReconcileFailure, SubmissionFailed, SubmissionTimeout
from print_dispatch.services.spooler import (
    cancel_all,
    enable,
    get_available_printers,
    list_device_names,
    submit_job,
)


def _completed(returncode=0, stdout="", stderr=""):
    result = MagicMock()
    result.returncode = returncode
    result.stdout = stdout
    result.stderr = stderr
    return result


@patch("print_dispatch.services.spooler._HAS_PYCUPS", False)
def test_get_printers_fallback_no_lpstat():
    with patch("print_dispatch.services.spooler._run") as mock_run:
        mock_run.side_effect = FileNotFoundError("lpstat not found")
        assert get_available_printers() == []
        assert list_device_names() == []


@patch("print_dispatch.services.spooler._HAS_PYCUPS", False)
def test_get_printers_fallback_lpstat():
    with patch("print_dispatch.services.spooler._run") as mock_run:
        mock_run.return_value = _completed(
            stdout="printer Canon_PRO_1000_USB is idle.  enabled since Mon\n"
                   "printer HP_LaserJet disabled since Mon -\n"
        )
        result = get_available_printers()
        assert [p["name"] for p in result] == ["Canon_PRO_1000_USB", "HP_LaserJet"]
        assert result[1]["state"] == 5
        assert list_device_names() == ["Canon_PRO_1000_USB", "HP_LaserJet"]


@patch("print_dispatch.services.spooler._HAS_PYCUPS", True)
def test_get_printers_pycups():
    with patch("print_dispatch.services.spooler.cups", create=True) as mock_cups:
        mock_conn = MagicMock()
        mock_conn.getPrinters.return_value = {
            "Canon": {"printer-info": "Canon PRO-1000", "printer-state": 3, "device-uri": "usb://Canon/PRO-1000"}
        }
        mock_cups.Connection.return_value = mock_conn
        result = get_available_printers()
        assert len(result) == 1
        assert result[0]["name"] == "Canon"
        assert result[0]["info"] == "Canon PRO-1000"


@patch("print_dispatch.services.spooler._HAS_PYCUPS", True)
def test_get_printers_pycups_error_returns_empty():
    with patch("print_dispatch.services.spooler.cups", create=True) as mock_cups:
        mock_cups.Connection.side_effect = RuntimeError("cupsd not running")
        assert list_device_names() == []


@patch("print_dispatch.services.spooler._HAS_PYCUPS", True)
def test_submit_job_pycups():
    with patch("print_dispatch.services.spooler.cups", create=True) as mock_cups:
        mock_conn = MagicMock()
        mock_conn.printFile.return_value = 42
        mock_cups.Connection.return_value = mock_conn

        job_id = submit_job("/tmp/x.tiff", "Canon", {"PageSize": "13x19"}, title="t")

        assert job_id == "42"
        mock_conn.printFile.assert_called_once_with("Canon", "/tmp/x.tiff", "t", {"PageSize": "13x19"})


@patch("print_dispatch.services.spooler._HAS_PYCUPS", True)
def test_submit_job_pycups_error():
    with patch("print_dispatch.services.spooler.cups", create=True) as mock_cups:
        mock_cups.Connection.return_value.printFile.side_effect = RuntimeError("client-error-not-possible")
        with pytest.raises(SubmissionFailed) as excinfo:
            submit_job("/tmp/x.jpg", "Canon", {})
        assert excinfo.value.device_name == "Canon"
        assert "client-error-not-possible" in str(excinfo.value)


@patch("print_dispatch.services.spooler._HAS_PYCUPS", False)
def test_submit_job_lp_fallback():
    with patch("print_dispatch.services.spooler._run") as mock_run:
        mock_run.return_value = _completed(stdout="request id is Canon-123 (1 file(s))\n")

        job_id = submit_job("/tmp/x.jpg", "Canon", {"PageSize": "Letter"}, title="t")

        assert job_id == "Canon-123"
        args = mock_run.call_args[0][0]
        assert args[:5] == ["lp", "-d", "Canon", "-t", "t"]
        assert ["-o", "PageSize=Letter"] == args[5:7]
        assert args[-1] == "/tmp/x.jpg"


@patch("print_dispatch.services.spooler._HAS_PYCUPS", False)
def test_submit_job_lp_failure():
    with patch("print_dispatch.services.spooler._run") as mock_run:
        mock_run.return_value = _completed(returncode=1, stderr="lp: The printer or class does not exist.")
        with pytest.raises(SubmissionFailed, match="does not exist"):
            submit_job("/tmp/x.jpg", "Missing", {})


@patch("print_dispatch.services.spooler._HAS_PYCUPS", False)
def test_submit_job_lp_hang_is_a_timeout():
    with patch("print_dispatch.services.spooler._run") as mock_run:
        mock_run.side_effect = subprocess.TimeoutExpired(["lp"], 10)
        with pytest.raises(SubmissionTimeout, match="may still print") as excinfo:
            submit_job("/tmp/x.jpg", "Canon", {})
        assert excinfo.value.device_name == "Canon"


@patch("print_dispatch.services.spooler._HAS_PYCUPS", True)
def test_cancel_and_enable_pycups():
    with patch("print_dispatch.services.spooler.cups", create=True) as mock_cups:
        mock_conn = MagicMock()
        mock_cups.Connection.return_value = mock_conn

        cancel_all("Canon")
        enable("Canon")

        mock_conn.cancelAllJobs.assert_called_once_with(name="Canon")
        mock_conn.enablePrinter.assert_called_once_with("Canon")
        mock_conn.acceptJobs.assert_called_once_with("Canon")


@patch("print_dispatch.services.spooler._HAS_PYCUPS", False)
def test_cancel_and_enable_cli_fallback():
    with patch("print_dispatch.services.spooler._run") as mock_run:
        mock_run.return_value = _completed()

        cancel_all("Canon")
        enable("Canon")

        assert mock_run.call_args_list == [
            call(["cancel", "-a", "Canon"]),
            call(["cupsenable", "Canon"]),
            call(["cupsaccept", "Canon"]),
        ]


@patch("print_dispatch.services.spooler._HAS_PYCUPS", False)
def test_enable_failure_raises_reconcile_failure():
    with patch("print_dispatch.services.spooler._run") as mock_run:
        mock_run.return_value = _completed(returncode=1, stderr="cupsenable: Forbidden")
        with pytest.raises(ReconcileFailure, match="Forbidden"):
            enable("Canon")
