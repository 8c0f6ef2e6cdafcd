"""Tests for the commit status gate."""

import httpx
import pytest

from ghdeploy.deploy.status import StatusGate, interpret_combined_status, permits
from ghdeploy.errors import ApiError, NetworkError
from ghdeploy.models import StatusCheckResult

STATUS_PATH = "/repos/keelerm84/deploy/commits/main/status"

BLOCKING = [StatusCheckResult.PENDING, StatusCheckResult.FAILURE, StatusCheckResult.ERROR]


class TestPermits:
    """The deploy decision table."""

    def test_no_status_permits_without_override(self):
        assert permits(StatusCheckResult.NO_STATUS, override=False) is True

    def test_success_permits(self):
        assert permits(StatusCheckResult.SUCCESS, override=False) is True

    @pytest.mark.parametrize("result", BLOCKING)
    def test_blocking_results_without_override(self, result):
        assert permits(result, override=False) is False

    @pytest.mark.parametrize("result", list(StatusCheckResult))
    def test_override_always_permits(self, result):
        assert permits(result, override=True) is True

    def test_gate_method_matches_function(self, client):
        gate = StatusGate(client)
        for result in StatusCheckResult:
            for override in (False, True):
                assert gate.permits(result, override) is permits(result, override)


class TestInterpretCombinedStatus:
    """Mapping GitHub's combined status payload."""

    def test_no_checks_is_no_status(self):
        data = {"state": "pending", "total_count": 0, "statuses": []}
        assert interpret_combined_status(data) is StatusCheckResult.NO_STATUS

    def test_success(self):
        data = {"state": "success", "total_count": 2, "statuses": [{"state": "success"}] * 2}
        assert interpret_combined_status(data) is StatusCheckResult.SUCCESS

    def test_pending(self):
        data = {"state": "pending", "total_count": 1, "statuses": [{"state": "pending"}]}
        assert interpret_combined_status(data) is StatusCheckResult.PENDING

    def test_failure(self):
        data = {"state": "failure", "total_count": 1, "statuses": [{"state": "failure"}]}
        assert interpret_combined_status(data) is StatusCheckResult.FAILURE

    def test_error_kept_apart_from_failure(self):
        data = {
            "state": "failure",
            "total_count": 2,
            "statuses": [{"state": "success"}, {"state": "error"}],
        }
        assert interpret_combined_status(data) is StatusCheckResult.ERROR

    def test_unknown_state_does_not_pass(self):
        data = {"state": "mystery", "total_count": 1, "statuses": [{"state": "mystery"}]}
        assert interpret_combined_status(data) is StatusCheckResult.PENDING


class TestStatusGateCheck:
    """StatusGate.check against the API."""

    def test_check_queries_combined_status(self, client, fake_github):
        fake_github.add(
            "GET",
            STATUS_PATH,
            json={"state": "success", "total_count": 1, "statuses": [{"state": "success"}]},
        )

        result = StatusGate(client).check("keelerm84/deploy", "main")

        assert result is StatusCheckResult.SUCCESS
        assert len(fake_github.calls("GET", STATUS_PATH)) == 1

    def test_check_still_queries_when_overridden(self, client, fake_github):
        fake_github.add(
            "GET",
            STATUS_PATH,
            json={"state": "failure", "total_count": 1, "statuses": [{"state": "failure"}]},
        )
        gate = StatusGate(client)

        result = gate.check("keelerm84/deploy", "main", override=True)

        assert result is StatusCheckResult.FAILURE
        assert gate.permits(result, override=True) is True

    def test_api_error_is_not_no_status(self, client, fake_github):
        fake_github.add("GET", STATUS_PATH, status=404, json={"message": "No commit found"})

        with pytest.raises(ApiError) as exc_info:
            StatusGate(client).check("keelerm84/deploy", "main")

        assert exc_info.value.status == 404
        assert exc_info.value.stage == "status check"

    def test_server_error(self, client, fake_github):
        fake_github.add("GET", STATUS_PATH, status=502, text="Bad gateway")

        with pytest.raises(ApiError) as exc_info:
            StatusGate(client).check("keelerm84/deploy", "main")
        assert exc_info.value.body == "Bad gateway"

    def test_network_error(self, client, fake_github):
        fake_github.add("GET", STATUS_PATH, raises=httpx.ConnectTimeout("timed out"))

        with pytest.raises(NetworkError) as exc_info:
            StatusGate(client).check("keelerm84/deploy", "main")
        assert exc_info.value.describe().startswith("status check failed")
