import itertools

import pytest

from print_dispatch.models import DeviceProfile, RegistryState
from print_dispatch.services.registry import default_state
from print_dispatch.services.resolver import resolve


def test_default_device_wins_regardless_of_order(canon_state):
    result = resolve(["Canon_B", "Canon_A"], canon_state)
    assert result.device_name == "Canon_A"
    assert result.options == {"PageSize": "13x19"}
    assert result.rule == "default"


def test_exact_match_independent_of_reported_order():
    state = RegistryState(profiles=[DeviceProfile(name="Canon_B", priority=100)])
    assert resolve(["Canon_X", "Canon_B"], state).device_name == "Canon_B"
    assert resolve(["Canon_B", "Canon_X"], state).device_name == "Canon_B"
    assert resolve(["Canon_X", "Canon_B"], state).rule == "exact"


def test_exact_match_follows_os_order():
    state = RegistryState(profiles=[
        DeviceProfile(name="Low", priority=1),
        DeviceProfile(name="High", priority=500),
    ])
    assert resolve(["Low", "High"], state).device_name == "Low"


def test_generic_fallback_uses_default_profile_options(generic_state):
    result = resolve(["PrinterZ"], generic_state)
    assert result.device_name == "PrinterZ"
    assert result.options == {"PageSize": "Letter", "cupsPrintQuality": "Normal"}
    assert result.rule == "fallback"


def test_generic_profile_named_generic():
    state = RegistryState(profiles=[DeviceProfile(name="generic", options={"media": "A4"})])
    assert resolve(["P1", "P2"], state).options == {"media": "A4"}


def test_fallback_without_generic_profile_has_empty_options():
    result = resolve(["PrinterZ"], RegistryState())
    assert result.device_name == "PrinterZ"
    assert result.options == {}


def test_no_devices_returns_none(canon_state):
    assert resolve([], canon_state) is None
    assert resolve([], RegistryState()) is None


def test_dangling_default_falls_through(canon_state):
    canon_state.default_device_name = "Gone"
    assert resolve(["Canon_B"], canon_state).device_name == "Canon_B"


def test_default_without_profile_falls_through():
    state = RegistryState(
        default_device_name="Unprofiled",
        profiles=[DeviceProfile(name="Canon_B")],
    )
    assert resolve(["Unprofiled", "Canon_B"], state).device_name == "Canon_B"


def test_default_not_reported_falls_through(canon_state):
    assert resolve(["Canon_B"], canon_state).device_name == "Canon_B"


def test_returned_options_are_a_copy(canon_state):
    result = resolve(["Canon_A"], canon_state)
    result.options["PageSize"] = "changed"
    assert canon_state.get_profile("Canon_A").options["PageSize"] == "13x19"


@pytest.mark.parametrize(
    "state",
    [RegistryState(), default_state(), RegistryState(default_device_name="X")],
)
def test_never_under_resolves_when_devices_exist(state):
    names = ["X", "Canon_PRO_1000_USB", "default", "Q"]
    for size in range(1, len(names) + 1):
        for available in itertools.permutations(names, size):
            result = resolve(list(available), state)
            assert result is not None
            assert result.device_name in available
