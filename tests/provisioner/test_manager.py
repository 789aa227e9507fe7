from __future__ import annotations

import pytest

from provisioner.admission import AdmissionControl, ProxyRegistry
from provisioner.config import ProvisioningConfig
from provisioner.launcher import WorkerLauncher
from provisioner.manager import StartupFleetManager


@pytest.fixture
def make_fleet(make_ports):
    def _make(runtime, *, chrome: int, firefox: int, max_workers: int, **kwargs):
        admission = AdmissionControl(
            runtime,
            ProxyRegistry(),
            max_workers=max_workers,
            image_name="elgalu/selenium",
            sleep=lambda _: None,
        )
        launcher = WorkerLauncher(
            runtime,
            admission,
            make_ports(),
            ProvisioningConfig.build(max_workers=max_workers),
        )
        return StartupFleetManager(
            launcher,
            admission,
            chrome_count=chrome,
            firefox_count=firefox,
            max_workers=max_workers,
            retry_interval=0,
            **kwargs,
        )

    return _make


def test_fleet_is_capped_at_ceiling_and_prioritises_chrome(runtime, make_fleet) -> None:
    fleet = make_fleet(runtime, chrome=2, firefox=2, max_workers=3)

    assert fleet.containers_to_create == 3
    assert fleet.run() == 3

    assert runtime.browsers() == ["chrome", "chrome", "firefox"]
    assert fleet.setup_completed is True


def test_fleet_runs_in_background_thread(runtime, make_fleet) -> None:
    fleet = make_fleet(runtime, chrome=1, firefox=2, max_workers=10)

    fleet.start()

    assert fleet.wait(timeout=5.0) is True
    assert fleet.setup_completed is True
    assert fleet.created == 3
    assert runtime.browsers() == ["chrome", "firefox", "firefox"]


def test_empty_fleet_completes_immediately(runtime, make_fleet) -> None:
    fleet = make_fleet(runtime, chrome=0, firefox=0, max_workers=10)

    assert fleet.run() == 0
    assert fleet.setup_completed is True
    assert runtime.created == []


def test_failed_launches_are_not_counted_and_attempts_are_bounded(runtime, make_fleet) -> None:
    runtime.fail_create = True
    fleet = make_fleet(runtime, chrome=1, firefox=1, max_workers=10, max_attempts=5)

    assert fleet.run() == 0
    assert fleet.setup_completed is True


def test_fleet_stops_when_ceiling_already_exceeded(make_runtime, make_fleet) -> None:
    runtime = make_runtime(running=4)
    fleet = make_fleet(runtime, chrome=2, firefox=0, max_workers=3)

    assert fleet.run() == 0
    assert runtime.created == []
    assert fleet.setup_completed is True


def test_fleet_completes_even_if_launcher_raises(runtime, make_fleet) -> None:
    fleet = make_fleet(runtime, chrome=1, firefox=0, max_workers=10)

    def explode(browser: str) -> bool:
        raise RuntimeError("boom")

    fleet._launcher.launch = explode  # type: ignore[method-assign]

    with pytest.raises(RuntimeError):
        fleet.run()
    assert fleet.setup_completed is True
