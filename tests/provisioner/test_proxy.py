from __future__ import annotations

from typing import Any

import pytest

from provisioner.capabilities import CapabilityCatalog
from provisioner.config import ProvisioningConfig
from provisioner.proxy import ProvisioningContext, StarterProxy, capability_matches
from provisioner.types import Capability, Platform, RegistrationRequest

DOCUMENT = {
    "caps": [
        {"BROWSER_NAME": "chrome", "PLATFORM": "LINUX", "VERSION": "64.0"},
        {"BROWSER_NAME": "firefox", "PLATFORM": "LINUX", "VERSION": "58.0"},
    ]
}


@pytest.fixture
def make_context(make_ports):
    def _make(runtime, config: ProvisioningConfig | None = None, document: Any = DOCUMENT):
        return ProvisioningContext(
            config=config or ProvisioningConfig.build(),
            catalog=CapabilityCatalog("https://caps.test", fetch=lambda url: document),
            runtime=runtime,
            ports=make_ports(),
        )

    return _make


def test_construction_overwrites_registration_capabilities(runtime, make_context) -> None:
    request = RegistrationRequest(capabilities=[Capability("safari", Platform.MAC)])

    proxy = StarterProxy(make_context(runtime), request)

    assert proxy.registration is request
    assert [c.browser_name for c in request.capabilities] == ["chrome", "firefox"]


def test_unsupported_browser_never_launches(runtime, make_context) -> None:
    proxy = StarterProxy(make_context(runtime))

    assert proxy.get_new_session({"browserName": "opera"}) is None
    assert runtime.created == []


def test_unsupported_platform_never_launches(runtime, make_context) -> None:
    proxy = StarterProxy(make_context(runtime))

    assert proxy.get_new_session({"browserName": "chrome", "platform": "WINDOWS"}) is None
    assert runtime.created == []


def test_request_without_browser_name_is_denied(runtime, make_context) -> None:
    proxy = StarterProxy(make_context(runtime))

    assert proxy.has_capability({"platform": "LINUX"}) is True
    assert proxy.get_new_session({"platform": "LINUX"}) is None
    assert runtime.created == []


def test_supported_request_launches_worker_and_returns_no_session(runtime, make_context) -> None:
    proxy = StarterProxy(make_context(runtime))

    result = proxy.get_new_session({"browserName": "firefox", "platform": "ANY"})

    assert result is None
    assert runtime.browsers() == ["firefox"]


def test_launch_is_subject_to_admission(make_runtime, make_context) -> None:
    runtime = make_runtime(running=10)
    proxy = StarterProxy(make_context(runtime))
    proxy.admission._sleep = lambda _: None  # type: ignore[attr-defined]

    assert proxy.get_new_session({"browserName": "chrome"}) is None
    assert runtime.created == []


def test_fallback_catalog_is_used_when_document_missing(runtime, make_context) -> None:
    proxy = StarterProxy(make_context(runtime, document={}))

    assert [c.browser_name for c in proxy.registration.capabilities] == [
        "firefox",
        "chrome",
    ]


def test_resource_usage_is_fixed(runtime, make_context) -> None:
    assert StarterProxy(make_context(runtime)).resource_usage_percent() == 98.0


def test_before_registration_starts_startup_fleet(runtime, make_context) -> None:
    config = ProvisioningConfig.build(
        chrome_containers_on_startup=2,
        firefox_containers_on_startup=2,
        max_workers=3,
    )
    proxy = StarterProxy(make_context(runtime, config), fleet_retry_interval=0)

    assert proxy.setup_completed is False
    fleet = proxy.before_registration()

    assert fleet.wait(timeout=5.0) is True
    assert proxy.setup_completed is True
    assert runtime.browsers() == ["chrome", "chrome", "firefox"]


@pytest.mark.parametrize(
    "requested,expected",
    [
        ({"browserName": "CHROME"}, True),
        ({"browserName": "chrome", "platform": "linux"}, True),
        ({"browserName": "chrome", "platform": "*"}, True),
        ({"browserName": "chrome", "platform": "MAC"}, False),
        ({"browserName": "chrome", "platform": "plan9"}, False),
        ({"browserName": "firefox"}, False),
        ({}, True),
    ],
)
def test_capability_matching(requested, expected) -> None:
    capability = Capability("chrome", Platform.LINUX, "64.0")

    assert capability_matches(capability, requested) is expected


def test_any_platform_capability_matches_every_platform() -> None:
    capability = Capability("chrome", Platform.ANY)

    assert capability_matches(capability, {"browserName": "chrome", "platform": "WINDOWS"})


@pytest.mark.parametrize("browser", [None, "", "ANY", "*"])
def test_wildcard_browser_name_never_launches(runtime, make_context, browser) -> None:
    chrome_only = {"caps": [{"BROWSER_NAME": "chrome", "PLATFORM": "LINUX", "VERSION": "64.0"}]}
    proxy = StarterProxy(make_context(runtime, document=chrome_only))

    assert [c.browser_name for c in proxy.registration.capabilities] == ["chrome"]
    assert proxy.has_capability({"browserName": browser}) is True
    assert proxy.get_new_session({"browserName": browser}) is None
    assert runtime.created == []
