"""Tests for composition file models and syntax normalization."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from stackctl.domain.compose import (
    ComposeFile,
    DependencyCondition,
    HealthCheck,
    PortMapping,
    Service,
    VolumeMount,
    normalize_environment,
)


class TestPortMapping:
    def test_short_syntax(self) -> None:
        p = PortMapping.parse("8080:80")
        assert (p.published, p.target, p.host_ip, p.protocol) == (8080, 80, None, "tcp")

    def test_host_ip_and_protocol(self) -> None:
        p = PortMapping.parse("127.0.0.1:5432:5432")
        assert p.host_ip == "127.0.0.1"
        assert str(p) == "127.0.0.1:5432:5432"
        udp = PortMapping.parse("53:53/udp")
        assert udp.protocol == "udp"
        assert str(udp) == "53:53/udp"

    def test_ipv6_host(self) -> None:
        p = PortMapping.parse("[::1]:8080:80")
        assert (p.host_ip, p.published, p.target) == ("::1", 8080, 80)

    def test_container_only(self) -> None:
        assert PortMapping.parse(80).published is None
        assert PortMapping.parse("3000").target == 3000

    def test_long_syntax(self) -> None:
        p = PortMapping.parse({"target": 80, "published": "8080", "protocol": "tcp"})
        assert (p.published, p.target) == (8080, 80)

    def test_ranges_rejected(self) -> None:
        with pytest.raises(ValueError, match="ranges"):
            PortMapping.parse("8000-8010:80")

    def test_binding_key(self) -> None:
        assert PortMapping.parse("8080:80").binding_key == ("0.0.0.0", 8080, "tcp")
        assert PortMapping.parse("80").binding_key is None


class TestVolumeMount:
    def test_kinds(self) -> None:
        assert VolumeMount.parse("db-data:/var/lib/postgresql/data").kind == "volume"
        bind = VolumeMount.parse("./src:/app:ro")
        assert bind.kind == "bind"
        assert bind.read_only is True
        assert VolumeMount.parse("/cache").kind == "anonymous"

    def test_long_syntax(self) -> None:
        m = VolumeMount.parse({"source": "data", "target": "/data", "read_only": True})
        assert (m.source, m.target, m.read_only) == ("data", "/data", True)


class TestHealthCheck:
    def test_string_test_becomes_shell_form(self) -> None:
        hc = HealthCheck(test="pg_isready -U app")
        assert hc.test == ["CMD-SHELL", "pg_isready -U app"]
        assert hc.command == "pg_isready -U app"

    def test_exec_form_command_is_quoted(self) -> None:
        hc = HealthCheck(test=["CMD", "curl", "-f", "http://localhost:8080/actuator/health"])
        assert hc.command == "curl -f http://localhost:8080/actuator/health"

    def test_durations_parsed(self) -> None:
        hc = HealthCheck(test="true", interval="10s", timeout="5s", start_period="1m")
        assert (hc.interval, hc.timeout, hc.start_period) == (10.0, 5.0, 60.0)

    def test_gate_deadline(self) -> None:
        hc = HealthCheck(test="true", interval="10s", timeout="5s", retries=5, start_period="10s")
        assert hc.gate_deadline() == 100.0

    def test_disabled_forms(self) -> None:
        assert not HealthCheck(test=["NONE"]).enabled
        assert not HealthCheck(test="true", disable=True).enabled
        assert HealthCheck(test=["NONE"]).command == ""


class TestService:
    def test_environment_list_and_mapping(self) -> None:
        assert normalize_environment(["A=1", "B", "C=x=y"]) == {"A": "1", "B": None, "C": "x=y"}
        assert normalize_environment({"SHOW_SQL": False, "N": 3, "P": None}) == {
            "SHOW_SQL": "false",
            "N": "3",
            "P": None,
        }

    def test_depends_on_list_defaults_to_started(self) -> None:
        svc = Service(name="api", image="api", depends_on=["db"])
        assert svc.depends_on["db"].condition == DependencyCondition.STARTED
        assert svc.depends_on["db"].required is True

    def test_depends_on_mapping(self) -> None:
        svc = Service(
            name="api",
            image="api",
            depends_on={"db": {"condition": "service_healthy", "required": False}},
        )
        assert svc.depends_on["db"].condition == DependencyCondition.HEALTHY
        assert svc.depends_on["db"].required is False

    def test_build_shorthand_and_command_string(self) -> None:
        svc = Service(name="api", build="./backend", command="java -jar app.jar")
        assert svc.build is not None
        assert svc.build.context == "./backend"
        assert svc.command == ["java", "-jar", "app.jar"]

    def test_requires_image_or_build(self) -> None:
        with pytest.raises(ValidationError, match="image"):
            Service(name="x")

    def test_container_ports(self) -> None:
        svc = Service(name="db", image="postgres", ports=["5433:5432"], expose=["9187/tcp"])
        assert svc.container_ports() == {5432, 9187}

    def test_has_healthcheck(self) -> None:
        assert Service(name="a", image="a", healthcheck={"test": "true"}).has_healthcheck
        assert not Service(name="a", image="a", healthcheck={"disable": True}).has_healthcheck
        assert not Service(name="a", image="a").has_healthcheck


class TestComposeFile:
    def _compose(self) -> ComposeFile:
        return ComposeFile.model_validate(
            {
                "name": "shop",
                "services": {
                    "db": {"image": "postgres", "ports": ["5432:5432"], "networks": ["back"]},
                    "web": {"image": "nginx", "ports": ["80:80"]},
                },
                "volumes": {"data": None},
                "networks": {"back": {"driver": "bridge"}},
            }
        )

    def test_service_names_injected(self) -> None:
        compose = self._compose()
        assert compose.service("db").name == "db"
        assert compose.volumes["data"].external is False

    def test_unknown_service(self) -> None:
        with pytest.raises(KeyError, match="Unknown service: api"):
            self._compose().service("api")

    def test_networks(self) -> None:
        compose = self._compose()
        assert compose.service_networks("web") == ["default"]
        assert compose.service_networks("db") == ["back"]
        assert compose.all_networks() == ["back", "default"]

    def test_published_ports(self) -> None:
        pairs = [(svc, p.published) for svc, p in self._compose().published_ports()]
        assert sorted(pairs) == [("db", 5432), ("web", 80)]

    def test_frozen(self) -> None:
        compose = self._compose()
        with pytest.raises(ValidationError):
            compose.name = "other"  # type: ignore[misc]
