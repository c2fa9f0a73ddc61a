"""Tests for traefik_proxmox_provider.labels module."""

from __future__ import annotations

import textwrap

import pytest

from traefik_proxmox_provider.labels import (
    LabelDecodeError,
    decode_labels,
    get_defined_elements,
    is_enabled,
    parse_labels,
)
from traefik_proxmox_provider.models import RouterTLSConfig


# ═══════════════════════════════════════════════════════════════════════════
# parse_labels
# ═══════════════════════════════════════════════════════════════════════════


class TestParseLabels:
    def test_one_label_per_line(self):
        notes = textwrap.dedent("""\
            traefik.enable=true
            traefik.http.routers.web.rule=Host(`web.example.com`)
            """)
        labels = parse_labels(notes)
        assert labels == {
            "traefik.enable": "true",
            "traefik.http.routers.web.rule": "Host(`web.example.com`)",
        }

    def test_ignores_comments_blank_lines_and_other_text(self):
        notes = "# Web server\n\nOwner: ops team\ntraefik.enable=true\nbackup=daily\n"
        assert parse_labels(notes) == {"traefik.enable": "true"}

    def test_value_may_contain_equals(self):
        notes = "traefik.http.middlewares.auth.basicauth.users=admin:$apr1$x==\n"
        labels = parse_labels(notes)
        assert labels["traefik.http.middlewares.auth.basicauth.users"] == "admin:$apr1$x=="

    def test_whitespace_is_trimmed(self):
        assert parse_labels("  traefik.enable = true  ") == {"traefik.enable": "true"}

    def test_later_duplicate_wins(self):
        assert parse_labels("traefik.enable=false\ntraefik.enable=true") == {
            "traefik.enable": "true"
        }

    def test_empty_description(self):
        assert parse_labels(None) == {}
        assert parse_labels("") == {}


class TestIsEnabled:
    def test_enabled(self):
        assert is_enabled({"traefik.enable": "true"}) is True

    def test_missing_or_other_value(self):
        assert is_enabled({}) is False
        assert is_enabled({"traefik.enable": "false"}) is False
        assert is_enabled({"traefik.enable": "TRUE"}) is False


# ═══════════════════════════════════════════════════════════════════════════
# get_defined_elements
# ═══════════════════════════════════════════════════════════════════════════


class TestGetDefinedElements:
    def test_attributes_collapse_to_one_identifier(self):
        labels = {
            "traefik.http.routers.myrouter.rule": "Host(`a`)",
            "traefik.http.routers.myrouter.service": "svc",
        }
        assert get_defined_elements(labels, "http", "routers") == ["myrouter"]

    def test_sorted_lexicographically(self):
        labels = {
            "traefik.http.services.zeta.loadbalancer.server.port": "80",
            "traefik.http.services.alpha.loadbalancer.server.port": "81",
            "traefik.http.services.mid.loadbalancer.server.port": "82",
        }
        assert get_defined_elements(labels, "http", "services") == ["alpha", "mid", "zeta"]

    def test_scoped_to_protocol_and_type(self):
        labels = {
            "traefik.tcp.routers.db.rule": "HostSNI(`*`)",
            "traefik.http.services.web.loadbalancer.server.port": "80",
            "traefik.enable": "true",
        }
        assert get_defined_elements(labels, "http", "routers") == []
        assert get_defined_elements(labels, "tcp", "routers") == ["db"]
        assert get_defined_elements(labels, "tcp", "services") == []

    def test_identifier_case_is_preserved(self):
        labels = {"traefik.http.routers.MyApp.rule": "Host(`a`)"}
        assert get_defined_elements(labels, "http", "routers") == ["MyApp"]


# ═══════════════════════════════════════════════════════════════════════════
# decode_labels
# ═══════════════════════════════════════════════════════════════════════════


class TestDecodeRouters:
    def test_http_router_fields(self):
        config = decode_labels({
            "traefik.enable": "true",
            "traefik.http.routers.web.rule": "Host(`web.example.com`)",
            "traefik.http.routers.web.entrypoints": "web,websecure",
            "traefik.http.routers.web.priority": "10",
            "traefik.http.routers.web.service": "backend",
        })
        router = config.http.routers["web"]
        assert router.rule == "Host(`web.example.com`)"
        assert router.entry_points == ["web", "websecure"]
        assert router.priority == 10
        assert router.service == "backend"

    def test_tls_flag_creates_empty_block(self):
        config = decode_labels({"traefik.http.routers.web.tls": "true"})
        assert config.http.routers["web"].tls == RouterTLSConfig()

    def test_tls_options(self):
        config = decode_labels({
            "traefik.http.routers.web.tls": "true",
            "traefik.http.routers.web.tls.certresolver": "letsencrypt",
        })
        assert config.http.routers["web"].tls.cert_resolver == "letsencrypt"

    def test_tcp_router_passthrough(self):
        config = decode_labels({
            "traefik.tcp.routers.db.rule": "HostSNI(`db.example.com`)",
            "traefik.tcp.routers.db.tls.passthrough": "true",
        })
        assert config.tcp.routers["db"].tls.passthrough is True

    def test_udp_router(self):
        config = decode_labels({"traefik.udp.routers.dns.entrypoints": "dns"})
        assert config.udp.routers["dns"].entry_points == ["dns"]
        assert config.udp.routers["dns"].service is None

    def test_field_names_are_case_insensitive(self):
        config = decode_labels({"traefik.HTTP.Routers.web.EntryPoints": "web"})
        assert config.http.routers["web"].entry_points == ["web"]


class TestDecodeServices:
    def test_server_hints(self):
        config = decode_labels({
            "traefik.http.services.web.loadbalancer.server.port": "8080",
            "traefik.http.services.web.loadbalancer.server.scheme": "https",
            "traefik.http.services.web.loadbalancer.passhostheader": "false",
        })
        lb = config.http.services["web"].load_balancer
        assert lb.pass_host_header is False
        assert len(lb.servers) == 1
        assert lb.servers[0].port == "8080"
        assert lb.servers[0].scheme == "https"
        assert lb.servers[0].url is None

    def test_camel_case_field(self):
        config = decode_labels({"traefik.http.services.web.loadBalancer.passHostHeader": "true"})
        assert config.http.services["web"].load_balancer.pass_host_header is True

    def test_tcp_server_address(self):
        config = decode_labels({
            "traefik.tcp.services.db.loadbalancer.server.address": "10.0.0.9:5432",
        })
        assert config.tcp.services["db"].load_balancer.servers[0].address == "10.0.0.9:5432"

    def test_udp_server_port(self):
        config = decode_labels({"traefik.udp.services.dns.loadbalancer.server.port": "53"})
        assert config.udp.services["dns"].load_balancer.servers[0].port == "53"


class TestDecodeMiddlewares:
    def test_middlewares_are_opaque(self):
        config = decode_labels({
            "traefik.http.middlewares.strip.stripprefix.prefixes": "/api,/v1",
            "traefik.http.middlewares.auth.basicAuth.users": "admin:hash",
        })
        assert config.http.middlewares["strip"] == {"stripprefix": {"prefixes": "/api,/v1"}}
        assert config.http.middlewares["auth"] == {"basicAuth": {"users": "admin:hash"}}


class TestDecodeErrors:
    def test_enable_gate_is_ignored(self):
        config = decode_labels({"traefik.enable": "true"})
        assert config.http.routers == {}
        assert config.tcp.services == {}

    def test_unknown_field(self):
        with pytest.raises(LabelDecodeError, match="field not found"):
            decode_labels({"traefik.http.routers.web.colour": "blue"})

    def test_unknown_protocol(self):
        with pytest.raises(LabelDecodeError):
            decode_labels({"traefik.docker.network": "proxy"})

    def test_unknown_collection(self):
        with pytest.raises(LabelDecodeError):
            decode_labels({"traefik.udp.middlewares.x.foo": "bar"})

    def test_invalid_priority(self):
        with pytest.raises(LabelDecodeError, match="http.routers.web"):
            decode_labels({"traefik.http.routers.web.priority": "high"})

    def test_incomplete_key(self):
        with pytest.raises(LabelDecodeError):
            decode_labels({"traefik.http.routers.web": "x"})

    def test_malformed_key(self):
        with pytest.raises(LabelDecodeError):
            decode_labels({"traefik.http.routers..rule": "Host(`a`)"})

    def test_value_where_block_expected(self):
        with pytest.raises(LabelDecodeError):
            decode_labels({"traefik.http.services.web.loadbalancer": "yes"})
