"""Tests for the per-tier NSG rule tables and their application."""

from dataclasses import replace

import pytest

from multitier_deploy.errors import ValidationError
from multitier_deploy.network import security_groups
from multitier_deploy.network.security_groups import (
    ANY,
    INTERNET,
    Access,
    Protocol,
    SecurityRule,
    apply_policy,
    build_policy,
    build_tier_policies,
)

WEB_CIDR = "10.0.1.0/24"
APP_CIDR = "10.0.2.0/24"


class TestRuleTables:
    """Properties every tier policy must hold."""

    def test_priorities_strictly_increasing(self, config):
        for policy in build_tier_policies(config).values():
            priorities = [r.priority for r in policy.rules]
            assert priorities == sorted(set(priorities)), policy.name

    def test_deny_all_has_highest_priority(self, config):
        policies = build_tier_policies(config)
        for key in ("app", "db"):
            rules = policies[key].rules
            deny = [r for r in rules if r.is_deny_all]
            assert len(deny) == 1
            assert deny[0].priority == max(r.priority for r in rules) == 4096

    def test_web_has_no_deny_all(self, config):
        web = build_tier_policies(config)["web"]
        assert not any(r.is_deny_all for r in web.rules)

    def test_web_allows_listed_ports_from_anywhere(self, config):
        web = build_tier_policies(config)["web"]
        assert [r.destination_port for r in web.rules] == [80, 443, 22]
        assert all(r.source_prefix == INTERNET for r in web.rules)
        assert all(r.access == Access.ALLOW and r.protocol == Protocol.TCP for r in web.rules)

    def test_app_only_admits_web_subnet(self, config):
        app = build_tier_policies(config)["app"]
        allow = [r for r in app.rules if r.access == Access.ALLOW]
        assert {r.source_prefix for r in allow} == {WEB_CIDR}
        assert [(r.destination_port, r.protocol) for r in allow] == [
            (8080, Protocol.TCP), (22, Protocol.TCP), (ANY, Protocol.ICMP)
        ]

    def test_db_only_admits_app_subnet(self, config):
        db = build_tier_policies(config)["db"]
        allow = [r for r in db.rules if r.access == Access.ALLOW]
        assert {r.source_prefix for r in allow} == {APP_CIDR}
        assert [r.destination_port for r in allow] == [5432, 3306, 22, ANY]

    def test_policies_follow_tier_order(self, config):
        policies = build_tier_policies(config)
        assert list(policies) == ["web", "app", "db"]
        assert [p.name for p in policies.values()] == ["nsg-web", "nsg-app", "nsg-db"]

    def test_upstream_follows_configured_prefix(self, config):
        tiers = [replace(t, subnet_prefix="10.0.11.0/24") if t.key == "web" else t for t in config.tiers]
        config.tiers = tiers
        app = build_policy(config, config.tier("app"))
        assert app.rules[0].source_prefix == "10.0.11.0/24"

    def test_upstream_rule_on_edge_tier_rejected(self, config, monkeypatch):
        tables = dict(security_groups.TIER_RULES)
        tables["web"] = security_groups.TIER_RULES["app"]
        monkeypatch.setattr(security_groups, "TIER_RULES", tables)
        with pytest.raises(ValidationError):
            build_policy(config, config.tier("web"))


class TestEvaluation:
    """First-match evaluation over the declared rules."""

    def test_web_accepts_http_from_internet(self, config):
        web = build_tier_policies(config)["web"]
        assert web.allows(Protocol.TCP, 80, "52.10.20.30")
        assert web.allows(Protocol.TCP, 443, "52.10.20.30")
        assert not web.allows(Protocol.TCP, 3306, "52.10.20.30")

    def test_app_accepts_web_tier_only(self, config):
        app = build_tier_policies(config)["app"]
        assert app.allows(Protocol.TCP, 8080, "10.0.1.4")
        assert app.allows(Protocol.ICMP, None, "10.0.1.4")
        assert not app.allows(Protocol.TCP, 8080, "52.10.20.30")
        assert not app.allows(Protocol.TCP, 8080, "10.0.3.4")

    def test_db_rejects_web_tier(self, config):
        db = build_tier_policies(config)["db"]
        assert db.allows(Protocol.TCP, 5432, "10.0.2.4")
        assert not db.allows(Protocol.TCP, 5432, "10.0.1.4")
        assert not db.allows(Protocol.ICMP, None, "10.0.1.4")
        assert db.first_match(Protocol.TCP, 5432, "10.0.1.4").name == "Deny-All-Inbound"

    def test_lower_priority_number_wins(self):
        policy = security_groups.SecurityPolicy(name="nsg", tier="x", rules=[
            SecurityRule("Deny-SSH", 200, ANY, 22, Protocol.TCP, Access.DENY, ""),
            SecurityRule("Allow-SSH", 100, ANY, 22, Protocol.TCP, Access.ALLOW, ""),
        ])
        assert policy.first_match(Protocol.TCP, 22, "10.1.1.1").name == "Allow-SSH"


class TestApplyPolicy:

    def test_rule_cli_arguments(self, config):
        rule = build_tier_policies(config)["app"].rules[2]
        args = rule.to_cli_args()
        assert args[args.index("--name") + 1] == "Allow-ICMP-From-Web"
        assert args[args.index("--priority") + 1] == "120"
        assert args[args.index("--source-address-prefixes") + 1] == WEB_CIDR
        assert args[args.index("--source-port-ranges") + 1] == "*"
        assert args[args.index("--destination-address-prefixes") + 1] == "*"
        assert args[args.index("--destination-port-ranges") + 1] == "*"
        assert args[args.index("--protocol") + 1] == "Icmp"
        assert args[args.index("--access") + 1] == "Allow"

    def test_nsg_created_before_rules_in_order(self, cli, config):
        policy = build_tier_policies(config)["db"]
        apply_policy(cli, config, policy)

        assert cli.labels() == ["network nsg create"] + ["network nsg rule create"] * 5
        create = cli.history[0]
        assert create[create.index("--name") + 1] == "nsg-db"
        assert create[create.index("--location") + 1] == "francecentral"

        names = [argv[argv.index("--name") + 1] for argv in cli.calls("network nsg rule create")]
        assert names == [
            "Allow-PostgreSQL-From-App",
            "Allow-MySQL-From-App",
            "Allow-SSH-From-App",
            "Allow-ICMP-From-App",
            "Deny-All-Inbound",
        ]
        assert all(argv[argv.index("--nsg-name") + 1] == "nsg-db" for argv in cli.calls("network nsg rule create"))
