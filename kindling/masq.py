"""IP masquerade rules for pod traffic leaving the node.

Traffic to the configured CIDRs is left alone; everything else that is not
bound for a local destination is masqueraded. Rules live in a dedicated nat
chain that POSTROUTING jumps to, and are replaced atomically on each sync.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from datetime import timedelta
from typing import Any

from kindling.exec import Cmd, CommandError, command

logger = logging.getLogger(__name__)

MASQ_CHAIN_NAME = "KIND-MASQ-AGENT"
"""Name of the nat chain holding the masquerade rules."""

TABLE_NAT = "nat"
CHAIN_POSTROUTING = "POSTROUTING"

NON_MASQ_RULE_COMMENT = (
    '-m comment --comment "kind-masq-agent: local traffic is not subject to MASQUERADE"'
)
MASQ_RULE_COMMENT = (
    '-m comment --comment "ip-masq-agent: outbound traffic is subject to '
    'MASQUERADE (must be last in chain)"'
)

# exit status iptables uses when a checked rule does not exist
_RULE_MISSING = 1


def postrouting_jump_comment(masq_chain: str) -> str:
    """Return the comment on the POSTROUTING rule that jumps to masq_chain."""
    return (
        "kind-masq-agent: ensure nat POSTROUTING directs all non-LOCAL "
        f"destination traffic to our custom {masq_chain} chain"
    )


def masq_restore_rules(masq_chain: str, no_masquerade_cidrs: Iterable[str]) -> str:
    """Return the iptables-restore input that rebuilds masq_chain.

    Declaring the chain flushes it atomically with the restore.
    """
    lines = ["*nat", f":{masq_chain} - [0:0]"]
    lines.extend(
        f"-A {masq_chain} {NON_MASQ_RULE_COMMENT} -d {cidr} -j RETURN"
        for cidr in no_masquerade_cidrs
    )
    lines.append(f"-A {masq_chain} {MASQ_RULE_COMMENT} -j MASQUERADE")
    lines.append("COMMIT")
    return "\n".join(lines) + "\n"


class IPMasqAgent:
    """Keeps the masquerade rules in place for IPv4 or IPv6.

    ``cmder`` creates the iptables commands; by default they run locally.
    """

    def __init__(
        self,
        ipv6: bool,
        no_masquerade_cidrs: Iterable[str],
        cmder: Any = None,
    ) -> None:
        self.ipv6 = ipv6
        self.masq_chain = MASQ_CHAIN_NAME
        self.no_masquerade_cidrs = list(no_masquerade_cidrs)
        self._cmder = cmder

    @property
    def _iptables(self) -> str:
        return "ip6tables" if self.ipv6 else "iptables"

    @property
    def _iptables_restore(self) -> str:
        return "ip6tables-restore" if self.ipv6 else "iptables-restore"

    def _command(self, name: str, *args: str) -> Cmd:
        if self._cmder is None:
            return command(name, *args)
        return self._cmder.command(name, *args)

    def _ensure_chain(self) -> None:
        try:
            self._command(self._iptables, "-t", TABLE_NAT, "-N", self.masq_chain).run()
        except CommandError:
            # the chain usually exists already
            pass

    def _ensure_postrouting_jump(self) -> None:
        rule = [
            "-m",
            "comment",
            "--comment",
            postrouting_jump_comment(self.masq_chain),
            "-m",
            "addrtype",
            "!",
            "--dst-type",
            "LOCAL",
            "-j",
            self.masq_chain,
        ]
        try:
            try:
                self._command(
                    self._iptables, "-t", TABLE_NAT, "-C", CHAIN_POSTROUTING, *rule
                ).run()
                return
            except CommandError as exc:
                if exc.returncode != _RULE_MISSING:
                    raise
            self._command(
                self._iptables, "-t", TABLE_NAT, "-A", CHAIN_POSTROUTING, *rule
            ).run()
        except CommandError as exc:
            raise RuntimeError(
                f"failed to ensure that {TABLE_NAT} chain {self.masq_chain} "
                f"jumps to MASQUERADE: {exc}"
            ) from exc

    def sync_rules(self) -> None:
        """Bring the masquerade chain and the jump to it up to date."""
        self._ensure_chain()
        self._ensure_postrouting_jump()
        rules = masq_restore_rules(self.masq_chain, self.no_masquerade_cidrs)
        logger.info("Handling iptables: %s", rules)
        cmd = self._command(self._iptables_restore, "--noflush")
        cmd.stdin = rules.encode("utf-8")
        cmd.run()

    def sync_rules_forever(self, interval: float | timedelta) -> None:
        """Sync the rules every interval (seconds or timedelta) until a sync fails."""
        seconds = interval.total_seconds() if isinstance(interval, timedelta) else interval
        while True:
            self.sync_rules()
            time.sleep(seconds)