"""Directory-of-files config: ``config``, ``users``, ``providers/<name>``, ``rosters``.

Each file holds one ``key value`` pair per line; blank lines and lines starting
with ``#`` are skipped, lines without exactly two fields are ignored.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from smsxmpp.core.errors import GatewayConfigurationError


def parse_pairs(path: Path) -> dict[str, str]:
    try:
        text = path.read_text()
    except OSError as exc:
        raise GatewayConfigurationError(
            f"Error reading {path}: {exc}", code="read_error", details={"path": str(path)}, original_error=exc
        ) from exc
    pairs: dict[str, str] = {}
    for line in text.splitlines():
        if not line or line.startswith("#"):
            continue
        fields = line.split()
        if len(fields) == 2:
            pairs[fields[0]] = fields[1]
    return pairs


def _load_users(path: Path) -> dict[str, dict[str, str]]:
    users: dict[str, dict[str, str]] = {}
    for jid, value in parse_pairs(path).items():
        provider, sep, number = value.partition(":")
        if not sep:
            raise GatewayConfigurationError(
                f"User {jid} in {path} has malformed configuration (should look like provider:phonenumber)",
                code="malformed_user",
                details={"jid": jid},
            )
        users[jid] = {"provider": provider, "phone_number": number}
    return users


def _load_providers(dirpath: Path) -> dict[str, dict[str, str]]:
    if not dirpath.is_dir():
        raise GatewayConfigurationError(f"{dirpath} is not a directory", code="missing_providers")
    providers: dict[str, dict[str, str]] = {}
    for entry in sorted(dirpath.iterdir()):
        if entry.name.startswith("."):
            continue
        params = parse_pairs(entry)
        if "type" not in params:
            raise GatewayConfigurationError(f"{entry} lacks type parameter", code="missing_type")
        providers[entry.name] = params
    return providers


def load_config_directory(dirpath: str | Path) -> dict[str, Any]:
    """Resolve a config directory into the same dict shape as the YAML file."""
    dirpath = Path(dirpath)
    params = parse_pairs(dirpath / "config")
    data: dict[str, Any] = {
        "xmpp": {
            "server": params.get("xmpp_server", ""),
            "domain": params.get("xmpp_domain", ""),
            "secret": params.get("xmpp_secret", ""),
        },
        "users": _load_users(dirpath / "users"),
        "providers": _load_providers(dirpath / "providers"),
    }
    if "public_url" in params:
        data["public_url"] = params["public_url"]
    if "default_prefix" in params:
        data["default_prefix"] = params["default_prefix"]
    if "http_listen" in params:
        host, _, port = params["http_listen"].rpartition(":")
        data["http"] = {"host": host or "127.0.0.1", "port": port}
    rosters = dirpath / "rosters"
    if rosters.exists():
        data["rosters"] = parse_pairs(rosters)
    return data
