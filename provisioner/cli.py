"""
Command line interface

    provisioner init [--interface NAME]
    provisioner run [--host HOST] [--port PORT]
    provisioner user add NAME
    provisioner user token NAME
    provisioner user enroll-token NAME [--ttl SECONDS]
    provisioner user config NAME
    provisioner peers
"""

import argparse
import sys

import uvicorn

from provisioner.config import Settings, configure_logging, get_settings
from provisioner.db.base import create_session_factory, init_db
from provisioner.security.token_service import InvalidCredentialError
from provisioner.services.peer_registry import StorageError
from provisioner.services.wireguard_provisioning_service import (
    ProvisioningError,
    WireGuardProvisioningService,
)


def _settings(args) -> Settings:
    settings = get_settings()
    overrides = {}
    if getattr(args, "database_url", None):
        overrides["database_url"] = args.database_url
    if getattr(args, "interface", None):
        overrides["interface_name"] = args.interface
    if overrides:
        settings = settings.model_copy(update=overrides)
    return settings


def _service(args) -> WireGuardProvisioningService:
    settings = _settings(args)
    engine, session_factory = create_session_factory(settings.database_url)
    init_db(engine)

    service = WireGuardProvisioningService.from_settings(settings, session_factory)
    service.initialize_interface()
    return service


# ---------------------------------------------------
# Command: init
# ---------------------------------------------------

def cmd_init(args):
    service = _service(args)
    interface = service.get_interface()

    print(f"[+] Interface  : {interface.name}")
    print(f"[+] Network    : {interface.address}")
    print(f"[+] Port       : {interface.listen_port}")
    print(f"[+] Public key : {interface.public_key}")


# ---------------------------------------------------
# Command: run
# ---------------------------------------------------

def cmd_run(args):
    settings = _settings(args)
    uvicorn.run(
        "provisioner.main:app",
        host=args.host or settings.api_host,
        port=args.port or settings.api_port,
        log_level=settings.log_level.lower()
    )


# ---------------------------------------------------
# Commands: user add / token / enroll-token / config
# ---------------------------------------------------

def cmd_user_add(args):
    service = _service(args)
    peer = service.add_user(args.name)

    print(f"[+] User added : {peer.name}")
    print(f"[+] Peer id    : {peer.id}")
    print(f"[+] Address    : {peer.address}")


def cmd_user_token(args):
    service = _service(args)
    print(service.issue_token(args.name))


def cmd_user_enroll_token(args):
    service = _service(args)
    print(service.issue_enrollment_token(args.name, ttl=args.ttl))


def cmd_user_config(args):
    service = _service(args)
    peer = service.registry.get_peer_by_name(args.name)
    if peer is None:
        print(f"[ERROR] Peer {args.name} not found.", file=sys.stderr)
        return 1

    print(service.get_client_config(peer.id).to_wireguard_config(), end="")


# ---------------------------------------------------
# Command: peers
# ---------------------------------------------------

def cmd_peers(args):
    service = _service(args)
    peers = service.list_peers()

    if not peers:
        print("No peers.")
        return

    for p in peers:
        state = "active" if p.is_active else "inactive"
        print(f"- {p.name} ({p.address}) [{state}] {p.id}")


# ---------------------------------------------------
# Parser
# ---------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="provisioner")
    parser.add_argument("--database-url", help="Override DATABASE_URL")
    sub = parser.add_subparsers(dest="cmd")

    # init
    p_init = sub.add_parser("init", help="Initialize the WireGuard interface")
    p_init.add_argument("-i", "--interface", help="Interface name")
    p_init.set_defaults(func=cmd_init)

    # run
    p_run = sub.add_parser("run", help="Start the API server")
    p_run.add_argument("--host")
    p_run.add_argument("-p", "--port", type=int)
    p_run.set_defaults(func=cmd_run)

    # user
    p_user = sub.add_parser("user", help="User management")
    user_sub = p_user.add_subparsers(dest="user_cmd")

    p_add = user_sub.add_parser("add", help="Add a user peer")
    p_add.add_argument("name")
    p_add.set_defaults(func=cmd_user_add)

    p_token = user_sub.add_parser("token", help="Issue a user access token")
    p_token.add_argument("name")
    p_token.set_defaults(func=cmd_user_token)

    p_enroll = user_sub.add_parser("enroll-token", help="Issue a one-time enrollment token")
    p_enroll.add_argument("name")
    p_enroll.add_argument("--ttl", type=int, help="Lifetime in seconds")
    p_enroll.set_defaults(func=cmd_user_enroll_token)

    p_config = user_sub.add_parser("config", help="Print a peer's client configuration")
    p_config.add_argument("name")
    p_config.set_defaults(func=cmd_user_config)

    # peers
    p_peers = sub.add_parser("peers", help="List peers")
    p_peers.set_defaults(func=cmd_peers)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    configure_logging(get_settings().log_level)

    try:
        return args.func(args) or 0
    except (ProvisioningError, InvalidCredentialError, StorageError, ValueError) as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
