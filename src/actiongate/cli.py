"""Command-line interface for actiongate."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from actiongate.adapter import create_agent
from actiongate.approvals.store import JSONApprovalStore
from actiongate.audit.log import AuditLog
from actiongate.audit.signing import Ed25519Verifier, generate_keypair, load_public_key
from actiongate.config import GatewaySettings
from actiongate.errors import ActionGateError, ApprovalStoreError, PolicyViolation
from actiongate.types import ApprovalStatus


def _format_optional_dependency_error(exc: Exception) -> str:
    message = str(exc)
    if isinstance(exc, RuntimeError) and "cryptography" in message and "actiongate[crypto]" not in message:
        return f"{message} (install \"actiongate[crypto]\")"
    return message


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="actiongate", add_help=True)
    subparsers = parser.add_subparsers(dest="command", required=True)

    verify_parser = subparsers.add_parser("verify", help="Verify a hash-chained audit log")
    verify_parser.add_argument("log_path", type=Path, help="Path to audit log JSONL file")
    verify_parser.add_argument("--json", action="store_true", help="Output JSON")
    verify_parser.add_argument("--public-key", type=Path, help="Path to Ed25519 public key PEM")

    approvals_parser = subparsers.add_parser("approvals", help="Inspect and resolve approval requests")
    approvals_parser.add_argument("--store", type=Path, help="Path to approvals JSON file")
    approvals_sub = approvals_parser.add_subparsers(dest="approvals_command", required=True)
    list_parser = approvals_sub.add_parser("list", help="List approval records")
    list_parser.add_argument(
        "--status",
        choices=[status.value for status in ApprovalStatus],
        help="Only show records with this status",
    )
    list_parser.add_argument("--json", action="store_true", help="Output JSON")
    for name, help_text in (
        ("approve", "Approve a pending request"),
        ("reject", "Reject a pending request"),
        ("revoke", "Delete a record"),
    ):
        sub = approvals_sub.add_parser(name, help=help_text)
        sub.add_argument("request_id", help="Approval request id")
    approvals_sub.add_parser("clear-expired", help="Drop expired grants")
    revoke_matching = approvals_sub.add_parser("revoke-grants", help="Drop matching approved grants")
    revoke_matching.add_argument("--agent-id", dest="agent_id", help="Only grants for this agent")
    revoke_matching.add_argument("--action", help="Only grants for this action name")

    run_parser = subparsers.add_parser("run", help="Run one governed action with the default policy")
    run_parser.add_argument("action_name", help="Action name, e.g. run_command")
    run_parser.add_argument("args", nargs="*", help="Command text or path")
    run_parser.add_argument("--agent-id", dest="agent_id", default="actiongate-cli", help="Agent id")
    run_parser.add_argument("--shadow", action="store_true", help="Report blocked actions as successful")

    keygen_parser = subparsers.add_parser(
        "keygen", help="Generate Ed25519 key pair (point ACTIONGATE_SIGNING_KEY at the private key)"
    )
    keygen_parser.add_argument("--private-key", type=Path, required=True, help="Path to private key PEM")
    keygen_parser.add_argument("--public-key", type=Path, required=True, help="Path to public key PEM")
    keygen_parser.add_argument(
        "--overwrite",
        action="store_true",
        help="Overwrite existing key files",
    )

    return parser.parse_args(argv)


def _cmd_verify(log_path: Path, json_output: bool, public_key_path: Path | None, settings: GatewaySettings) -> int:
    if not log_path.exists():
        print("audit log not found", file=sys.stderr)
        return 1
    verifier = None
    signer = None
    try:
        if public_key_path is not None:
            verifier = Ed25519Verifier(load_public_key(public_key_path.read_bytes()))
        else:
            signer = settings.audit_signer()
    except Exception as exc:
        if json_output:
            print(json.dumps({"status": "failed", "error": _format_optional_dependency_error(exc)}))
        else:
            print(f"verify failed: {_format_optional_dependency_error(exc)}", file=sys.stderr)
        return 1
    try:
        report = AuditLog(log_path, secret=settings.audit_secret, signer=signer).verify_chain(verifier)
    except OSError as exc:
        if json_output:
            print(json.dumps({"status": "failed", "error": str(exc)}))
        else:
            print(f"verify failed: {exc}", file=sys.stderr)
        return 1
    if json_output:
        print(json.dumps({"status": "ok" if report.valid else "failed", **report.to_dict()}))
    elif report.valid:
        print(f"verification ok ({report.entries} entries)")
    else:
        for issue in report.issues:
            print(f"line {issue.line}: {issue.kind}: {issue.detail}", file=sys.stderr)
        print(f"verification failed ({len(report.issues)} issues)", file=sys.stderr)
    return 0 if report.valid else 1


def _cmd_approvals(args: argparse.Namespace, settings: GatewaySettings) -> int:
    store = JSONApprovalStore(args.store or settings.approvals_path, ttl_seconds=settings.approval_ttl)
    command = args.approvals_command
    try:
        if command == "list":
            return _list_approvals(store, args.status, args.json)
        if command in ("approve", "reject"):
            status = ApprovalStatus.APPROVED if command == "approve" else ApprovalStatus.REJECTED
            record = store.update_status(args.request_id, status)
            if record is None:
                print("approval request not found", file=sys.stderr)
                return 1
            print(f"{record.action_name} for {record.agent_id}: {record.status.value}")
            return 0
        if command == "revoke":
            if not store.revoke(args.request_id):
                print("approval request not found", file=sys.stderr)
                return 1
            print("revoked")
            return 0
        if command == "clear-expired":
            print(f"cleared {store.clear_expired()} expired grants")
            return 0
        if command == "revoke-grants":
            count = store.revoke_matching(agent_id=args.agent_id, action_name=args.action)
            print(f"revoked {count} grants")
            return 0
    except ApprovalStoreError as exc:
        print(f"approvals failed: {exc}", file=sys.stderr)
        return 1
    print("unknown approvals command", file=sys.stderr)
    return 1


def _list_approvals(store: JSONApprovalStore, status: str | None, json_output: bool) -> int:
    records = [r for r in store.get_all() if status is None or r.status.value == status]
    if json_output:
        print(json.dumps([r.model_dump(mode="json", by_alias=True) for r in records], ensure_ascii=False))
        return 0
    table = Table(title="Approval requests")
    for column in ("ID", "Agent", "Action", "Status", "Requested", "Expires"):
        table.add_column(column)
    for record in records:
        table.add_row(
            escape(record.id),
            escape(record.agent_id),
            escape(record.action_name),
            record.status.value,
            record.timestamp.isoformat(timespec="seconds"),
            record.expires_at.isoformat(timespec="seconds") if record.expires_at else "",
        )
    Console().print(table)
    return 0


def _action_parameters(action_name: str, args: list[str]) -> dict[str, object]:
    if action_name == "run_command":
        return {"command": " ".join(args)}
    if action_name == "read_file":
        return {"path": args[0]} if args else {}
    if action_name == "write_file":
        params: dict[str, object] = {"path": args[0]} if args else {}
        if len(args) > 1:
            params["content"] = " ".join(args[1:])
        return params
    return {"args": args}


def _cmd_run(args: argparse.Namespace, settings: GatewaySettings) -> int:
    try:
        agent = create_agent(name=args.agent_id, shadow_mode=args.shadow, settings=settings)
    except (OSError, RuntimeError, ValueError) as exc:
        print(f"invalid configuration: {_format_optional_dependency_error(exc)}", file=sys.stderr)
        return 2
    try:
        output = agent.act(args.action_name, _action_parameters(args.action_name, args.args))
    except PolicyViolation as exc:
        print(f"action failed: {exc}", file=sys.stderr)
        return 1
    except ActionGateError as exc:
        print(f"actiongate error: {exc}", file=sys.stderr)
        return 1
    if output is not None:
        print(output)
    return 0


def _cmd_keygen(
    *,
    private_key_path: Path,
    public_key_path: Path,
    overwrite: bool,
) -> int:
    if not overwrite and (private_key_path.exists() or public_key_path.exists()):
        print("key file already exists", file=sys.stderr)
        return 1
    try:
        private_key, public_key = generate_keypair()
    except Exception as exc:
        print(_format_optional_dependency_error(exc), file=sys.stderr)
        return 1
    private_key_path.parent.mkdir(parents=True, exist_ok=True)
    public_key_path.parent.mkdir(parents=True, exist_ok=True)
    private_key_path.write_bytes(private_key)
    public_key_path.write_bytes(public_key)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    try:
        settings = GatewaySettings.from_env()
    except ValueError as exc:
        print(f"invalid configuration: {exc}", file=sys.stderr)
        return 2
    if args.command == "verify":
        return _cmd_verify(args.log_path, args.json, args.public_key, settings)
    if args.command == "approvals":
        return _cmd_approvals(args, settings)
    if args.command == "run":
        return _cmd_run(args, settings)
    if args.command == "keygen":
        return _cmd_keygen(
            private_key_path=args.private_key,
            public_key_path=args.public_key,
            overwrite=args.overwrite,
        )
    print("unknown command", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
