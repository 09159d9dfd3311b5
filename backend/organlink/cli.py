from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import Any, Dict, Iterable, List

from .agents.matching_workflow import MatchingWorkflow, Tab
from .agents.notification_feed import (
    AdminActivityFeed,
    HospitalNotificationFeed,
    NotificationFeed,
    OrganizationNotificationFeed,
)
from .api.hospital import HospitalApi
from .config import settings
from .memory.token_store import TokenStore
from .models.user import Portal
from .schemas.matching import (
    candidate_document,
    incoming_document,
    patient_document,
    request_document,
)
from .session import Session
from .utils.logging import configure_logging
from .utils.toasts import ToastChannel

FEEDS = {
    Portal.HOSPITAL: HospitalNotificationFeed,
    Portal.ORGANIZATION: OrganizationNotificationFeed,
    Portal.ADMIN: AdminActivityFeed,
}


def _print_rows(rows: Iterable[Dict[str, Any]], empty: str) -> None:
    rows = list(rows)
    if not rows:
        print(empty)
        return
    for row in rows:
        print("  ".join(f"{key}={value}" for key, value in row.items() if value not in (None, "", [])))


def _print_toasts(toasts: ToastChannel) -> None:
    for toast in toasts.history():
        print(f"[{toast.type}] {toast.title}")


async def _hospital_workflow(session: Session, toasts: ToastChannel) -> MatchingWorkflow:
    workflow = MatchingWorkflow(HospitalApi(session.client), toasts)
    await workflow.load()
    return workflow


async def _matches(workflow: MatchingWorkflow, patient_id: str, show_all: bool) -> int:
    patient = next((p for p in workflow.patients if p.patient_id == patient_id), None)
    if patient is None:
        print(f"Patient {patient_id} is not waiting for a match")
        return 1
    results = await workflow.search_matches(patient)
    _print_toasts(workflow.toasts)
    if results is None:
        return 1
    if workflow.policy_applied:
        print(f"Active policy: {workflow.policy_title or 'Custom Allocation Policy'}")
    candidates = results.ranked() if show_all else workflow.visible_matches
    _print_rows((candidate_document(c) for c in candidates), "No matches found")
    if not show_all and workflow.matches_caption:
        print(workflow.matches_caption)
    return 0


async def _request(workflow: MatchingWorkflow, patient_id: str, donor_id: str, notes: str | None) -> int:
    patient = next((p for p in workflow.patients if p.patient_id == patient_id), None)
    if patient is None:
        print(f"Patient {patient_id} is not waiting for a match")
        return 1
    results = await workflow.search_matches(patient)
    candidate = next((c for c in (results.matches if results else []) if c.donor_id == donor_id), None)
    if candidate is None:
        print(f"Donor {donor_id} is not a match candidate for {patient_id}")
        return 1
    workflow.toasts = ToastChannel()
    sent = await workflow.send_request(candidate, patient, notes=notes)
    _print_toasts(workflow.toasts)
    return 0 if sent else 1


async def _requests(workflow: MatchingWorkflow, tab: Tab) -> int:
    await workflow.switch_tab(tab)
    if tab is Tab.INCOMING:
        _print_rows(
            (incoming_document(item, settings.incoming_donor_preview) for item in workflow.incoming),
            "No incoming match requests",
        )
    else:
        requests = workflow.outgoing if tab is Tab.OUTGOING else workflow.received
        _print_rows((request_document(r) for r in requests), f"No {tab.value} requests")
    return 0


async def _respond(workflow: MatchingWorkflow, request_id: str, decision: str) -> int:
    item = next((i for i in workflow.incoming if i.request_id == request_id), None)
    if item is None:
        print(f"No incoming request {request_id}")
        return 1
    responded = await workflow.respond(item, decision)
    _print_toasts(workflow.toasts)
    return 0 if responded else 1


async def _notifications(feed: NotificationFeed, watch: bool) -> int:
    def render(current: NotificationFeed) -> None:
        print(f"{current.unread_count} unread")
        _print_rows(
            (
                {"id": n.notification_id, "type": n.type, "title": n.title, "unread": not n.is_read}
                for n in current.notifications
            ),
            "No notifications",
        )

    if not watch:
        await feed.refresh()
        render(feed)
        return 0

    feed.subscribe(render)
    feed.bind()
    try:
        while True:
            await asyncio.sleep(3600)
    except asyncio.CancelledError:
        pass
    finally:
        await feed.aclose()
    return 0


async def _run(args: argparse.Namespace) -> int:
    portal = Portal(args.portal)
    store = TokenStore(args.token_store)

    if args.command == "token":
        if args.action == "set":
            store.set(portal.token_key, args.token)
            print(f"Stored {portal.token_key}")
        elif args.action == "clear":
            store.remove(portal.token_key)
            print(f"Removed {portal.token_key}")
        else:
            print("set" if store.get(portal.token_key) else "not set")
        return 0

    async with Session(portal, store, base_url=args.base_url) as session:
        user = await session.restore()
        if user is None:
            print(f"Not signed in to the {portal.value} portal; run `organlink token set <token>` first")
            return 1

        if args.command == "notifications":
            return await _notifications(FEEDS[portal](session), args.watch)

        if portal is not Portal.HOSPITAL:
            print("Matching commands are only available on the hospital portal")
            return 1

        toasts = ToastChannel()
        workflow = await _hospital_workflow(session, toasts)
        if args.command == "patients":
            _print_rows((patient_document(p) for p in workflow.patients), "No patients requiring organs found")
            return 0
        if args.command == "matches":
            return await _matches(workflow, args.patient_id, args.all)
        if args.command == "request":
            return await _request(workflow, args.patient_id, args.donor_id, args.notes)
        if args.command == "requests":
            return await _requests(workflow, Tab(args.tab))
        if args.command == "respond":
            return await _respond(workflow, args.request_id, args.decision)
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="organlink", description="OrganLink portal client")
    parser.add_argument("--portal", choices=[p.value for p in Portal], default=Portal.HOSPITAL.value)
    parser.add_argument("--base-url", default=settings.api_base_url, help="OrganLink API base URL")
    parser.add_argument("--token-store", type=Path, default=settings.token_store_path)
    parser.add_argument("--log-level", default=settings.log_level)
    commands = parser.add_subparsers(dest="command", required=True)

    token = commands.add_parser("token", help="Manage the stored bearer token")
    token_actions = token.add_subparsers(dest="action", required=True)
    token_set = token_actions.add_parser("set")
    token_set.add_argument("token")
    token_actions.add_parser("clear")
    token_actions.add_parser("show")

    commands.add_parser("patients", help="List patients waiting for a match")

    matches = commands.add_parser("matches", help="Search match candidates for a patient")
    matches.add_argument("patient_id")
    matches.add_argument("--all", action="store_true", help="Show every candidate, not just the top ones")

    request = commands.add_parser("request", help="Send a match request for a donor")
    request.add_argument("patient_id")
    request.add_argument("donor_id")
    request.add_argument("--notes")

    requests = commands.add_parser("requests", help="List match requests")
    requests.add_argument("tab", choices=[Tab.INCOMING.value, Tab.OUTGOING.value, Tab.RECEIVED.value])

    respond = commands.add_parser("respond", help="Accept or decline an incoming request")
    respond.add_argument("request_id")
    respond.add_argument("decision", choices=["accept", "reject"])

    notifications = commands.add_parser("notifications", help="Show portal notifications")
    notifications.add_argument("--watch", action="store_true", help="Keep polling until interrupted")
    return parser


def main(argv: List[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
