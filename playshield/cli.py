import argparse
import json
from dataclasses import dataclass, field
from typing import Optional, Sequence

from .config import ConfigError, load_config
from .controller import ContentIdentity, ShieldController
from .dom import Window
from .policy import ProviderPolicy
from .scheduler import SimulatedScheduler


@dataclass(frozen=True)
class StatusItem:
    label: str
    value: str
    state: str  # ok | warn | error


@dataclass
class SimulationResult:
    provider_id: str
    primary_duration_ms: int
    secondary_duration_ms: int
    transitions: list = field(default_factory=list)
    actions: list = field(default_factory=list)
    blocked: int = 0
    by_reason: dict = field(default_factory=dict)


def _state_tag(state: str) -> str:
    normalized = str(state or "warn").lower()
    if normalized == "ok":
        return "[OK]"
    if normalized == "error":
        return "[ERR]"
    return "[WARN]"


def _policy_dict(policy) -> dict:
    return {
        "provider_id": policy.provider_id,
        "primary_duration_ms": policy.primary_duration_ms,
        "secondary_duration_ms": policy.secondary_duration_ms,
        "show_countdown": policy.show_countdown,
        "environment": policy.environment,
        "fallback": policy.fallback,
    }


def run_simulation(provider, environment=None, *, override_at=None, click_at=(), popup_at=(), leave_at=(), config=None):
    """Plays one shield session on the headless page with a virtual clock."""
    config = config if config is not None else load_config()
    scheduler = SimulatedScheduler()
    window = Window()
    document = window.document
    controls = document.create_element("div", element_id="controls")
    player = document.create_element("iframe", element_id="player")
    # Embedded content that would nag on leave.
    window.onbeforeunload = lambda event: "Are you sure you want to leave?"

    actions = []
    for at in click_at:
        actions.append((int(at), "click on player", lambda: "blocked" if document.click(player).default_prevented else "delivered"))
    for at in popup_at:
        actions.append((int(at), "window.open", lambda: "blocked" if window.open("https://ads.example/") is None else "opened"))
    for at in leave_at:
        actions.append((int(at), "navigate away", lambda: "warning shown" if _leave_warned(window) else "no warning"))

    with ShieldController(window, scheduler=scheduler, config=config, environment=environment) as controller:
        controller.designate(controls)
        if override_at is not None:
            actions.append((int(override_at), "skip protection", lambda: controller.manual_override() or controller.phase.value))
        session = controller.create_session(ContentIdentity(provider, "simulation"), provider)
        policy = session.policy

        performed = []
        for at, label, action in sorted(actions, key=lambda item: item[0]):
            scheduler.advance(max(0, at - scheduler.now_ms()))
            performed.append((at, label, action()))
        horizon = max([policy.total_duration_ms + 1000] + [at for at, _, _ in actions])
        scheduler.advance(max(0, horizon - scheduler.now_ms()))

        return SimulationResult(
            provider_id=policy.provider_id,
            primary_duration_ms=policy.primary_duration_ms,
            secondary_duration_ms=policy.secondary_duration_ms,
            transitions=[(at, phase.value) for at, phase in session.transitions],
            actions=performed,
            blocked=session.blocked_attempt_count,
            by_reason=controller.counter.by_reason(),
        )


def _leave_warned(window) -> bool:
    before = len(window.leave_warnings)
    window.navigate("https://elsewhere.example/")
    return len(window.leave_warnings) > before


def _render_simulation(result: SimulationResult) -> str:
    events = [(at, f"phase  {phase}") for at, phase in result.transitions]
    events += [(at, f"action {label} -> {outcome}") for at, label, outcome in result.actions]
    lines = [
        f"Shield simulation: {result.provider_id} "
        f"(primary {result.primary_duration_ms}ms, secondary {result.secondary_duration_ms}ms)",
        "=" * 40,
    ]
    for at, text in sorted(events, key=lambda item: item[0]):
        lines.append(f"+{at:>6}ms  {text}")
    lines.append("")
    reasons = ", ".join(f"{k}={v}" for k, v in sorted(result.by_reason.items())) or "none"
    lines.append(f"Threats blocked: {result.blocked} ({reasons})")
    return "\n".join(lines)


def _config_status(config, strict_error: Optional[str]) -> list[StatusItem]:
    items = []
    if strict_error:
        items.append(StatusItem("Config", strict_error, "error"))
    elif config.source == "builtin":
        items.append(StatusItem("Config", "Built-in provider table (no playshield.yaml)", "ok"))
    else:
        where = config.path or "PLAYSHIELD_POLICY_CONTENT"
        items.append(StatusItem("Config", f"Loaded: {where} (sha={config.sha256[:12]})", "ok"))
    items.append(StatusItem("Environment", config.environment or "(none)", "ok"))
    items.append(StatusItem("Confirm keywords", f"{len(config.confirm_keywords)} terms", "ok" if config.confirm_keywords else "warn"))
    items.append(StatusItem("Alert keywords", f"{len(config.alert_keywords)} terms", "ok" if config.alert_keywords else "warn"))
    items.append(StatusItem("Safe-zone classes", ", ".join(config.safe_zone_classes) or "(none)", "ok"))
    return items


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Inspect and simulate PlayShield provider policies.")
    parser.add_argument("--config", default="", help="Path to playshield.yaml (default: PLAYSHIELD_CONFIG or ./playshield.yaml).")
    sub = parser.add_subparsers(dest="command", required=True)

    resolve_parser = sub.add_parser("resolve", help="Show the shield timings for a provider.")
    resolve_parser.add_argument("provider", help="Provider id or name, e.g. VidKing.")
    resolve_parser.add_argument("--environment", default=None, help="Browser environment, e.g. firefox.")
    resolve_parser.add_argument("--json", action="store_true", dest="as_json", help="Print JSON.")

    providers_parser = sub.add_parser("providers", help="List the provider policy table.")
    providers_parser.add_argument("--json", action="store_true", dest="as_json", help="Print JSON.")

    sim_parser = sub.add_parser("simulate", help="Run a shield session against a headless page.")
    sim_parser.add_argument("provider", help="Provider id or name.")
    sim_parser.add_argument("--environment", default=None, help="Browser environment, e.g. firefox.")
    sim_parser.add_argument("--override-at", type=int, default=None, help="Press 'skip protection' at this ms.")
    sim_parser.add_argument("--click-at", type=int, action="append", default=[], help="Click the player at this ms.")
    sim_parser.add_argument("--popup-at", type=int, action="append", default=[], help="Call window.open at this ms.")
    sim_parser.add_argument("--leave-at", type=int, action="append", default=[], help="Navigate away at this ms.")
    sim_parser.add_argument("--json", action="store_true", dest="as_json", help="Print JSON.")

    check_parser = sub.add_parser("check", help="Validate the shield config.")
    check_parser.add_argument("--strict", action="store_true", help="Fail on any config problem.")
    check_parser.add_argument("--json", action="store_true", dest="as_json", help="Print JSON.")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    config_path = args.config or None

    if args.command == "check":
        strict_error = None
        try:
            config = load_config(config_path, strict=bool(args.strict))
        except ConfigError as e:
            strict_error = str(e)
            config = load_config(config_path)
        items = _config_status(config, strict_error)
        if args.as_json:
            print(json.dumps([item.__dict__ for item in items], indent=2))
        else:
            for item in items:
                print(f"{_state_tag(item.state):6} {item.label:18} {item.value}")
        return 1 if strict_error else 0

    config = load_config(config_path)
    policy = ProviderPolicy.from_config(config)

    if args.command == "resolve":
        resolved = policy.resolve(args.provider, args.environment)
        if args.as_json:
            print(json.dumps(_policy_dict(resolved), indent=2))
        else:
            note = " (default policy)" if resolved.fallback else ""
            print(f"Provider: {resolved.provider_id}{note}")
            print(f"Primary shield: {resolved.primary_duration_ms}ms")
            print(f"Secondary shield: {resolved.secondary_duration_ms}ms")
            print(f"Countdown overlay: {'shown' if resolved.show_countdown else 'hidden'}")
        return 0

    if args.command == "providers":
        entries = policy.entries()
        if args.as_json:
            payload = [
                {
                    "provider_id": e.provider_id,
                    "primary_duration_ms": e.primary_duration_ms,
                    "secondary_duration_ms": e.secondary_duration_ms,
                    "environment_adjustments_ms": dict(e.environment_adjustments_ms),
                    "show_countdown": e.show_countdown,
                }
                for e in entries
            ]
            print(json.dumps(payload, indent=2))
        else:
            print("Provider policies:")
            for e in entries:
                adjustments = ", ".join(f"{k}+{v}ms" for k, v in sorted(e.environment_adjustments_ms.items())) or "-"
                print(f"- {e.provider_id:10} primary={e.primary_duration_ms}ms secondary={e.secondary_duration_ms}ms adjust={adjustments}")
        return 0

    if args.command == "simulate":
        result = run_simulation(
            args.provider,
            args.environment,
            override_at=args.override_at,
            click_at=args.click_at,
            popup_at=args.popup_at,
            leave_at=args.leave_at,
            config=config,
        )
        if args.as_json:
            print(json.dumps(result.__dict__, indent=2))
        else:
            print(_render_simulation(result))
        return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main())
