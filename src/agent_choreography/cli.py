"""Command-line interface for the agent choreography core.

Entry point
-----------
The ``main()`` function is registered as a console script in
``pyproject.toml``::

    [project.scripts]
    agent-choreography = "agent_choreography.cli:main"

Usage examples::

    agent-choreography handle "Build a React dashboard with charts"
    agent-choreography handle "Compare vector databases" --provider openai --json
    agent-choreography handle "Hi there" --state-file ~/.agent-choreography.json
    agent-choreography info
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import tempfile
from dataclasses import replace
from pathlib import Path
from typing import Any


def _build_parser() -> argparse.ArgumentParser:
    """Build the top-level argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="agent-choreography",
        description=(
            "Agent choreography -- route a request to the self-selected agent "
            "and run its iterative build workflow."
        ),
    )
    parser.add_argument(
        "--version",
        action="store_true",
        default=False,
        help="Show version and exit.",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available subcommands")

    # -- handle ------------------------------------------------------------
    handle_parser = subparsers.add_parser(
        "handle",
        help="Handle a single request.",
        description="Run one request through security, routing and the winning agent.",
    )
    handle_parser.add_argument("text", type=str, help="The request text.")
    handle_parser.add_argument(
        "--identity",
        type=str,
        default="anonymous",
        help="Caller identity used for trust tracking. (default: anonymous)",
    )
    handle_parser.add_argument(
        "--provider",
        type=str,
        default=None,
        choices=["auto", "anthropic", "openai"],
        help="Generative backend provider. (default: from config, else auto)",
    )
    handle_parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="Provider model name.  Defaults to the provider's default model.",
    )
    handle_parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="JSON config file with backend/workflow/evaluator/router/learning/security sections.",
    )
    handle_parser.add_argument(
        "--state-file",
        type=str,
        default=None,
        help="JSON file the learning cache and trust store are loaded from and saved to.",
    )
    handle_parser.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Print the result as JSON instead of a rendered panel.",
    )
    handle_parser.add_argument(
        "--profile",
        action="store_true",
        default=False,
        help="Also report the latency of every backend operation.",
    )
    handle_parser.add_argument(
        "--log-level",
        type=str,
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level. (default: WARNING)",
    )

    # -- info --------------------------------------------------------------
    subparsers.add_parser(
        "info",
        help="Show version, agents and provider availability.",
        description="Display version, built-in agents, and optional dependency status.",
    )

    return parser


# =========================================================================
# State file helpers
# =========================================================================

def _load_state(path: Path, learning_config: Any) -> tuple[Any, Any]:
    """Load the learning cache and trust store from *path* (or start empty)."""
    from agent_choreography.infrastructure.learning_cache import LearningCache
    from agent_choreography.infrastructure.trust_store import TrustStore

    if not path.exists():
        return LearningCache(learning_config), TrustStore()
    with open(path, "r", encoding="utf-8") as fh:
        data = json.load(fh)
    cache = LearningCache.from_dict(data.get("learning_cache", {}), learning_config)
    trust = TrustStore.from_dict(data.get("trust_store", {}))
    return cache, trust


def _save_state(path: Path, cache: Any, trust: Any) -> None:
    """Write the state file atomically so an interrupted save keeps the old one."""
    data = {"learning_cache": cache.to_dict(), "trust_store": trust.to_dict()}
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


# =========================================================================
# Subcommand handlers
# =========================================================================

def _cmd_handle(args: argparse.Namespace) -> int:
    """Handle the ``handle`` subcommand."""
    from agent_choreography.domain.enums import HandleStatus
    from agent_choreography.domain.exceptions import BackendUnavailable
    from agent_choreography.domain.values import Request
    from agent_choreography.infrastructure.config import (
        BackendConfig,
        LearningConfig,
        load_config_from_json,
    )
    from agent_choreography.infrastructure.llm import create_chat_model
    from agent_choreography.orchestrator import Orchestrator
    from agent_choreography.presentation.console import ConsoleDashboard

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    configs: dict[str, Any] = {}
    if args.config is not None:
        config_path = Path(args.config)
        if not config_path.exists():
            print(f"Error: config file not found: {config_path}", file=sys.stderr)
            return 1
        configs = load_config_from_json(config_path.read_text(encoding="utf-8"))

    backend: BackendConfig = configs.get("backend") or BackendConfig()
    if args.provider is not None:
        backend = replace(backend, provider=args.provider)
    if args.model is not None:
        backend = replace(backend, model_name=args.model)
    configs["backend"] = backend

    try:
        model = create_chat_model(backend)
        bid_model = create_chat_model(backend, temperature=backend.bid_temperature)
    except BackendUnavailable as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    state_path = Path(args.state_file).expanduser() if args.state_file else None
    learning_config = configs.get("learning") or LearningConfig()
    if state_path is not None:
        try:
            cache, trust = _load_state(state_path, learning_config)
        except (json.JSONDecodeError, OSError) as exc:
            print(f"Error reading {state_path}: {exc}", file=sys.stderr)
            return 1
    else:
        cache, trust = None, None

    orchestrator = Orchestrator.from_model(
        model,
        bid_model=bid_model,
        learning_cache=cache,
        trust_store=trust,
        configs=configs,
    )
    result = orchestrator.handle(Request(content=args.text, identity=args.identity))

    if state_path is not None:
        try:
            _save_state(state_path, cache, orchestrator.security.trust_store)
        except OSError as exc:
            logging.getLogger(__name__).warning("Could not save state to %s: %s", state_path, exc)

    if args.json:
        payload: dict[str, Any] = {
            "artifact": result.artifact,
            "confidence": result.confidence,
            "agent": result.agent,
            "status": result.status.value,
            "metadata": dict(result.metadata),
        }
        if args.profile:
            payload["performance"] = [
                m.to_dict() for m in orchestrator.performance.get_metrics()
            ]
        print(json.dumps(payload, indent=2, default=str))
    else:
        dashboard = ConsoleDashboard()
        dashboard.print_result(result)
        if args.profile:
            dashboard.print_performance(orchestrator.performance)

    return 0 if result.status is HandleStatus.COMPLETED else 1


def _cmd_info(args: argparse.Namespace) -> int:
    """Handle the ``info`` subcommand."""
    from agent_choreography import __version__
    from agent_choreography.agents.catalog import DEFAULT_PROFILES
    from agent_choreography.infrastructure.llm import DEFAULT_MODELS, available_providers

    print(f"Agent Choreography v{__version__}")
    print()

    deps = {
        "langgraph": "Build workflow state graph (required)",
        "langchain_core": "Prompts and structured output (required)",
        "pydantic": "Structured output schemas (required)",
        "numpy": "Confidence aggregation (required)",
        "rich": "Console rendering (required)",
    }
    print("Dependencies:")
    for pkg, desc in deps.items():
        try:
            mod = __import__(pkg)
            version = getattr(mod, "__version__", "unknown")
            print(f"  [installed] {pkg} {version} -- {desc}")
        except ImportError:
            print(f"  [missing]   {pkg} -- {desc}")
    print()

    print("Providers:")
    for name, installed in available_providers().items():
        status = "installed" if installed else "missing  "
        print(f"  [{status}] {name} (default model: {DEFAULT_MODELS[name]})")
    print()

    print("Built-in Agents:")
    for profile in DEFAULT_PROFILES:
        print(
            f"  {profile.agent_id} -- domain={profile.domain}, "
            f"standard={profile.quality_standard.value}, priority={profile.priority}"
        )

    return 0


# =========================================================================
# Main entry point
# =========================================================================

def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Parameters
    ----------
    argv:
        Command-line arguments.  Defaults to ``sys.argv[1:]``.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.version:
        from agent_choreography import __version__
        print(f"agent-choreography {__version__}")
        sys.exit(0)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    handlers: dict[str, Any] = {
        "handle": _cmd_handle,
        "info": _cmd_info,
    }

    handler = handlers.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)

    try:
        exit_code = handler(args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        exit_code = 130
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1

    sys.exit(exit_code)
